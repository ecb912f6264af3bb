"""Payment processor clients."""

from .stripe import (
    STRIPE,
    CreatePaymentIntentRequest,
    CreateSubscriptionRequest,
    PaymentIntent,
    Refund,
    StripeClient,
    StripeCustomer,
    StripeCustomerRequest,
    Subscription,
)

__all__ = [
    "STRIPE",
    "CreatePaymentIntentRequest",
    "CreateSubscriptionRequest",
    "PaymentIntent",
    "Refund",
    "StripeClient",
    "StripeCustomer",
    "StripeCustomerRequest",
    "Subscription",
]
