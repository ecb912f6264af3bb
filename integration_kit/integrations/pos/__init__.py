"""Point-of-sale clients."""

from .square import (
    SQUARE,
    CreateOrderRequest,
    CreatePaymentRequest,
    Money,
    OrderLineItem,
    SquareClient,
    SquareCustomer,
    SquareCustomerRequest,
    SquareLocation,
    SquareOrder,
    SquarePayment,
)

__all__ = [
    "SQUARE",
    "CreateOrderRequest",
    "CreatePaymentRequest",
    "Money",
    "OrderLineItem",
    "SquareClient",
    "SquareCustomer",
    "SquareCustomerRequest",
    "SquareLocation",
    "SquareOrder",
    "SquarePayment",
]
