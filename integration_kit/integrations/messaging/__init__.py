"""SMS messaging clients."""

from .slicktext import (
    SLICKTEXT,
    AccountBalance,
    AutoReply,
    CampaignRequest,
    ContactRequest,
    SendMessageRequest,
    SlickTextCampaign,
    SlickTextClient,
    SlickTextContact,
    SlickTextMessage,
)

__all__ = [
    "SLICKTEXT",
    "AccountBalance",
    "AutoReply",
    "CampaignRequest",
    "ContactRequest",
    "SendMessageRequest",
    "SlickTextCampaign",
    "SlickTextClient",
    "SlickTextContact",
    "SlickTextMessage",
]
