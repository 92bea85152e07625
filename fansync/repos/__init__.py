from .account import AccountRepo
from .conversation import ConversationRepo
from .fan import FanRepo
from .message import MessageRepo
from .organization import OrganizationRepo
from .sync_state import SyncStateRepo
from .webhook_log import WebhookLogRepo

__all__ = [
    "AccountRepo",
    "ConversationRepo",
    "FanRepo",
    "MessageRepo",
    "OrganizationRepo",
    "SyncStateRepo",
    "WebhookLogRepo",
]
