from .account import Account, AccountStatus
from .base import Base
from .conversation import Conversation, ConversationStatus, MessageSide
from .fan import Fan
from .message import Message, MessageDirection, PlatformStatus
from .organization import Organization
from .sync_state import SyncState, SyncStatus
from .webhook_log import WebhookLog

__all__ = [
    "Base",
    "Account",
    "AccountStatus",
    "Conversation",
    "ConversationStatus",
    "Fan",
    "Message",
    "MessageDirection",
    "MessageSide",
    "Organization",
    "PlatformStatus",
    "SyncState",
    "SyncStatus",
    "WebhookLog",
]
