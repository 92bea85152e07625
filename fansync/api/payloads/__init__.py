"""
Pydantic request and response models of the HTTP API.
"""

from .accounts import SyncResultResponse, SyncStateResponse
from .analytics import EarningsResponse, SubscribersResponse
from .conversations import (
    OutboxItemResponse,
    OutboxResponse,
    SendMessageRequest,
    SendMessageResponse,
)
from .error import APIError

__all__ = [
    "APIError",
    "EarningsResponse",
    "OutboxItemResponse",
    "OutboxResponse",
    "SendMessageRequest",
    "SendMessageResponse",
    "SubscribersResponse",
    "SyncResultResponse",
    "SyncStateResponse",
]
