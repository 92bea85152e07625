from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class SyncStateResponse(BaseModel):
    account_id: UUID
    account_status: str
    needs_reattach: bool
    status: str
    last_synced_at: datetime | None = None
    last_error: str | None = None
    consecutive_failures: int = 0
    is_running: bool = False


class SyncResultResponse(BaseModel):
    skipped: bool
    updated_conversations: int
    state: SyncStateResponse
