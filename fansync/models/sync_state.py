from datetime import datetime
from enum import Enum

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin
from .decorators.types import EnumStringType


class SyncStatus(Enum):
    idle = "idle"
    syncing = "syncing"
    error = "error"


class SyncState(Base, TimestampMixin):
    """Inbox reconciliation state, one row per account."""

    __tablename__ = "sync_states"

    account_id: Mapped[int] = mapped_column(
        sa.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    status: Mapped[SyncStatus] = mapped_column(
        EnumStringType(SyncStatus), nullable=False, server_default=SyncStatus.idle.name
    )
    last_synced_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    last_error: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    consecutive_failures: Mapped[int] = mapped_column(sa.Integer, default=0, server_default="0", nullable=False)

    def __repr__(self) -> str:
        return f"<SyncState(account='{self.account_id}', status='{self.status.name}')>"
