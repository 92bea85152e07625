from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class WebhookLog(Base, TimestampMixin):
    """Model for logging received platform webhook deliveries."""

    __tablename__ = "webhook_logs"

    account_id: Mapped[int | None] = mapped_column(
        sa.ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True, index=True
    )
    event_type: Mapped[str | None] = mapped_column(sa.String(100), nullable=True)
    signature_valid: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    payload: Mapped[dict[str, Any] | None] = mapped_column(JSONB(), nullable=True)
    error: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<WebhookLog(event='{self.event_type}', account='{self.account_id}', valid={self.signature_valid})>"
