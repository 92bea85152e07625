from datetime import datetime
from enum import Enum
from typing import Any

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin
from .decorators.types import EnumStringType


class MessageDirection(Enum):
    inbound = "inbound"
    outbound = "outbound"


class PlatformStatus(Enum):
    pending = "pending"
    sent = "sent"
    delivered = "delivered"
    failed = "failed"


class Message(Base, TimestampMixin):
    """Cached chat message, keyed by the platform's message UUID."""

    __tablename__ = "messages"

    remote_message_id: Mapped[str] = mapped_column(sa.String(64), nullable=False, unique=True)
    conversation_id: Mapped[int] = mapped_column(
        sa.ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    direction: Mapped[MessageDirection] = mapped_column(EnumStringType(MessageDirection), nullable=False)
    content: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    media_urls: Mapped[list[Any]] = mapped_column(JSONB(), nullable=False, server_default=sa.text("'[]'"))
    is_ppv: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False, server_default=sa.false())
    ppv_price_cents: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)
    ppv_unlocked: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False, server_default=sa.false())
    sent_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    platform_status: Mapped[PlatformStatus] = mapped_column(
        EnumStringType(PlatformStatus), nullable=False, server_default=PlatformStatus.sent.name
    )

    def __repr__(self) -> str:
        return f"<Message(remote_id='{self.remote_message_id}', direction='{self.direction.name}')>"
