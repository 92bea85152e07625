from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, WithUUID
from .decorators.types import EnumStringType

if TYPE_CHECKING:
    from .account import Account
    from .fan import Fan


class ConversationStatus(Enum):
    open = "open"
    closed = "closed"
    archived = "archived"


class MessageSide(Enum):
    fan = "fan"
    creator = "creator"


class Conversation(Base, WithUUID, TimestampMixin):
    """Cached inbox thread between an account and one fan.

    ``last_message_at`` never moves backwards; the upsert in ``ConversationRepo``
    enforces it.
    """

    __tablename__ = "conversations"

    account_id: Mapped[int] = mapped_column(sa.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    fan_id: Mapped[int] = mapped_column(sa.ForeignKey("fans.id", ondelete="CASCADE"), nullable=False)
    remote_thread_id: Mapped[str] = mapped_column(sa.String(64), nullable=False, index=True)
    is_unread: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False, server_default=sa.false())
    unread_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0, server_default="0")
    last_message_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    last_message_preview: Mapped[str | None] = mapped_column(sa.String(100), nullable=True)
    last_message_from: Mapped[MessageSide | None] = mapped_column(EnumStringType(MessageSide), nullable=True)
    status: Mapped[ConversationStatus] = mapped_column(
        EnumStringType(ConversationStatus), nullable=False, server_default=ConversationStatus.open.name
    )

    account: Mapped["Account"] = relationship("Account")
    fan: Mapped["Fan"] = relationship("Fan")

    __table_args__ = (sa.UniqueConstraint("account_id", "fan_id", name="uq_conversation_account_fan"),)

    def __repr__(self) -> str:
        return f"<Conversation(account='{self.account_id}', fan='{self.fan_id}', last='{self.last_message_at}')>"
