from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class Fan(Base, TimestampMixin):
    __tablename__ = "fans"

    account_id: Mapped[int] = mapped_column(sa.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    remote_fan_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    username: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    display_name: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    last_message_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    subscription_status: Mapped[str] = mapped_column(sa.String(50), nullable=False, server_default="unknown")

    __table_args__ = (sa.UniqueConstraint("account_id", "remote_fan_id", name="uq_fan_account_remote_fan"),)

    def __repr__(self) -> str:
        return f"<Fan(account='{self.account_id}', remote_fan_id='{self.remote_fan_id}')>"
