from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.schema import UniqueConstraint

from .base import Base, TimestampMixin, WithUUID
from .decorators.types import EnumStringType

if TYPE_CHECKING:
    from .organization import Organization


class AccountStatus(Enum):
    active = "active"
    inactive = "inactive"
    pending = "pending"


class Account(Base, WithUUID, TimestampMixin):
    """Connected creator account and its OAuth credentials.

    Token columns hold Fernet ciphertext and are only written by the token manager
    (or cleared by the disconnect action). ``needs_reattach`` is set when the platform
    definitively rejected the refresh token; such an account is never ``active``.
    """

    __tablename__ = "accounts"

    organization_id: Mapped[int] = mapped_column(sa.ForeignKey("organizations.id"), nullable=False, index=True)
    remote_user_id: Mapped[str] = mapped_column(sa.String(64), nullable=False, index=True)
    username: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    access_token_enc: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    refresh_token_enc: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    status: Mapped[AccountStatus] = mapped_column(
        EnumStringType(AccountStatus), nullable=False, server_default=AccountStatus.active.name
    )
    needs_reattach: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.false(), default=False)

    organization: Mapped["Organization"] = relationship("Organization")

    __table_args__ = (UniqueConstraint("organization_id", "remote_user_id", name="uq_account_org_remote_user"),)

    @property
    def is_eligible(self) -> bool:
        """Whether background sync may use this account."""
        return self.status == AccountStatus.active and not self.needs_reattach

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, username='{self.username}', status='{self.status.name}')>"
