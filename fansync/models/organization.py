import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, WithUUID


class Organization(Base, WithUUID, TimestampMixin):
    """Tenant owning a set of connected creator accounts."""

    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    api_key: Mapped[str] = mapped_column(sa.String(255), nullable=False, unique=True)
