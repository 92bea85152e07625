from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert

from fansync.models.fan import Fan
from fansync.repos.base import BaseRepo


class FanRepo(BaseRepo[Fan]):
    """Repository for Fan model operations."""

    def __init__(self) -> None:
        super().__init__(Fan)

    async def get_by_account_and_remote_id(self, account_id: int, remote_fan_id: str) -> Fan | None:
        result = await self.execute(
            self.base_stmt.where(Fan.account_id == account_id, Fan.remote_fan_id == remote_fan_id)
        )
        return result.one_or_none()

    async def upsert(
        self,
        account_id: int,
        remote_fan_id: str,
        username: str | None = None,
        display_name: str | None = None,
        avatar_url: str | None = None,
        last_message_at: datetime | None = None,
    ) -> Fan:
        """Insert or refresh a fan keyed by (account, remote fan id)."""
        values: dict[str, Any] = {
            "account_id": account_id,
            "remote_fan_id": remote_fan_id,
            "username": username,
            "display_name": display_name,
            "avatar_url": avatar_url,
            "last_message_at": last_message_at,
        }
        stmt = insert(Fan).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["account_id", "remote_fan_id"],
            set_={
                "username": func.coalesce(stmt.excluded.username, Fan.username),
                "display_name": func.coalesce(stmt.excluded.display_name, Fan.display_name),
                "avatar_url": func.coalesce(stmt.excluded.avatar_url, Fan.avatar_url),
                "last_message_at": func.greatest(Fan.last_message_at, stmt.excluded.last_message_at),
                "updated_at": func.now(),
            },
        ).returning(Fan)

        query = select(Fan).from_statement(stmt).execution_options(populate_existing=True)
        result = await self._db.session.execute(query)
        return result.scalar_one()

    async def update_subscription_status(self, account_id: int, remote_fan_id: str, subscription_status: str) -> Fan:
        stmt = insert(Fan).values(
            account_id=account_id, remote_fan_id=remote_fan_id, subscription_status=subscription_status
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["account_id", "remote_fan_id"],
            set_={"subscription_status": subscription_status, "updated_at": func.now()},
        ).returning(Fan)

        query = select(Fan).from_statement(stmt).execution_options(populate_existing=True)
        result = await self._db.session.execute(query)
        return result.scalar_one()
