from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert

from fansync.models.sync_state import SyncState, SyncStatus
from fansync.repos.base import BaseRepo


class SyncStateRepo(BaseRepo[SyncState]):
    """Repository for SyncState model operations."""

    def __init__(self) -> None:
        super().__init__(SyncState)

    async def get_by_account(self, account_id: int) -> SyncState | None:
        result = await self.execute(self.base_stmt.where(SyncState.account_id == account_id))
        return result.one_or_none()

    async def mark_syncing(self, account_id: int) -> None:
        """Record that a poll of the account started."""
        stmt = insert(SyncState).values(account_id=account_id, status=SyncStatus.syncing)
        stmt = stmt.on_conflict_do_update(index_elements=["account_id"], set_={"status": SyncStatus.syncing})
        await self._db.session.execute(stmt)

    async def mark_idle(self, account_id: int) -> None:
        """Record a completed poll and clear the previous error."""
        stmt = insert(SyncState).values(
            account_id=account_id,
            status=SyncStatus.idle,
            last_synced_at=func.now(),
            last_error=None,
            consecutive_failures=0,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["account_id"],
            set_={
                "status": SyncStatus.idle,
                "last_synced_at": func.now(),
                "last_error": None,
                "consecutive_failures": 0,
            },
        )
        await self._db.session.execute(stmt)

    async def mark_error(self, account_id: int, error_message: str) -> None:
        """Record a failed poll."""
        stmt = insert(SyncState).values(
            account_id=account_id, status=SyncStatus.error, last_error=error_message, consecutive_failures=1
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["account_id"],
            set_={
                "status": SyncStatus.error,
                "last_error": error_message,
                "consecutive_failures": SyncState.consecutive_failures + 1,
            },
        )
        await self._db.session.execute(stmt)
