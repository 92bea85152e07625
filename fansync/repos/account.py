from datetime import datetime
from typing import NamedTuple, cast
from uuid import UUID

from sqlalchemy import ScalarResult, select
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from fansync.models.account import Account, AccountStatus
from fansync.repos.base import BaseRepo


class StoredCredentials(NamedTuple):
    access_token_enc: str | None
    refresh_token_enc: str | None
    token_expires_at: datetime | None
    status: AccountStatus
    needs_reattach: bool


class AccountRepo(BaseRepo[Account]):
    """Repository for Account model operations.

    Credential writes go through ``store_tokens`` and ``mark_needs_reattach``, which
    issue a keyed UPDATE and then mirror the new values onto the in-memory instance
    without marking it dirty, so a later flush of the instance cannot resurrect
    stale tokens.
    """

    def __init__(self) -> None:
        super().__init__(Account)

    async def get_by_organization_and_uuid(self, organization_id: int, uuid: UUID | str) -> Account | None:
        """Get account by organization and uuid."""
        query = self.base_stmt.where(Account.organization_id == organization_id, Account.uuid == uuid)
        result = await self.execute(query)
        return result.one_or_none()

    async def get_by_uuid(self, uuid: UUID | str) -> Account | None:
        result = await self.execute(self.base_stmt.where(Account.uuid == uuid))
        return result.one_or_none()

    async def get_by_remote_user_id(self, remote_user_id: str) -> Account | None:
        """Get account by the creator's platform UUID."""
        result = await self.execute(self.base_stmt.where(Account.remote_user_id == remote_user_id).limit(1))
        return result.one_or_none()

    async def get_all(self) -> ScalarResult[Account]:
        result = await self._db.session.execute(self.base_stmt.order_by(Account.id))
        return cast(ScalarResult[Account], result.scalars())

    async def get_all_eligible(self) -> ScalarResult[Account]:
        """Get all accounts background sync may use: active and not awaiting reconnection."""
        query = (
            self.base_stmt.where(Account.status == AccountStatus.active, Account.needs_reattach.is_(False))
            .order_by(Account.id)
            .options(selectinload(Account.organization))
        )
        result = await self._db.session.execute(query)
        return cast(ScalarResult[Account], result.scalars())

    async def get_expiring(self, before: datetime) -> ScalarResult[Account]:
        """Get eligible accounts whose access token expires before the given instant."""
        query = self.base_stmt.where(
            Account.status == AccountStatus.active,
            Account.needs_reattach.is_(False),
            Account.refresh_token_enc.is_not(None),
            Account.token_expires_at < before,
        ).order_by(Account.token_expires_at)
        result = await self._db.session.execute(query)
        return cast(ScalarResult[Account], result.scalars())

    async def get_credentials(self, account_id: int) -> StoredCredentials | None:
        """Read the stored credential columns, bypassing the identity map."""
        query = select(
            Account.access_token_enc,
            Account.refresh_token_enc,
            Account.token_expires_at,
            Account.status,
            Account.needs_reattach,
        ).where(Account.id == account_id)
        row = (await self._db.session.execute(query)).one_or_none()
        if row is None:
            return None
        return StoredCredentials(*row)

    async def store_tokens(
        self, account: Account, access_token_enc: str, refresh_token_enc: str, token_expires_at: datetime
    ) -> None:
        """Persist a freshly issued token pair."""
        values = {
            "access_token_enc": access_token_enc,
            "refresh_token_enc": refresh_token_enc,
            "token_expires_at": token_expires_at,
        }
        await self.update(account.id, **values)
        self._set_committed(account, values)

    async def mark_needs_reattach(self, account: Account) -> None:
        """Deactivate an account whose grant was revoked and discard its tokens."""
        values = {
            "status": AccountStatus.inactive,
            "needs_reattach": True,
            "access_token_enc": None,
            "refresh_token_enc": None,
            "token_expires_at": None,
        }
        await self.update(account.id, **values)
        self._set_committed(account, values)

    def apply_credentials(self, account: Account, credentials: StoredCredentials) -> None:
        """Mirror credentials read by ``get_credentials`` onto a loaded instance."""
        self._set_committed(account, credentials._asdict())

    @staticmethod
    def _set_committed(account: Account, values: dict[str, object]) -> None:
        for key, value in values.items():
            set_committed_value(account, key, value)
