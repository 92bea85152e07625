import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from fansync.controllers.remote.client import FanvueClient
from fansync.controllers.sync.reconciler import InboxReconciler
from fansync.exceptions import AuthExpiredError, InvalidStateError, PermanentAuthError, RemoteAPIError
from fansync.models import Account
from fansync.repos.account import AccountRepo
from fansync.repos.sync_state import SyncStateRepo


@dataclass
class AccountPollResult:
    account_id: int
    skipped: bool = False
    updated_conversations: int = 0


@dataclass
class PollSummary:
    accounts: int = 0
    synced: int = 0
    failed: int = 0
    skipped: int = 0
    updated_conversations: int = 0


class InboxPoller:
    """Periodically reconciles the inbox cache of every eligible account.

    Accounts are polled in groups; one account failing never affects the others in
    its group. An account whose previous poll is still running is skipped, and a tick
    that starts while the previous one is still running does nothing.
    """

    def __init__(
        self,
        account_repo: AccountRepo,
        sync_state_repo: SyncStateRepo,
        reconciler: InboxReconciler,
        client: FanvueClient,
        group_size: int = 5,
        chat_page_size: int = 50,
        message_page_size: int = 50,
    ) -> None:
        self._logger = logging.getLogger(__name__)
        self._account_repo = account_repo
        self._sync_state_repo = sync_state_repo
        self._reconciler = reconciler
        self._client = client
        self._group_size = group_size
        self._chat_page_size = chat_page_size
        self._message_page_size = message_page_size

        self._busy: set[int] = set()
        self._tick_running = False

    @property
    def is_running(self) -> bool:
        return self._tick_running

    def is_busy(self, account_id: int) -> bool:
        return account_id in self._busy

    async def tick(self) -> PollSummary | None:
        """Poll every eligible account once. Returns ``None`` when a tick is already running."""
        if self._tick_running:
            self._logger.warning("Previous poll tick still running, skipping")
            return None

        self._tick_running = True
        try:
            accounts = list(await self._account_repo.get_all_eligible())
            summary = PollSummary(accounts=len(accounts))

            for start in range(0, len(accounts), self._group_size):
                group = accounts[start : start + self._group_size]
                results = await asyncio.gather(*(self._poll(account) for account in group), return_exceptions=True)
                for account, result in zip(group, results):
                    self._record(summary, account, result)

            self._logger.info(
                f"Poll tick finished: {summary.synced}/{summary.accounts} accounts synced, "
                f"{summary.failed} failed, {summary.skipped} skipped, "
                f"{summary.updated_conversations} conversations updated"
            )
            return summary
        finally:
            self._tick_running = False

    def _record(self, summary: PollSummary, account: Account, result: AccountPollResult | BaseException) -> None:
        if isinstance(result, AccountPollResult):
            if result.skipped:
                summary.skipped += 1
            else:
                summary.synced += 1
                summary.updated_conversations += result.updated_conversations
            return

        if isinstance(result, asyncio.CancelledError):
            raise result

        summary.failed += 1
        if isinstance(result, PermanentAuthError):
            self._logger.error(f"Account {account.id} lost authorization and will be skipped until reconnected")
        elif isinstance(result, RemoteAPIError):
            self._logger.warning(f"Poll failed for account {account.id}: {result}", extra=result.extra)
        else:
            self._logger.error(f"Poll failed for account {account.id}", exc_info=result)

    async def sync_account(self, account: Account) -> AccountPollResult:
        """Poll a single account now; errors propagate to the caller."""
        if not account.is_eligible:
            raise InvalidStateError(
                f"Account {account.uuid} is not active or needs to be reconnected", account_id=account.id
            )
        return await self._poll(account)

    async def _poll(self, account: Account) -> AccountPollResult:
        if account.id in self._busy:
            self._logger.info(f"Poll for account {account.id} still running, skipping")
            return AccountPollResult(account_id=account.id, skipped=True)

        self._busy.add(account.id)
        try:
            await self._sync_state_repo.mark_syncing(account.id)
            await self._sync_state_repo.commit()

            try:
                updated = await self._reconcile(account)
            except Exception as e:
                await self._sync_state_repo.rollback()
                await self._sync_state_repo.mark_error(account.id, str(e))
                await self._sync_state_repo.commit()
                raise

            await self._sync_state_repo.mark_idle(account.id)
            await self._sync_state_repo.commit()

            if updated:
                self._logger.info(f"Account {account.id}: {updated} updated conversations")
            return AccountPollResult(account_id=account.id, updated_conversations=updated)
        finally:
            self._busy.discard(account.id)

    async def _reconcile(self, account: Account) -> int:
        response = await self._client.get_chats(account, page=1, size=self._chat_page_size)
        chats = response.get("data") or []

        updated = 0
        for chat in chats:
            try:
                async with self._sync_state_repo.savepoint():
                    if await self._sync_chat(account, chat):
                        updated += 1
            except (AuthExpiredError, PermanentAuthError):
                raise
            except RemoteAPIError as e:
                # Rolled back to the savepoint; the chat still looks new on the next tick
                self._logger.warning(f"Chat sync failed for account {account.id}: {e}", extra=e.extra)
        return updated

    async def _sync_chat(self, account: Account, chat: dict[str, Any]) -> bool:
        conversation = await self._reconciler.apply_chat(account, chat)
        if conversation is None:
            return False

        fan_remote_id = conversation.remote_thread_id
        page = await self._client.get_chat_messages(
            account, fan_remote_id, page=1, size=self._message_page_size, mark_as_read=False
        )
        await self._reconciler.ingest_messages(conversation, fan_remote_id, page.get("data") or [])
        return True
