import json
import logging
from typing import Any

from fastapi_async_sqlalchemy import db

from fansync.controllers.sync.reconciler import InboxReconciler
from fansync.controllers.webhook.signature import verify_signature
from fansync.models import Account
from fansync.repos.account import AccountRepo
from fansync.repos.conversation import ConversationRepo
from fansync.repos.webhook_log import WebhookLogRepo
from fansync.utils.timestamps import utcnow


class WebhookController:
    """Verifies and processes platform webhook deliveries.

    Deliveries are acknowledged before processing; ``process`` runs in the background
    with its own session and never raises. Every delivery leaves a ``webhook_logs``
    row recording the outcome.
    """

    def __init__(
        self,
        account_repo: AccountRepo,
        conversation_repo: ConversationRepo,
        webhook_log_repo: WebhookLogRepo,
        reconciler: InboxReconciler,
        secret: str | None,
        tolerance_seconds: int = 300,
    ) -> None:
        self._logger = logging.getLogger(__name__)
        self._account_repo = account_repo
        self._conversation_repo = conversation_repo
        self._webhook_log_repo = webhook_log_repo
        self._reconciler = reconciler
        self._secret = secret
        self._tolerance_seconds = tolerance_seconds

    def verify(self, raw_body: bytes, header: str | None) -> bool:
        return verify_signature(self._secret, raw_body, header, self._tolerance_seconds)

    async def process(self, raw_body: bytes, signature_valid: bool) -> None:
        async with db(commit_on_exit=True):
            await self.handle(raw_body, signature_valid)

    async def handle(self, raw_body: bytes, signature_valid: bool) -> None:
        if not signature_valid:
            self._logger.warning("Invalid webhook signature, ignoring delivery")
            await self._webhook_log_repo.record(None, False, None, error="invalid signature")
            return

        try:
            payload = json.loads(raw_body)
        except ValueError:
            self._logger.warning("Webhook body is not valid JSON")
            await self._webhook_log_repo.record(None, True, None, error="malformed body")
            return
        if not isinstance(payload, dict):
            await self._webhook_log_repo.record(None, True, None, error="malformed body")
            return

        event = payload.get("event")
        data = payload.get("data") or {}
        self._logger.info(f"Fanvue webhook event: {event}")

        account_id: int | None = None
        error: str | None = None
        try:
            async with self._webhook_log_repo.savepoint():
                account = await self._resolve_account(data)
                if account is None:
                    error = "no matching account"
                    self._logger.warning(f"No account matches webhook event {event}")
                else:
                    account_id = account.id
                    await self._dispatch(account, event, data)
        except Exception as e:
            error = str(e)
            self._logger.exception(f"Webhook processing failed for event {event}")

        await self._webhook_log_repo.record(
            event, True, payload, account_id=account_id, error=error, processed_at=utcnow()
        )

    async def _resolve_account(self, data: dict[str, Any]) -> Account | None:
        creator_uuid = data.get("creatorUuid") or (data.get("creator") or {}).get("uuid")
        if not creator_uuid:
            creator_uuid = (data.get("recipient") or {}).get("uuid")
        if creator_uuid:
            account = await self._account_repo.get_by_remote_user_id(str(creator_uuid))
            if account is not None:
                return account

        fan_uuid = self._fan_uuid(data)
        if not fan_uuid:
            return None
        accounts = {c.account_id: c.account for c in await self._conversation_repo.get_by_thread(fan_uuid)}
        if len(accounts) > 1:
            self._logger.warning(f"Fan {fan_uuid} has conversations with {len(accounts)} accounts, cannot route event")
            return None
        return next(iter(accounts.values()), None)

    @staticmethod
    def _fan_uuid(data: dict[str, Any]) -> str | None:
        for key in ("sender", "from", "subscriber", "user"):
            value = data.get(key)
            if isinstance(value, dict) and value.get("uuid"):
                return str(value["uuid"])
        user_uuid = data.get("userUuid")
        return str(user_uuid) if user_uuid else None

    async def _dispatch(self, account: Account, event: str | None, data: dict[str, Any]) -> None:
        if event == "message.received":
            await self._on_message_received(account, data)
        elif event == "subscriber.new":
            fan_uuid = self._fan_uuid(data)
            if fan_uuid:
                await self._reconciler.mark_subscribed(account, fan_uuid)
        elif event in ("purchase.received", "tip.received"):
            self._logger.info(f"{event} for account {account.id}: {data.get('amount')} {data.get('currency')}")
        else:
            self._logger.info(f"Unhandled webhook event type: {event}")

    async def _on_message_received(self, account: Account, data: dict[str, Any]) -> None:
        fan_user = data.get("sender") or data.get("from") or {"uuid": data.get("userUuid")}
        if fan_user.get("uuid") == account.remote_user_id:
            fan_user = data.get("recipient") or {}
        if not fan_user.get("uuid"):
            self._logger.warning(f"message.received for account {account.id} without a fan")
            return
        await self._reconciler.record_inbound_message(account, fan_user, data)
