import logging
from datetime import datetime
from typing import Any

from fansync.models import Account, Conversation, Fan, MessageDirection, MessageSide, PlatformStatus
from fansync.repos.conversation import ConversationRepo
from fansync.repos.fan import FanRepo
from fansync.repos.message import MessageRepo
from fansync.utils.timestamps import parse_remote_timestamp, utcnow

PREVIEW_LENGTH = 100
MEDIA_PREVIEW = "[Media]"


def is_newer_than_cached(cached: Conversation | None, remote_last_message_at: datetime | None) -> bool:
    """Whether a remote chat carries activity the cache has not seen yet.

    Equal timestamps are not new; a chat without a timestamp is only new when nothing
    is cached for it.
    """
    if cached is None:
        return True
    if remote_last_message_at is None:
        return False
    if cached.last_message_at is None:
        return True
    return remote_last_message_at > cached.last_message_at


def preview(text: str | None) -> str | None:
    if not text:
        return None
    return text[:PREVIEW_LENGTH]


def _media_urls(message: dict[str, Any]) -> list[str]:
    urls = []
    for attachment in message.get("attachments") or []:
        if isinstance(attachment, dict):
            url = attachment.get("url") or attachment.get("fileUrl")
            if url:
                urls.append(url)
    return urls


def message_row(conversation_id: int, fan_remote_id: str, message: dict[str, Any]) -> dict[str, Any] | None:
    """Translate a platform message into a ``messages`` row; ``None`` when it has no id."""
    remote_message_id = message.get("uuid")
    if not remote_message_id:
        return None

    sender = message.get("sender") or {}
    direction = MessageDirection.inbound if sender.get("uuid") == fan_remote_id else MessageDirection.outbound
    pricing = message.get("pricing") or {}
    price = pricing.get("price")
    price_cents = price if isinstance(price, int) and not isinstance(price, bool) else None

    return {
        "remote_message_id": str(remote_message_id),
        "conversation_id": conversation_id,
        "direction": direction,
        "content": message.get("text"),
        "media_urls": _media_urls(message),
        "is_ppv": bool(price_cents and price_cents > 0),
        "ppv_price_cents": price_cents,
        "ppv_unlocked": bool(pricing.get("isUnlocked")),
        "sent_at": parse_remote_timestamp(message.get("sentAt") or message.get("createdAt")),
        "platform_status": PlatformStatus.delivered,
    }


class InboxReconciler:
    """Idempotent write paths into the inbox cache.

    Shared by the poller, the webhook handler and the send confirmation path; every
    write is a keyed upsert so replaying the same remote data converges to the same
    rows.
    """

    def __init__(self, fan_repo: FanRepo, conversation_repo: ConversationRepo, message_repo: MessageRepo) -> None:
        self._logger = logging.getLogger(__name__)
        self._fan_repo = fan_repo
        self._conversation_repo = conversation_repo
        self._message_repo = message_repo

    async def upsert_fan(self, account: Account, user: dict[str, Any], last_message_at: datetime | None) -> Fan:
        return await self._fan_repo.upsert(
            account_id=account.id,
            remote_fan_id=str(user["uuid"]),
            username=user.get("username"),
            display_name=user.get("displayName"),
            avatar_url=user.get("avatarUrl"),
            last_message_at=last_message_at,
        )

    async def apply_chat(self, account: Account, chat: dict[str, Any]) -> Conversation | None:
        """Upsert the fan and, when the chat is newer than the cache, its conversation.

        Returns the conversation when it was updated, ``None`` when the chat was skipped.
        """
        user = chat.get("user") or {}
        if not user.get("uuid"):
            self._logger.debug(f"Skipping chat without fan for account {account.id}")
            return None

        fan_remote_id = str(user["uuid"])
        last_message = chat.get("lastMessage") or {}
        last_message_at = parse_remote_timestamp(last_message.get("sentAt") or last_message.get("createdAt"))

        fan = await self.upsert_fan(account, user, last_message_at)
        cached = await self._conversation_repo.get_by_account_and_fan(account.id, fan.id)
        if not is_newer_than_cached(cached, last_message_at):
            return None

        sender = last_message.get("sender") or {}
        return await self._conversation_repo.upsert(
            account_id=account.id,
            fan_id=fan.id,
            remote_thread_id=fan_remote_id,
            last_message_at=last_message_at,
            last_message_preview=preview(last_message.get("text")),
            last_message_from=MessageSide.fan if sender.get("uuid") == fan_remote_id else MessageSide.creator,
            is_unread=not chat.get("isRead", False),
            unread_count=chat.get("unreadMessagesCount") or 0,
        )

    async def ingest_messages(self, conversation: Conversation, fan_remote_id: str, messages: list[dict[str, Any]]) -> int:
        rows = [message_row(conversation.id, fan_remote_id, message) for message in messages]
        return await self._message_repo.upsert_many([row for row in rows if row is not None])

    async def record_inbound_message(
        self, account: Account, fan_user: dict[str, Any], message: dict[str, Any]
    ) -> Conversation | None:
        """Store a message pushed by the platform and bump its conversation."""
        fan_remote_id = str(fan_user["uuid"])
        sent_at = parse_remote_timestamp(message.get("sentAt")) or utcnow()

        fan = await self.upsert_fan(account, fan_user, sent_at)
        conversation = await self._conversation_repo.upsert(
            account_id=account.id,
            fan_id=fan.id,
            remote_thread_id=fan_remote_id,
            last_message_at=sent_at,
            last_message_preview=preview(message.get("text")) or MEDIA_PREVIEW,
            last_message_from=MessageSide.fan,
            is_unread=True,
        )
        if conversation is None:
            conversation = await self._conversation_repo.get_by_account_and_fan(account.id, fan.id)
        if conversation is None:
            return None

        row = message_row(conversation.id, fan_remote_id, message)
        if row is not None:
            row.update(direction=MessageDirection.inbound, sent_at=sent_at)
            await self._message_repo.upsert_many([row])
        return conversation

    async def record_outbound(
        self,
        conversation: Conversation,
        remote_message_id: str,
        text: str | None,
        media_urls: list[str] | None = None,
        price_cents: int | None = None,
        sent_at: datetime | None = None,
    ) -> Conversation:
        """Store a message the platform confirmed as sent and bump the conversation preview."""
        sent_at = sent_at or utcnow()
        await self._message_repo.upsert_many(
            [
                {
                    "remote_message_id": remote_message_id,
                    "conversation_id": conversation.id,
                    "direction": MessageDirection.outbound,
                    "content": text,
                    "media_urls": media_urls or [],
                    "is_ppv": bool(price_cents and price_cents > 0),
                    "ppv_price_cents": price_cents,
                    "ppv_unlocked": False,
                    "sent_at": sent_at,
                    "platform_status": PlatformStatus.sent,
                }
            ]
        )
        updated = await self._conversation_repo.upsert(
            account_id=conversation.account_id,
            fan_id=conversation.fan_id,
            remote_thread_id=conversation.remote_thread_id,
            last_message_at=sent_at,
            last_message_preview=preview(text) or MEDIA_PREVIEW,
            last_message_from=MessageSide.creator,
            is_unread=False,
            unread_count=0,
            status=conversation.status,
        )
        return updated or conversation

    async def mark_subscribed(self, account: Account, remote_fan_id: str) -> Fan:
        return await self._fan_repo.update_subscription_status(account.id, remote_fan_id, "active")
