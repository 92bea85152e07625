from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import selectinload

from fansync.models import Account
from fansync.models.conversation import Conversation, ConversationStatus, MessageSide
from fansync.repos.base import BaseRepo


class ConversationRepo(BaseRepo[Conversation]):
    """Repository for Conversation model operations."""

    def __init__(self) -> None:
        super().__init__(Conversation)

    async def get_by_account_and_fan(self, account_id: int, fan_id: int) -> Conversation | None:
        result = await self.execute(
            self.base_stmt.where(Conversation.account_id == account_id, Conversation.fan_id == fan_id)
        )
        return result.one_or_none()

    async def get_by_uuid_and_organization(self, uuid: UUID | str, organization_id: int) -> Conversation | None:
        """Get a conversation with its account and fan loaded, scoped to an organization."""
        query = (
            self.base_stmt.join(Account, Account.id == Conversation.account_id)
            .where(Conversation.uuid == uuid, Account.organization_id == organization_id)
            .options(selectinload(Conversation.account), selectinload(Conversation.fan))
        )
        result = await self.execute(query)
        return result.one_or_none()

    async def get_with_account(self, id: int) -> Conversation | None:
        query = self.base_stmt.where(Conversation.id == id).options(
            selectinload(Conversation.account), selectinload(Conversation.fan)
        )
        result = await self.execute(query)
        return result.one_or_none()

    async def get_by_thread(self, remote_thread_id: str) -> list[Conversation]:
        """All conversations carrying the given remote thread id, across accounts."""
        query = self.base_stmt.where(Conversation.remote_thread_id == remote_thread_id).options(
            selectinload(Conversation.account)
        )
        result = await self.execute(query)
        return list(result.all())

    async def upsert(
        self,
        account_id: int,
        fan_id: int,
        remote_thread_id: str,
        last_message_at: datetime | None,
        last_message_preview: str | None,
        last_message_from: MessageSide | None,
        is_unread: bool,
        unread_count: int | None = None,
        status: ConversationStatus = ConversationStatus.open,
    ) -> Conversation | None:
        """Insert or update the conversation keyed by (account, fan).

        The update only applies when the incoming last-message timestamp is not older
        than the stored one, so ``last_message_at`` never moves backwards. Returns
        ``None`` when the stored row was newer and nothing changed.
        """
        values: dict[str, Any] = {
            "account_id": account_id,
            "fan_id": fan_id,
            "remote_thread_id": remote_thread_id,
            "last_message_at": last_message_at,
            "last_message_preview": last_message_preview,
            "last_message_from": last_message_from,
            "is_unread": is_unread,
            "unread_count": unread_count or 0,
            "status": status,
        }
        stmt = insert(Conversation).values(**values)
        set_: dict[str, Any] = {
            "remote_thread_id": stmt.excluded.remote_thread_id,
            "last_message_at": stmt.excluded.last_message_at,
            "last_message_preview": stmt.excluded.last_message_preview,
            "last_message_from": stmt.excluded.last_message_from,
            "is_unread": stmt.excluded.is_unread,
            "status": stmt.excluded.status,
            "updated_at": func.now(),
        }
        if unread_count is not None:
            set_["unread_count"] = stmt.excluded.unread_count
        stmt = stmt.on_conflict_do_update(
            index_elements=["account_id", "fan_id"],
            set_=set_,
            where=or_(
                Conversation.last_message_at.is_(None),
                Conversation.last_message_at <= stmt.excluded.last_message_at,
            ),
        ).returning(Conversation.id)

        result = await self._db.session.execute(stmt)
        conversation_id = result.scalar_one_or_none()
        if conversation_id is None:
            return None

        query = (
            self.base_stmt.where(Conversation.id == conversation_id)
            .options(selectinload(Conversation.account), selectinload(Conversation.fan))
            .execution_options(populate_existing=True)
        )
        return (await self.execute(query)).one()
