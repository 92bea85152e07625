from typing import Any

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert

from fansync.models.message import Message
from fansync.repos.base import BaseRepo


class MessageRepo(BaseRepo[Message]):
    """Repository for Message model operations."""

    def __init__(self) -> None:
        super().__init__(Message)

    async def get_by_remote_id(self, remote_message_id: str) -> Message | None:
        result = await self.execute(self.base_stmt.where(Message.remote_message_id == remote_message_id))
        return result.one_or_none()

    async def upsert_many(self, rows: list[dict[str, Any]]) -> int:
        """Upsert messages keyed by ``remote_message_id``; the last row for a key wins.

        Returns the number of distinct messages written.
        """
        by_key: dict[str, dict[str, Any]] = {}
        for row in rows:
            by_key[row["remote_message_id"]] = row
        if not by_key:
            return 0

        stmt = insert(Message).values(list(by_key.values()))
        stmt = stmt.on_conflict_do_update(
            index_elements=["remote_message_id"],
            set_={
                "conversation_id": stmt.excluded.conversation_id,
                "direction": stmt.excluded.direction,
                "content": stmt.excluded.content,
                "media_urls": stmt.excluded.media_urls,
                "is_ppv": stmt.excluded.is_ppv,
                "ppv_price_cents": stmt.excluded.ppv_price_cents,
                "ppv_unlocked": stmt.excluded.ppv_unlocked,
                "sent_at": stmt.excluded.sent_at,
                "platform_status": stmt.excluded.platform_status,
                "updated_at": func.now(),
            },
        )
        await self._db.session.execute(stmt)
        return len(by_key)
