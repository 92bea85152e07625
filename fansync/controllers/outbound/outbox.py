import logging
from typing import Any

from fastapi_async_sqlalchemy import db

from fansync.controllers.outbound.message_sender import MessageSender
from fansync.controllers.outbound.send_queue import OutboundSendQueue, QueueItem
from fansync.exceptions import EntityNotFoundError
from fansync.models import Conversation
from fansync.repos.conversation import ConversationRepo


class Outbox:
    """One ordered send queue per conversation.

    Queues with nothing listed and nothing in flight are dropped the next time another
    conversation asks for its queue.
    """

    def __init__(self, sender: MessageSender, conversation_repo: ConversationRepo) -> None:
        self._logger = logging.getLogger(__name__)
        self._sender = sender
        self._conversation_repo = conversation_repo
        self._queues: dict[int, OutboundSendQueue] = {}

    def queue_for(self, conversation: Conversation) -> OutboundSendQueue:
        self._evict_idle(keep=conversation.id)
        queue = self._queues.get(conversation.id)
        if queue is None:
            conversation_id = conversation.id

            async def send(payload: dict[str, Any]) -> str:
                return await self._send(conversation_id, payload)

            queue = OutboundSendQueue(send, on_change=self._log_change)
            self._queues[conversation.id] = queue
        return queue

    def enqueue(self, conversation: Conversation, payload: dict[str, Any]) -> QueueItem:
        return self.queue_for(conversation).enqueue(payload)

    async def close(self) -> None:
        for queue in self._queues.values():
            await queue.close()
        self._queues.clear()

    async def _send(self, conversation_id: int, payload: dict[str, Any]) -> str:
        # Runs in the drain task, outside of any request session
        async with db():
            conversation = await self._conversation_repo.get_with_account(conversation_id)
            if conversation is None:
                raise EntityNotFoundError(f"Conversation {conversation_id} not found")
            sent = await self._sender.send(
                conversation,
                text=payload.get("text"),
                media_uuids=payload.get("media_uuids"),
                price_cents=payload.get("price_cents"),
                template_uuid=payload.get("template_uuid"),
            )
            return sent.remote_message_id

    def _evict_idle(self, keep: int) -> None:
        idle = [key for key, queue in self._queues.items() if key != keep and queue.is_idle]
        for key in idle:
            del self._queues[key]

    def _log_change(self, item: QueueItem) -> None:
        self._logger.debug(f"Outbound item {item.temp_id} is {item.state.value}")
