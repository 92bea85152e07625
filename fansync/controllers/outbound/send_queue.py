import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable
from uuid import uuid4

from fansync.exceptions import EntityNotFoundError, InvalidStateError


class QueueItemState(Enum):
    queued = "queued"
    sending = "sending"
    sent = "sent"
    failed = "failed"


@dataclass
class QueueItem:
    temp_id: str
    payload: dict[str, Any]
    state: QueueItemState = QueueItemState.queued
    server_id: str | None = None
    error: str | None = None

    @property
    def id(self) -> str:
        """Server id once confirmed, the temporary id until then."""
        return self.server_id or self.temp_id


SendFn = Callable[[dict[str, Any]], Awaitable[str]]
ChangeListener = Callable[[QueueItem], None]


class OutboundSendQueue:
    """Process-local, strictly sequential outbound dispatcher.

    Items are dispatched one at a time in enqueue order by a single drain task.
    ``items`` is the rendered list: an item keeps its position there through every
    state change, retries included. A sent item is reported once with its server id
    and then leaves the list. A failed item stays listed until discarded and does
    not hold back the items behind it.
    """

    def __init__(self, send: SendFn, on_change: ChangeListener | None = None) -> None:
        self._logger = logging.getLogger(__name__)
        self._send = send
        self._on_change = on_change
        self._items: list[QueueItem] = []
        self._pending: deque[QueueItem] = deque()
        self._drain_task: asyncio.Task[None] | None = None

    @property
    def items(self) -> list[QueueItem]:
        return list(self._items)

    @property
    def is_draining(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    @property
    def is_idle(self) -> bool:
        return not self._items and not self.is_draining

    def get(self, item_id: str) -> QueueItem | None:
        for item in self._items:
            if item_id in (item.temp_id, item.server_id):
                return item
        return None

    def enqueue(self, payload: dict[str, Any], temp_id: str | None = None) -> QueueItem:
        item = QueueItem(temp_id=temp_id or f"temp-{uuid4()}", payload=payload)
        self._items.append(item)
        self._pending.append(item)
        self._notify(item)
        self._ensure_draining()
        return item

    def retry(self, item_id: str) -> QueueItem:
        """Re-dispatch a failed item after everything already queued."""
        item = self._get_or_fail(item_id)
        if item.state != QueueItemState.failed:
            raise InvalidStateError(f"Only failed items can be retried; item {item_id} is {item.state.value}")

        item.state = QueueItemState.queued
        item.error = None
        self._pending.append(item)
        self._notify(item)
        self._ensure_draining()
        return item

    def discard(self, item_id: str) -> QueueItem:
        item = self._get_or_fail(item_id)
        if item.state != QueueItemState.failed:
            raise InvalidStateError(f"Only failed items can be discarded; item {item_id} is {item.state.value}")
        self._items.remove(item)
        return item

    async def join(self) -> None:
        """Wait until every queued item has been dispatched."""
        while self._drain_task is not None and not self._drain_task.done():
            await asyncio.shield(self._drain_task)

    async def close(self) -> None:
        if self._drain_task and not self._drain_task.done():
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass
        self._drain_task = None

    def _get_or_fail(self, item_id: str) -> QueueItem:
        item = self.get(item_id)
        if item is None:
            raise EntityNotFoundError(f"Outbound item {item_id} not found")
        return item

    def _ensure_draining(self) -> None:
        if not self.is_draining:
            self._drain_task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        while self._pending:
            item = self._pending.popleft()
            if item.state != QueueItemState.queued:
                continue

            item.state = QueueItemState.sending
            self._notify(item)
            try:
                server_id = await self._send(item.payload)
            except asyncio.CancelledError:
                item.state = QueueItemState.failed
                item.error = "cancelled"
                self._notify(item)
                raise
            except Exception as e:
                item.state = QueueItemState.failed
                item.error = str(e)
                self._logger.warning(f"Outbound item {item.temp_id} failed: {e}")
                self._notify(item)
                continue

            item.server_id = server_id
            item.state = QueueItemState.sent
            self._items.remove(item)
            self._notify(item)

    def _notify(self, item: QueueItem) -> None:
        if self._on_change is not None:
            self._on_change(item)
