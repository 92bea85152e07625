import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Hashable

from fansync.exceptions import PermanentAuthError, RemoteAPIError, TransientRemoteError
from fansync.models import Account

MAX_WINDOW_SPAN = timedelta(days=28)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Window:
    """Half-open time window ``[start, end)``."""

    start: datetime
    end: datetime

    @property
    def span(self) -> timedelta:
        return self.end - self.start


FetchPage = Callable[[Window, str | None], Awaitable[dict[str, Any]]]
DedupeKey = Callable[[dict[str, Any]], Hashable | None]


def build_windows(start: datetime, end: datetime, max_span: timedelta = MAX_WINDOW_SPAN) -> list[Window]:
    """Split ``[start, end)`` into contiguous windows of at most ``max_span``.

    A reversed or empty range yields a single zero-width window at ``start`` so the
    caller still issues one request.
    """
    if max_span <= timedelta(0):
        raise ValueError("max_span must be positive")
    if end <= start:
        return [Window(start, start)]

    windows = []
    cursor = start
    while cursor < end:
        window_end = min(cursor + max_span, end)
        windows.append(Window(cursor, window_end))
        cursor = window_end
    return windows


class ChunkedRangeFetcher:
    """Fetches a long date range as bounded windows, following cursors inside each one.

    Windows run concurrently up to ``concurrency`` at a time. A window whose requests
    fail, or that receives a malformed page, is logged and contributes no items; its
    siblings are unaffected. A revoked authorization cancels the remaining windows and
    propagates. Items for which ``dedupe_key`` returns a key already seen in another
    window are dropped. Item values (amounts in cents included) are returned untouched.
    """

    def __init__(self, max_span_days: int = 28, concurrency: int = 3, max_pages: int = 20) -> None:
        self._max_span = timedelta(days=max_span_days)
        self._concurrency = concurrency
        self._max_pages = max_pages

    async def fetch_range(
        self,
        account: Account,
        start: datetime,
        end: datetime,
        fetch_page: FetchPage,
        dedupe_key: DedupeKey | None = None,
    ) -> list[dict[str, Any]]:
        windows = build_windows(start, end, self._max_span)
        semaphore = asyncio.Semaphore(self._concurrency)

        tasks = [
            asyncio.create_task(self._fetch_window(account, window, fetch_page, semaphore)) for window in windows
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        items: list[dict[str, Any]] = []
        seen: set[Hashable] = set()
        for window_items in results:
            for item in window_items:
                key = dedupe_key(item) if dedupe_key is not None else None
                if key is not None:
                    if key in seen:
                        continue
                    seen.add(key)
                items.append(item)

        logger.debug(f"Fetched {len(items)} items in {len(windows)} windows for account {account.id}")
        return items

    async def _fetch_window(
        self, account: Account, window: Window, fetch_page: FetchPage, semaphore: asyncio.Semaphore
    ) -> list[dict[str, Any]]:
        async with semaphore:
            items: list[dict[str, Any]] = []
            cursor: str | None = None
            try:
                for _ in range(self._max_pages):
                    page = await fetch_page(window, cursor)
                    data, cursor = _read_page(page, account)
                    items.extend(data)
                    if not cursor:
                        break
                else:
                    logger.warning(
                        f"Window {window.start.isoformat()} for account {account.id} still had more pages "
                        f"after {self._max_pages}, truncating"
                    )
            except PermanentAuthError:
                raise
            except RemoteAPIError as e:
                logger.warning(
                    f"Window {window.start.isoformat()}..{window.end.isoformat()} failed for account {account.id}: {e}",
                    extra=e.extra,
                )
                return []
            return items


def _read_page(page: Any, account: Account) -> tuple[list[dict[str, Any]], str | None]:
    if not isinstance(page, dict):
        raise TransientRemoteError(f"Malformed page for account {account.id}", account_id=account.id)
    data = page.get("data") or []
    cursor = page.get("nextCursor")
    if not isinstance(data, list) or (cursor is not None and not isinstance(cursor, str)):
        raise TransientRemoteError(f"Malformed page for account {account.id}", account_id=account.id)
    return data, cursor
