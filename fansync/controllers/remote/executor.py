import asyncio
import logging
import math
import random
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from http import HTTPStatus
from typing import Awaitable, Callable, TypeVar

from fansync.exceptions import RemoteAPIError
from fansync.utils.timestamps import utcnow

T = TypeVar("T")

MAX_JITTER_MS = 500.0


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """Milliseconds to wait according to a ``Retry-After`` header value.

    Accepts delta-seconds or an HTTP-date; returns ``None`` when the value is absent
    or unparseable.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None

    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        if not math.isfinite(seconds):
            return None
        return max(0.0, seconds * 1000)

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at is None:
        return None
    if retry_at.tzinfo is None:
        # RFC 5322 "-0000" parses as naive
        retry_at = retry_at.replace(tzinfo=UTC)
    delta = retry_at - (now or utcnow())
    return max(0.0, delta.total_seconds() * 1000)


class RequestExecutor:
    """Runs remote calls, retrying only rate-limited (HTTP 429) failures.

    The wait before retry ``n`` (0-based) is the server's ``Retry-After`` when it can be
    parsed, otherwise ``base_delay_ms * 2**n`` plus a jitter bounded by
    ``min(500, base_delay_ms * 2**n)`` so successive waits never shrink. Every other
    error, and the last 429 once retries are exhausted, propagates unchanged.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay_ms: int = 1000,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self._logger = logging.getLogger(__name__)
        self._max_retries = max_retries
        self._base_delay_ms = base_delay_ms
        self._sleep = sleep
        self._jitter = jitter

    def backoff_ms(self, attempt: int, base_delay_ms: int | None = None) -> float:
        base = (base_delay_ms if base_delay_ms is not None else self._base_delay_ms) * 2**attempt
        return base + self._jitter(0.0, min(MAX_JITTER_MS, float(base)))

    async def with_retry(
        self,
        call: Callable[[], Awaitable[T]],
        max_retries: int | None = None,
        base_delay_ms: int | None = None,
    ) -> T:
        retries = self._max_retries if max_retries is None else max_retries
        attempt = 0
        while True:
            try:
                return await call()
            except RemoteAPIError as e:
                if e.remote_status != HTTPStatus.TOO_MANY_REQUESTS or attempt >= retries:
                    raise

                wait_ms = parse_retry_after(e.retry_after)
                if wait_ms is None:
                    wait_ms = self.backoff_ms(attempt, base_delay_ms)

                self._logger.warning(
                    f"Rate limited (attempt {attempt + 1}/{retries}), waiting {round(wait_ms)}ms",
                    extra=e.extra,
                )
                await self._sleep(wait_ms / 1000)
                attempt += 1
