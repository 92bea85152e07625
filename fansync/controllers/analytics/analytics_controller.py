import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Hashable

from fansync.controllers.remote.client import FanvueClient
from fansync.controllers.sync.range_fetcher import ChunkedRangeFetcher, Window
from fansync.exceptions import InvalidDataError
from fansync.models import Account
from fansync.utils.timestamps import utcnow

ALL_TIME_DAYS = 18 * 30
_PERIOD_RE = re.compile(r"^(\d+)d$")
_CENT = Decimal("0.01")


def parse_period(period: str | None, now: datetime | None = None) -> tuple[datetime, datetime]:
    """Rolling ``[start, end)`` range ending now for ``7d``/``30d``/``90d``/``all`` style periods."""
    period = period or "30d"
    if period == "all":
        days = ALL_TIME_DAYS
    else:
        match = _PERIOD_RE.match(period)
        if match is None or not 0 < int(match.group(1)) <= ALL_TIME_DAYS:
            raise InvalidDataError(f"Invalid period: {period}")
        days = int(match.group(1))
    end = now or utcnow()
    return end - timedelta(days=days), end


def cents_to_major(cents: Any) -> Decimal:
    if cents is None or isinstance(cents, bool):
        return Decimal("0.00")
    return (Decimal(cents) / 100).quantize(_CENT)


def _transaction_key(transaction: dict[str, Any]) -> Hashable | None:
    return transaction.get("uuid") or transaction.get("id")


def _net_cents(transaction: dict[str, Any]) -> int:
    value = transaction.get("net")
    if value is None:
        value = transaction.get("gross")
    return int(value or 0)


@dataclass
class EarningsSummary:
    period: str
    start: datetime
    end: datetime
    total: Decimal
    gross: Decimal
    fees: Decimal
    breakdown: dict[str, Decimal]
    transactions: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class SubscriberSummary:
    period: str
    start: datetime
    end: datetime
    new_subscribers: int
    cancelled_subscribers: int
    net_change: int
    total: int | None
    data: list[dict[str, Any]] = field(default_factory=list)


class AnalyticsController:
    """Account analytics over arbitrarily long periods via the chunked range fetcher.

    Amounts stay in integer cents until the summary is built; the headline ``total``
    is net of platform fees.
    """

    def __init__(self, client: FanvueClient, range_fetcher: ChunkedRangeFetcher, page_limit: int = 100) -> None:
        self._client = client
        self._range_fetcher = range_fetcher
        self._page_limit = page_limit

    async def earnings(self, account: Account, period: str = "30d", source: str | None = None) -> EarningsSummary:
        start, end = parse_period(period)
        source_filter = source if source and source != "all" else None

        async def fetch_page(window: Window, cursor: str | None) -> dict[str, Any]:
            return await self._client.get_insights_earnings(
                account, window.start, window.end, cursor=cursor, limit=self._page_limit, source=source_filter
            )

        raw = await self._range_fetcher.fetch_range(account, start, end, fetch_page, dedupe_key=_transaction_key)
        if source_filter:
            raw = [tx for tx in raw if tx.get("source") == source_filter]

        breakdown_cents: dict[str, int] = defaultdict(int)
        for tx in raw:
            breakdown_cents[tx.get("source") or "other"] += _net_cents(tx)

        return EarningsSummary(
            period=period,
            start=start,
            end=end,
            total=cents_to_major(sum(_net_cents(tx) for tx in raw)),
            gross=cents_to_major(sum(int(tx.get("gross") or 0) for tx in raw)),
            fees=cents_to_major(sum(int(tx.get("fee") or 0) for tx in raw)),
            breakdown={key: cents_to_major(value) for key, value in breakdown_cents.items()},
            transactions=[
                {
                    **tx,
                    "gross": cents_to_major(tx.get("gross")),
                    "net": cents_to_major(tx.get("net")),
                    "fee": cents_to_major(tx.get("fee")),
                }
                for tx in raw
            ],
        )

    async def subscribers(self, account: Account, period: str = "30d") -> SubscriberSummary:
        start, end = parse_period(period)

        async def fetch_page(window: Window, cursor: str | None) -> dict[str, Any]:
            return await self._client.get_insights_subscribers(account, window.start, window.end, cursor=cursor)

        data = await self._range_fetcher.fetch_range(
            account, start, end, fetch_page, dedupe_key=lambda day: day.get("date")
        )
        data.sort(key=lambda day: str(day.get("date") or ""))

        new_subscribers = sum(int(day.get("newSubscribersCount") or 0) for day in data)
        cancelled = sum(int(day.get("cancelledSubscribersCount") or 0) for day in data)
        return SubscriberSummary(
            period=period,
            start=start,
            end=end,
            new_subscribers=new_subscribers,
            cancelled_subscribers=cancelled,
            net_change=new_subscribers - cancelled,
            total=data[-1].get("total") if data else None,
            data=data,
        )
