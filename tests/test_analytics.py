from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import Mock

import pytest

from fansync.controllers.analytics.analytics_controller import AnalyticsController, cents_to_major, parse_period
from fansync.controllers.remote.client import FanvueClient
from fansync.controllers.sync.range_fetcher import ChunkedRangeFetcher
from fansync.exceptions import InvalidDataError

NOW = datetime(2026, 3, 15, tzinfo=UTC)


@pytest.mark.parametrize("period,days", [("7d", 7), ("30d", 30), ("90d", 90), ("all", 540), (None, 30)])
def test_parse_period(period, days):
    start, end = parse_period(period, now=NOW)

    assert end == NOW
    assert end - start == timedelta(days=days)


@pytest.mark.parametrize("period", ["0d", "541d", "30", "1w", "-5d", "abc"])
def test_invalid_period(period):
    with pytest.raises(InvalidDataError):
        parse_period(period, now=NOW)


def test_cents_to_major():
    assert cents_to_major(1999) == Decimal("19.99")
    assert cents_to_major(5) == Decimal("0.05")
    assert cents_to_major(None) == Decimal("0.00")
    assert cents_to_major(True) == Decimal("0.00")


@pytest.fixture
def client():
    return Mock(spec=FanvueClient)


@pytest.fixture
def controller(client):
    return AnalyticsController(client, ChunkedRangeFetcher(), page_limit=50)


@pytest.mark.asyncio
async def test_earnings_summary(controller, client, make_account):
    transactions = [
        {"uuid": "tx-1", "source": "subscription", "gross": 1000, "net": 800, "fee": 200},
        {"uuid": "tx-2", "source": "tip", "gross": 500, "net": 400, "fee": 100},
        {"uuid": "tx-3", "source": "tip", "gross": 250},
    ]

    async def earnings(account, start, end, cursor=None, limit=None, source=None):
        if start == end - timedelta(days=2):
            return {"data": transactions, "nextCursor": None}
        return {"data": [transactions[0]], "nextCursor": None}

    client.get_insights_earnings.side_effect = earnings

    summary = await controller.earnings(make_account(), period="30d")

    assert summary.total == Decimal("14.50")
    assert summary.gross == Decimal("17.50")
    assert summary.fees == Decimal("3.00")
    assert summary.breakdown == {"subscription": Decimal("8.00"), "tip": Decimal("6.50")}
    assert [tx["uuid"] for tx in summary.transactions] == ["tx-1", "tx-2", "tx-3"]
    assert summary.transactions[0]["net"] == Decimal("8.00")
    assert client.get_insights_earnings.await_args.kwargs["limit"] == 50


@pytest.mark.asyncio
async def test_earnings_source_filter(controller, client, make_account):
    client.get_insights_earnings.return_value = {
        "data": [
            {"uuid": "tx-1", "source": "tip", "gross": 500, "net": 400},
            {"uuid": "tx-2", "source": "message", "gross": 900, "net": 720},
        ],
        "nextCursor": None,
    }

    summary = await controller.earnings(make_account(), period="7d", source="tip")

    assert summary.total == Decimal("4.00")
    assert client.get_insights_earnings.await_args.kwargs["source"] == "tip"


@pytest.mark.asyncio
async def test_subscriber_growth(controller, client, make_account):
    client.get_insights_subscribers.return_value = {
        "data": [
            {"date": "2026-03-02", "newSubscribersCount": 4, "cancelledSubscribersCount": 1, "total": 120},
            {"date": "2026-03-01", "newSubscribersCount": 3, "cancelledSubscribersCount": 2, "total": 117},
        ]
    }

    summary = await controller.subscribers(make_account(), period="60d")

    assert client.get_insights_subscribers.await_count == 3
    assert [day["date"] for day in summary.data] == ["2026-03-01", "2026-03-02"]
    assert (summary.new_subscribers, summary.cancelled_subscribers, summary.net_change) == (7, 3, 4)
    assert summary.total == 120


@pytest.mark.asyncio
async def test_subscribers_without_data(controller, client, make_account):
    client.get_insights_subscribers.return_value = {"data": []}

    summary = await controller.subscribers(make_account(), period="7d")

    assert summary.total is None
    assert summary.net_change == 0


@pytest.mark.asyncio
async def test_subscribers_follow_cursor(controller, client, make_account):
    async def subscribers(account, start, end, cursor=None):
        if cursor is None:
            return {"data": [{"date": "2026-03-01", "newSubscribersCount": 2}], "nextCursor": "page-2"}
        return {"data": [{"date": "2026-03-02", "newSubscribersCount": 3}], "nextCursor": None}

    client.get_insights_subscribers.side_effect = subscribers

    summary = await controller.subscribers(make_account(), period="7d")

    assert [call.kwargs["cursor"] for call in client.get_insights_subscribers.await_args_list] == [None, "page-2"]
    assert summary.new_subscribers == 5
