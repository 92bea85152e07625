import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from fansync.controllers.sync.range_fetcher import ChunkedRangeFetcher, Window, build_windows
from fansync.exceptions import PermanentAuthError, TransientRemoteError

JAN_1 = datetime(2026, 1, 1, tzinfo=UTC)
MAR_15 = datetime(2026, 3, 15, tzinfo=UTC)


def two_page_fetch(calls):
    async def fetch_page(window, cursor):
        calls.append((window, cursor))
        day = window.start.date().isoformat()
        if cursor is None:
            return {"data": [{"uuid": f"{day}-1"}], "nextCursor": f"{day}-next"}
        return {"data": [{"uuid": f"{day}-2"}], "nextCursor": None}

    return fetch_page


def test_windows_cover_range_without_gaps():
    windows = build_windows(JAN_1, MAR_15)

    assert [w.span for w in windows] == [timedelta(days=28), timedelta(days=28), timedelta(days=17)]
    assert windows[0].start == JAN_1
    assert windows[-1].end == MAR_15
    for previous, current in zip(windows, windows[1:]):
        assert previous.end == current.start


@pytest.mark.parametrize("end", [JAN_1, JAN_1 - timedelta(days=3)])
def test_empty_or_reversed_range_is_one_zero_width_window(end):
    assert build_windows(JAN_1, end) == [Window(JAN_1, JAN_1)]


def test_window_span_must_be_positive():
    with pytest.raises(ValueError):
        build_windows(JAN_1, MAR_15, max_span=timedelta(0))


@pytest.mark.asyncio
async def test_fetch_range_follows_cursors_in_every_window(make_account):
    calls = []
    fetcher = ChunkedRangeFetcher()

    items = await fetcher.fetch_range(make_account(), JAN_1, MAR_15, two_page_fetch(calls))

    assert len(calls) == 6
    assert sorted({window.start for window, _ in calls}) == [
        JAN_1,
        datetime(2026, 1, 29, tzinfo=UTC),
        datetime(2026, 2, 26, tzinfo=UTC),
    ]
    assert [cursor for _, cursor in calls].count(None) == 3
    assert [item["uuid"] for item in items] == [
        "2026-01-01-1",
        "2026-01-01-2",
        "2026-01-29-1",
        "2026-01-29-2",
        "2026-02-26-1",
        "2026-02-26-2",
    ]


@pytest.mark.asyncio
async def test_failed_window_does_not_affect_siblings(make_account):
    calls = []
    succeed = two_page_fetch(calls)

    async def fetch_page(window, cursor):
        if window.start == datetime(2026, 1, 29, tzinfo=UTC):
            raise TransientRemoteError("unavailable", remote_status=503)
        return await succeed(window, cursor)

    items = await ChunkedRangeFetcher().fetch_range(make_account(), JAN_1, MAR_15, fetch_page)

    assert [item["uuid"] for item in items] == ["2026-01-01-1", "2026-01-01-2", "2026-02-26-1", "2026-02-26-2"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "malformed",
    [["not", "a", "page"], {"data": "not-a-list"}, {"data": [], "nextCursor": 7}],
)
async def test_malformed_page_fails_only_its_window(make_account, malformed):
    calls = []
    succeed = two_page_fetch(calls)

    async def fetch_page(window, cursor):
        if window.start == datetime(2026, 1, 29, tzinfo=UTC):
            return malformed
        return await succeed(window, cursor)

    items = await ChunkedRangeFetcher().fetch_range(make_account(), JAN_1, MAR_15, fetch_page)

    assert [item["uuid"] for item in items] == ["2026-01-01-1", "2026-01-01-2", "2026-02-26-1", "2026-02-26-2"]


@pytest.mark.asyncio
async def test_revoked_authorization_aborts_the_fetch(make_account):
    async def fetch_page(window, cursor):
        raise PermanentAuthError("revoked")

    with pytest.raises(PermanentAuthError):
        await ChunkedRangeFetcher().fetch_range(make_account(), JAN_1, MAR_15, fetch_page)


@pytest.mark.asyncio
async def test_revoked_authorization_cancels_sibling_windows(make_account):
    cancelled = []

    async def fetch_page(window, cursor):
        if window.start == JAN_1:
            await asyncio.sleep(0)
            raise PermanentAuthError("revoked")
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            cancelled.append(window.start)
            raise

    with pytest.raises(PermanentAuthError):
        await ChunkedRangeFetcher().fetch_range(make_account(), JAN_1, MAR_15, fetch_page)

    assert sorted(cancelled) == [datetime(2026, 1, 29, tzinfo=UTC), datetime(2026, 2, 26, tzinfo=UTC)]


@pytest.mark.asyncio
async def test_page_cap_per_window(make_account):
    calls = []

    async def endless(window, cursor):
        calls.append(cursor)
        return {"data": [{"uuid": f"item-{len(calls)}"}], "nextCursor": f"cursor-{len(calls)}"}

    items = await ChunkedRangeFetcher(max_pages=3).fetch_range(make_account(), JAN_1, JAN_1 + timedelta(days=1), endless)

    assert calls == [None, "cursor-1", "cursor-2"]
    assert len(items) == 3


@pytest.mark.asyncio
async def test_duplicates_across_windows_are_dropped(make_account):
    async def overlapping(window, cursor):
        return {"data": [{"uuid": "shared"}, {"uuid": None, "window": window.start}], "nextCursor": None}

    items = await ChunkedRangeFetcher().fetch_range(
        make_account(), JAN_1, MAR_15, overlapping, dedupe_key=lambda item: item["uuid"]
    )

    assert [item["uuid"] for item in items] == ["shared", None, None, None]


@pytest.mark.asyncio
async def test_window_concurrency_is_bounded(make_account):
    running = 0
    peak = 0

    async def fetch_page(window, cursor):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1
        return {"data": [], "nextCursor": None}

    await ChunkedRangeFetcher(max_span_days=7, concurrency=3).fetch_range(
        make_account(), JAN_1, MAR_15, fetch_page
    )

    assert peak == 3


@pytest.mark.asyncio
async def test_item_values_are_untouched(make_account):
    async def fetch_page(window, cursor):
        return {"data": [{"uuid": "tx", "gross": 1999, "net": 1599}], "nextCursor": None}

    items = await ChunkedRangeFetcher().fetch_range(make_account(), JAN_1, JAN_1 + timedelta(days=2), fetch_page)

    assert items == [{"uuid": "tx", "gross": 1999, "net": 1599}]
