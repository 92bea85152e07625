import asyncio
from datetime import timedelta
from unittest.mock import Mock

import pytest

from fansync.controllers.sync.poller import InboxPoller, PollSummary
from fansync.controllers.tokens.token_manager import RefreshSummary, TokenManager
from workers.inbox_worker import InboxWorker


@pytest.fixture
def inbox_poller():
    poller = Mock(spec=InboxPoller)
    poller.tick.return_value = PollSummary()
    return poller


@pytest.fixture
def token_manager():
    manager = Mock(spec=TokenManager)
    manager.refresh_expiring.return_value = RefreshSummary()
    return manager


@pytest.fixture
def worker(inbox_poller, token_manager):
    return InboxWorker(
        inbox_poller, token_manager, interval=0.01, token_sweep_interval=3600, token_sweep_horizon=timedelta(hours=2)
    )


@pytest.mark.asyncio
async def test_worker_polls_until_shutdown(worker, inbox_poller, token_manager):
    task = asyncio.create_task(worker.run())
    await asyncio.sleep(0.05)
    worker.shutdown()
    await asyncio.wait_for(task, timeout=1)

    assert inbox_poller.tick.await_count >= 2
    token_manager.refresh_expiring.assert_awaited_once_with(timedelta(hours=2))


@pytest.mark.asyncio
async def test_failing_job_does_not_stop_the_worker(worker, inbox_poller, token_manager):
    token_manager.refresh_expiring.side_effect = RuntimeError("database unavailable")
    inbox_poller.tick.side_effect = [RuntimeError("boom"), PollSummary(), PollSummary(), PollSummary()]

    task = asyncio.create_task(worker.run())
    await asyncio.sleep(0.03)
    worker.shutdown()
    await asyncio.wait_for(task, timeout=1)

    assert inbox_poller.tick.await_count >= 2


def test_sweep_schedule(worker):
    assert worker._sweep_due(0.0)

    worker._loop_time_of_last_sweep = 100.0
    assert not worker._sweep_due(100.0 + 3599)
    assert worker._sweep_due(100.0 + 3600)
