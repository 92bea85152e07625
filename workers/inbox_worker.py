import asyncio
import logging
import signal
from datetime import timedelta
from typing import Any, Coroutine

from dotenv import load_dotenv

load_dotenv("./.env", override=True)

from fansync.container import ApplicationContainer, get_wire_container  # noqa: E402
from fansync.controllers.sync.poller import InboxPoller, PollSummary  # noqa: E402
from fansync.controllers.tokens.token_manager import RefreshSummary, TokenManager  # noqa: E402
from fansync.db import fastapi_sqlalchemy_context  # noqa: E402
from logging_config import setup_logging  # noqa: E402
from settings import settings  # noqa: E402

logger = logging.getLogger(__name__)


class InboxWorker:
    """Runs the inbox poller on a fixed interval and the token sweep on a slower one.

    Each job runs in its own task so every run gets a fresh database session.
    """

    def __init__(
        self,
        inbox_poller: InboxPoller,
        token_manager: TokenManager,
        interval: float,
        token_sweep_interval: float,
        token_sweep_horizon: timedelta,
    ) -> None:
        self._inbox_poller = inbox_poller
        self._token_manager = token_manager
        self._interval = interval
        self._token_sweep_interval = token_sweep_interval
        self._token_sweep_horizon = token_sweep_horizon
        self._shutdown_event = asyncio.Event()
        self._loop_time_of_last_sweep: float | None = None

    def shutdown(self) -> None:
        logger.info("Received shutdown signal")
        self._shutdown_event.set()

    async def run(self) -> None:
        logger.info(f"Inbox worker started, polling every {self._interval}s")
        loop = asyncio.get_running_loop()

        while not self._shutdown_event.is_set():
            if self._sweep_due(loop.time()):
                self._loop_time_of_last_sweep = loop.time()
                await self._run_job("token sweep", self.sweep_tokens())

            await self._run_job("poll tick", self.tick())

            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Inbox worker stopped")

    def _sweep_due(self, now: float) -> bool:
        if self._loop_time_of_last_sweep is None:
            return True
        return now - self._loop_time_of_last_sweep >= self._token_sweep_interval

    async def _run_job(self, name: str, job: Coroutine[Any, Any, Any]) -> None:
        try:
            await asyncio.create_task(job)
        except Exception:
            logger.exception(f"Inbox worker {name} failed")

    async def tick(self) -> PollSummary | None:
        return await self._inbox_poller.tick()

    async def sweep_tokens(self) -> RefreshSummary:
        return await self._token_manager.refresh_expiring(self._token_sweep_horizon)


def build_worker(container: ApplicationContainer) -> InboxWorker:
    return InboxWorker(
        inbox_poller=container.controllers.inbox_poller(),
        token_manager=container.controllers.token_manager(),
        interval=settings.poller.interval,
        token_sweep_interval=settings.poller.token_sweep_interval,
        token_sweep_horizon=timedelta(seconds=settings.poller.token_sweep_horizon),
    )


async def main() -> None:
    container = get_wire_container()
    worker = build_worker(container)

    loop = asyncio.get_running_loop()
    for sig in [signal.SIGINT, signal.SIGTERM]:
        loop.add_signal_handler(sig, worker.shutdown)

    try:
        async with fastapi_sqlalchemy_context(multi_sessions=True):
            await worker.run()
    finally:
        await container.controllers.http().close()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())
