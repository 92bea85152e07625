#!/usr/bin/env python3
"""
Fansync management commands

Usage:
    python manage.py poll                         Run the inbox worker loop
    python manage.py sync-once                    Run a single poll tick over all eligible accounts
    python manage.py sync-account --account UUID  Sync one account now
    python manage.py list                         List accounts with their sync status
    python manage.py refresh-tokens [--within S]  Refresh tokens expiring within S seconds
"""

import argparse
import asyncio
import logging
import sys
from datetime import timedelta
from typing import Any, Coroutine

from dotenv import load_dotenv

load_dotenv(override=True)
from fansync.container import get_wire_container  # noqa: E402
from fansync.db import fastapi_sqlalchemy_context  # noqa: E402
from logging_config import setup_logging  # noqa: E402
from settings import settings  # noqa: E402
from workers.inbox_worker import main as run_worker  # noqa: E402

setup_logging()

logger = logging.getLogger(__name__)

container = get_wire_container()


async def sync_once() -> None:
    async with fastapi_sqlalchemy_context(multi_sessions=True):
        summary = await container.controllers.inbox_poller().tick()
    logger.info(f"Sync finished: {summary}")


async def sync_account(account_uuid: str) -> None:
    async with fastapi_sqlalchemy_context():
        account = await container.repos.account().get_by_uuid(account_uuid)
        if account is None:
            logger.error(f"Account {account_uuid} not found")
            sys.exit(1)
        result = await container.controllers.inbox_poller().sync_account(account)
    logger.info(f"Account {account_uuid}: {result.updated_conversations} conversations updated")


async def list_accounts() -> None:
    async with fastapi_sqlalchemy_context():
        accounts = (await container.repos.account().get_all()).all()
        if not accounts:
            logger.info("No accounts found in database.")
            return

        sync_state_repo = container.repos.sync_state()
        logger.info(f"Found {len(accounts)} accounts:")
        logger.info("-" * 100)
        for i, account in enumerate(accounts, 1):
            state = await sync_state_repo.get_by_account(account.id)
            sync_status = state.status.value if state else "never"
            reattach = " needs-reattach" if account.needs_reattach else ""
            logger.info(
                f"{i:3d}. {str(account.uuid):36} {account.username or '-':24} "
                f"{account.status.value:8} {sync_status:8}{reattach}"
            )
        logger.info("-" * 100)


async def refresh_tokens(within_seconds: int) -> None:
    async with fastapi_sqlalchemy_context():
        summary = await container.controllers.token_manager().refresh_expiring(timedelta(seconds=within_seconds))
    logger.info(f"Token refresh finished: {summary}")


async def _close(coro: Coroutine[Any, Any, None]) -> None:
    try:
        await coro
    finally:
        await container.controllers.http().close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Fansync management commands")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("poll", help="Run the inbox worker loop")
    subparsers.add_parser("sync-once", help="Run a single poll tick")
    sync_parser = subparsers.add_parser("sync-account", help="Sync one account now")
    sync_parser.add_argument("--account", required=True, help="Account UUID")
    subparsers.add_parser("list", help="List accounts")
    refresh_parser = subparsers.add_parser("refresh-tokens", help="Refresh expiring tokens")
    refresh_parser.add_argument(
        "--within", type=int, default=settings.poller.token_sweep_horizon, help="Horizon in seconds"
    )

    args = parser.parse_args()

    try:
        if args.command == "poll":
            asyncio.run(run_worker())
        elif args.command == "sync-once":
            asyncio.run(_close(sync_once()))
        elif args.command == "sync-account":
            asyncio.run(_close(sync_account(args.account)))
        elif args.command == "list":
            asyncio.run(list_accounts())
        elif args.command == "refresh-tokens":
            asyncio.run(_close(refresh_tokens(args.within)))

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception:
        logger.exception("Command failed")
        sys.exit(1)


if __name__ == "__main__":
    main()
