import os

os.environ.setdefault("FANSYNC_ENV", "test")

from contextlib import asynccontextmanager  # noqa: E402
from datetime import timedelta  # noqa: E402
from typing import Any, AsyncIterator  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
from cryptography.fernet import Fernet  # noqa: E402

from fansync.controllers.remote.executor import RequestExecutor  # noqa: E402
from fansync.models import Account, AccountStatus, Conversation, ConversationStatus  # noqa: E402
from fansync.utils.encryption import TokenCipher  # noqa: E402
from fansync.utils.timestamps import utcnow  # noqa: E402


@asynccontextmanager
async def _no_savepoint() -> AsyncIterator[None]:
    yield


@pytest.fixture
def fake_savepoint():
    return _no_savepoint


@pytest.fixture
def cipher() -> TokenCipher:
    return TokenCipher(Fernet.generate_key().decode())


@pytest.fixture
def executor() -> RequestExecutor:
    return RequestExecutor(max_retries=3, base_delay_ms=1000, sleep=AsyncMock(), jitter=lambda low, high: 0.0)


@pytest.fixture
def make_account(cipher: TokenCipher):
    def _make(account_id: int = 1, **overrides: Any) -> Account:
        values: dict[str, Any] = {
            "id": account_id,
            "organization_id": 1,
            "remote_user_id": f"creator-{account_id}",
            "username": f"creator{account_id}",
            "access_token_enc": cipher.encrypt(f"access-{account_id}"),
            "refresh_token_enc": cipher.encrypt(f"refresh-{account_id}"),
            "token_expires_at": utcnow() + timedelta(hours=1),
            "status": AccountStatus.active,
            "needs_reattach": False,
        }
        values.update(overrides)
        return Account(**values)

    return _make


@pytest.fixture
def make_conversation(make_account):
    def _make(conversation_id: int = 10, account: Account | None = None, **overrides: Any) -> Conversation:
        account = account or make_account()
        values: dict[str, Any] = {
            "id": conversation_id,
            "account_id": account.id,
            "account": account,
            "fan_id": 100,
            "remote_thread_id": "fan-1",
            "last_message_at": None,
            "status": ConversationStatus.open,
        }
        values.update(overrides)
        return Conversation(**values)

    return _make
