import asyncio
from datetime import timedelta
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, Mock

import pytest

from fansync.controllers.remote.http import HttpSessionProvider
from fansync.controllers.tokens.token_manager import TokenManager
from fansync.exceptions import (
    AuthExpiredError,
    PermanentAuthError,
    RemoteRequestError,
    TransientRemoteError,
)
from fansync.models import AccountStatus
from fansync.repos.account import AccountRepo, StoredCredentials
from fansync.utils.timestamps import utcnow

TOKEN_RESPONSE = {"access_token": "new-access", "refresh_token": "new-refresh", "expires_in": 3600}


def stored(account):
    return StoredCredentials(
        access_token_enc=account.access_token_enc,
        refresh_token_enc=account.refresh_token_enc,
        token_expires_at=account.token_expires_at,
        status=account.status,
        needs_reattach=account.needs_reattach,
    )


def revoke(account):
    account.status = AccountStatus.inactive
    account.needs_reattach = True
    account.access_token_enc = None
    account.refresh_token_enc = None


@pytest.fixture(autouse=True)
def sessions(monkeypatch):
    events = []

    @asynccontextmanager
    async def session():
        events.append("open")
        try:
            yield
        finally:
            events.append("close")

    monkeypatch.setattr("fansync.controllers.tokens.token_manager.db", session)
    return events


@pytest.fixture
def account_repo():
    repo = Mock(spec=AccountRepo)
    repo.mark_needs_reattach.side_effect = revoke
    return repo


@pytest.fixture
def token_request(monkeypatch):
    request = AsyncMock(return_value=TOKEN_RESPONSE)
    monkeypatch.setattr("fansync.controllers.tokens.token_manager.request_json", request)
    return request


@pytest.fixture
def manager(account_repo, executor, cipher, token_request):
    return TokenManager(
        account_repo=account_repo,
        executor=executor,
        http=Mock(spec=HttpSessionProvider),
        cipher=cipher,
        token_url="https://auth.fanvue.test/oauth/token",
        client_id="client",
        client_secret="secret",
    )


@pytest.fixture
def expiring_account(make_account, account_repo):
    account = make_account(token_expires_at=utcnow() + timedelta(minutes=2))
    account_repo.get_credentials.return_value = stored(account)
    return account


@pytest.mark.asyncio
async def test_valid_token_is_returned_without_refresh(manager, make_account, token_request):
    account = make_account()

    assert await manager.get_valid_token(account) == "access-1"
    token_request.assert_not_awaited()


@pytest.mark.asyncio
async def test_token_inside_refresh_window_is_refreshed(manager, expiring_account, account_repo, cipher, token_request):
    assert await manager.get_valid_token(expiring_account) == "new-access"

    body = token_request.await_args.kwargs["json_body"]
    assert body["grant_type"] == "refresh_token"
    assert body["refresh_token"] == "refresh-1"

    kwargs = account_repo.store_tokens.await_args.kwargs
    assert cipher.decrypt(kwargs["access_token_enc"]) == "new-access"
    assert cipher.decrypt(kwargs["refresh_token_enc"]) == "new-refresh"
    assert kwargs["token_expires_at"] > utcnow() + timedelta(minutes=59)
    account_repo.commit.assert_awaited()


@pytest.mark.asyncio
async def test_refresh_keeps_refresh_token_when_not_rotated(manager, expiring_account, account_repo, cipher, token_request):
    token_request.return_value = {"access_token": "new-access", "expires_in": 600}

    await manager.refresh_token(expiring_account)

    assert cipher.decrypt(account_repo.store_tokens.await_args.kwargs["refresh_token_enc"]) == "refresh-1"


@pytest.mark.asyncio
async def test_missing_credentials_are_permanent(manager, make_account):
    account = make_account(access_token_enc=None, refresh_token_enc=None)

    with pytest.raises(PermanentAuthError):
        await manager.get_valid_token(account)


@pytest.mark.asyncio
async def test_forbidden_refresh_marks_account_for_reattach(manager, expiring_account, account_repo, token_request):
    token_request.side_effect = AuthExpiredError("forbidden", remote_status=403)

    with pytest.raises(PermanentAuthError) as exc_info:
        await manager.refresh_token(expiring_account)

    assert exc_info.value.remote_status == 403
    account_repo.mark_needs_reattach.assert_awaited_once_with(expiring_account)
    account_repo.store_tokens.assert_not_awaited()
    assert expiring_account.status == AccountStatus.inactive
    assert expiring_account.needs_reattach
    assert not expiring_account.is_eligible


@pytest.mark.asyncio
async def test_invalid_grant_marks_account_for_reattach(manager, expiring_account, account_repo, token_request):
    token_request.side_effect = RemoteRequestError("bad grant", remote_status=400, oauth_error="invalid_grant")

    with pytest.raises(PermanentAuthError):
        await manager.refresh_token(expiring_account)

    account_repo.mark_needs_reattach.assert_awaited_once()


@pytest.mark.asyncio
async def test_other_bad_request_propagates(manager, expiring_account, account_repo, token_request):
    token_request.side_effect = RemoteRequestError("bad request", remote_status=400, oauth_error="invalid_request")

    with pytest.raises(RemoteRequestError):
        await manager.refresh_token(expiring_account)

    account_repo.mark_needs_reattach.assert_not_awaited()


@pytest.mark.asyncio
async def test_transient_failure_keeps_account(manager, expiring_account, account_repo, token_request):
    token_request.side_effect = TransientRemoteError("unavailable", remote_status=503)

    with pytest.raises(TransientRemoteError):
        await manager.refresh_token(expiring_account)

    account_repo.mark_needs_reattach.assert_not_awaited()
    account_repo.store_tokens.assert_not_awaited()
    assert expiring_account.is_eligible


@pytest.mark.asyncio
async def test_malformed_token_response_is_transient(manager, expiring_account, account_repo, token_request):
    token_request.return_value = {"access_token": "new-access", "expires_in": "soon"}

    with pytest.raises(TransientRemoteError):
        await manager.refresh_token(expiring_account)

    account_repo.store_tokens.assert_not_awaited()


@pytest.mark.asyncio
async def test_concurrent_refreshes_share_one_request(manager, expiring_account, token_request):
    release = asyncio.Event()

    async def slow_token_request(*args, **kwargs):
        await release.wait()
        return TOKEN_RESPONSE

    token_request.side_effect = slow_token_request

    callers = [asyncio.create_task(manager.refresh_token(expiring_account)) for _ in range(3)]
    await asyncio.sleep(0)
    release.set()

    assert await asyncio.gather(*callers) == ["new-access"] * 3
    assert token_request.await_count == 1


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_abort_refresh(manager, expiring_account, account_repo, token_request):
    release = asyncio.Event()

    async def slow_token_request(*args, **kwargs):
        await release.wait()
        return TOKEN_RESPONSE

    token_request.side_effect = slow_token_request

    first = asyncio.create_task(manager.refresh_token(expiring_account))
    await asyncio.sleep(0)
    second = asyncio.create_task(manager.refresh_token(expiring_account))
    await asyncio.sleep(0)

    first.cancel()
    release.set()

    assert await second == "new-access"
    assert first.cancelled()
    account_repo.store_tokens.assert_awaited_once()


@pytest.mark.asyncio
async def test_adopts_token_rotated_elsewhere(manager, expiring_account, account_repo, cipher, token_request):
    account_repo.get_credentials.return_value = StoredCredentials(
        access_token_enc=cipher.encrypt("rotated-access"),
        refresh_token_enc=cipher.encrypt("rotated-refresh"),
        token_expires_at=utcnow() + timedelta(hours=1),
        status=AccountStatus.active,
        needs_reattach=False,
    )

    assert await manager.refresh_token(expiring_account) == "rotated-access"

    token_request.assert_not_awaited()
    account_repo.apply_credentials.assert_called_once()


@pytest.mark.asyncio
async def test_account_revoked_elsewhere_is_not_refreshed(manager, expiring_account, account_repo, token_request):
    account_repo.get_credentials.return_value = stored(expiring_account)._replace(
        needs_reattach=True, refresh_token_enc=None
    )

    with pytest.raises(PermanentAuthError):
        await manager.refresh_token(expiring_account)

    token_request.assert_not_awaited()


@pytest.mark.asyncio
async def test_refresh_expiring_isolates_failures(manager, make_account, account_repo):
    accounts = [make_account(1), make_account(2), make_account(3)]
    account_repo.get_expiring.return_value = accounts
    manager.refresh_token = AsyncMock(
        side_effect=["token", PermanentAuthError("revoked"), TransientRemoteError("down", remote_status=503)]
    )

    summary = await manager.refresh_expiring(timedelta(hours=2))

    assert (summary.refreshed, summary.revoked, summary.failed) == (1, 1, 1)
    assert manager.refresh_token.await_count == 3


@pytest.mark.asyncio
async def test_refresh_commits_in_its_own_session(manager, expiring_account, account_repo, sessions):
    account_repo.commit.side_effect = lambda: sessions.append("commit")

    await manager.refresh_token(expiring_account)

    assert sessions == ["open", "commit", "close"]


@pytest.mark.asyncio
async def test_revocation_commits_in_its_own_session(manager, expiring_account, account_repo, token_request, sessions):
    account_repo.commit.side_effect = lambda: sessions.append("commit")
    token_request.side_effect = AuthExpiredError("forbidden", remote_status=403)

    with pytest.raises(PermanentAuthError):
        await manager.refresh_token(expiring_account)

    assert sessions == ["open", "commit", "close"]
