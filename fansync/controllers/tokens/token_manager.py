import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import partial
from typing import Any, NoReturn

from cryptography.fernet import InvalidToken
from fastapi_async_sqlalchemy import db

from fansync.controllers.remote.executor import RequestExecutor
from fansync.controllers.remote.http import HttpSessionProvider, request_json
from fansync.exceptions import (
    AuthExpiredError,
    PermanentAuthError,
    RateLimitedError,
    RemoteAPIError,
    RemoteRequestError,
    TransientRemoteError,
)
from fansync.models import Account
from fansync.repos.account import AccountRepo, StoredCredentials
from fansync.utils.encryption import TokenCipher
from fansync.utils.timestamps import utcnow

TOKEN_REFRESH_WINDOW = timedelta(minutes=5)
TERMINAL_OAUTH_ERRORS = frozenset({"invalid_grant", "invalid_client", "unauthorized_client"})


@dataclass
class RefreshSummary:
    refreshed: int = 0
    revoked: int = 0
    failed: int = 0


class TokenManager:
    """Owns the OAuth token lifecycle of connected accounts.

    Refreshes of the same account are single-flight: concurrent callers share one
    in-flight task and await it through ``asyncio.shield`` so a cancelled caller does
    not abort a refresh whose rotated refresh token still has to be stored.
    """

    def __init__(
        self,
        account_repo: AccountRepo,
        executor: RequestExecutor,
        http: HttpSessionProvider,
        cipher: TokenCipher,
        token_url: str,
        client_id: str,
        client_secret: str,
        refresh_window: timedelta = TOKEN_REFRESH_WINDOW,
    ) -> None:
        self._logger = logging.getLogger(__name__)
        self._account_repo = account_repo
        self._executor = executor
        self._http = http
        self._cipher = cipher
        self._token_url = token_url
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_window = refresh_window
        self._inflight: dict[int, asyncio.Task[str]] = {}

    def _expires_soon(self, expires_at: datetime | None) -> bool:
        if expires_at is None:
            return True
        return expires_at - utcnow() < self._refresh_window

    async def get_valid_token(self, account: Account) -> str:
        """Plaintext access token for the account, refreshed first when it expires within the window."""
        if account.access_token_enc is None or account.refresh_token_enc is None:
            raise PermanentAuthError(f"Account {account.id} has no stored credentials", account_id=account.id)

        if self._expires_soon(account.token_expires_at):
            return await self.refresh_token(account)

        try:
            return self._cipher.decrypt(account.access_token_enc)
        except InvalidToken:
            self._logger.warning(f"Stored access token for account {account.id} is unreadable, refreshing")
            return await self.refresh_token(account)

    async def refresh_token(self, account: Account) -> str:
        """Exchange the refresh token for a new token pair and persist both tokens."""
        task = self._inflight.get(account.id)
        if task is None:
            task = asyncio.create_task(self._refresh(account))
            self._inflight[account.id] = task
            task.add_done_callback(partial(self._forget, account.id))
        return await asyncio.shield(task)

    def _forget(self, account_id: int, task: "asyncio.Task[str]") -> None:
        if self._inflight.get(account_id) is task:
            self._inflight.pop(account_id, None)
        # Retrieve the exception so an unawaited failure is not reported as never retrieved
        if not task.cancelled():
            task.exception()

    async def _refresh(self, account: Account) -> str:
        # Runs in a session of its own, never the caller's
        async with db():
            return await self._refresh_in_session(account)

    async def _refresh_in_session(self, account: Account) -> str:
        credentials = await self._account_repo.get_credentials(account.id)
        if credentials is None or credentials.needs_reattach or credentials.refresh_token_enc is None:
            raise PermanentAuthError(f"Account {account.id} needs to be reconnected", account_id=account.id)

        adopted = self._adopt_rotated(account, credentials)
        if adopted is not None:
            return adopted

        try:
            refresh_token = self._cipher.decrypt(credentials.refresh_token_enc)
        except InvalidToken as e:
            await self._revoke(account, "stored refresh token is unreadable", e)

        try:
            body = await self._executor.with_retry(lambda: self._request_tokens(refresh_token))
        except AuthExpiredError as e:
            await self._revoke(account, f"token endpoint answered HTTP {e.remote_status}", e)
        except RemoteRequestError as e:
            if e.oauth_error in TERMINAL_OAUTH_ERRORS:
                await self._revoke(account, f"token endpoint answered {e.oauth_error}", e)
            raise
        except RateLimitedError as e:
            raise TransientRemoteError(
                f"Token refresh for account {account.id} rate limited", remote_status=e.remote_status
            ) from e

        access_token, new_refresh_token, expires_at = self._parse_token_response(account, body, refresh_token)
        await self._account_repo.store_tokens(
            account,
            access_token_enc=self._cipher.encrypt(access_token),
            refresh_token_enc=self._cipher.encrypt(new_refresh_token),
            token_expires_at=expires_at,
        )
        await self._account_repo.commit()
        self._logger.info(f"Refreshed token for account {account.id}, expires at {expires_at.isoformat()}")
        return access_token

    def _adopt_rotated(self, account: Account, credentials: StoredCredentials) -> str | None:
        """Use a token pair another process stored since this account was loaded."""
        if credentials.refresh_token_enc == account.refresh_token_enc or credentials.access_token_enc is None:
            return None
        if self._expires_soon(credentials.token_expires_at):
            return None
        try:
            access_token = self._cipher.decrypt(credentials.access_token_enc)
        except InvalidToken:
            return None
        self._account_repo.apply_credentials(account, credentials)
        self._logger.info(f"Adopted token refreshed elsewhere for account {account.id}")
        return access_token

    async def _request_tokens(self, refresh_token: str) -> Any:
        session = await self._http.get_session()
        return await request_json(
            session,
            "POST",
            self._token_url,
            json_body={
                "grant_type": "refresh_token",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "refresh_token": refresh_token,
            },
        )

    def _parse_token_response(self, account: Account, body: Any, current_refresh_token: str) -> tuple[str, str, datetime]:
        if not isinstance(body, dict):
            raise TransientRemoteError(f"Malformed token response for account {account.id}", account_id=account.id)

        access_token = body.get("access_token")
        refresh_token = body.get("refresh_token") or current_refresh_token
        expires_in = body.get("expires_in")
        if not isinstance(access_token, str) or not access_token or not isinstance(refresh_token, str):
            raise TransientRemoteError(f"Token response for account {account.id} lacks tokens", account_id=account.id)
        if isinstance(expires_in, bool) or not isinstance(expires_in, (int, float)) or expires_in <= 0:
            raise TransientRemoteError(
                f"Token response for account {account.id} has invalid expires_in", account_id=account.id
            )
        return access_token, refresh_token, utcnow() + timedelta(seconds=expires_in)

    async def _revoke(self, account: Account, reason: str, cause: Exception) -> NoReturn:
        await self._account_repo.mark_needs_reattach(account)
        await self._account_repo.commit()
        self._logger.error(f"Token refresh for account {account.id} rejected ({reason}); account needs reconnecting")
        remote_status = cause.remote_status if isinstance(cause, RemoteAPIError) else None
        raise PermanentAuthError(
            f"Account {account.id} needs to be reconnected: {reason}",
            remote_status=remote_status,
            account_id=account.id,
        ) from cause

    async def refresh_expiring(self, within: timedelta) -> RefreshSummary:
        """Refresh every eligible account whose token expires within the horizon."""
        summary = RefreshSummary()
        accounts = list(await self._account_repo.get_expiring(utcnow() + within))
        for account in accounts:
            try:
                await self.refresh_token(account)
                summary.refreshed += 1
            except PermanentAuthError:
                summary.revoked += 1
            except RemoteAPIError as e:
                summary.failed += 1
                self._logger.warning(f"Proactive refresh failed for account {account.id}: {e}", extra=e.extra)

        self._logger.info(
            f"Token sweep finished: {summary.refreshed} refreshed, {summary.revoked} revoked, {summary.failed} failed"
        )
        return summary
