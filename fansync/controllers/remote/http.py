import asyncio
import json
import logging
from http import HTTPStatus
from typing import Any

import aiohttp

from fansync.exceptions import AuthExpiredError, RateLimitedError, RemoteRequestError, TransientRemoteError

logger = logging.getLogger(__name__)


class HttpSessionProvider:
    """Lazily created, shared aiohttp session."""

    def __init__(self, timeout: int) -> None:
        self._timeout = timeout
        self._http_session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()

    async def get_session(self) -> aiohttp.ClientSession:
        async with self._session_lock:
            if self._http_session is None or self._http_session.closed:
                timeout = aiohttp.ClientTimeout(total=self._timeout)
                self._http_session = aiohttp.ClientSession(timeout=timeout)
            return self._http_session

    async def close(self) -> None:
        """Close HTTP session."""
        async with self._session_lock:
            if self._http_session:
                await self._http_session.close()
                self._http_session = None


def _oauth_error(body: Any) -> str | None:
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, str):
            return error
    return None


def _error_description(body: Any, fallback: str) -> str:
    if isinstance(body, dict):
        for key in ("error_description", "message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return fallback


async def request_json(
    session: aiohttp.ClientSession,
    method: str,
    url: str,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
    json_body: dict[str, Any] | None = None,
) -> Any:
    """Perform one HTTP request and decode the JSON answer.

    Every failure is translated into a ``RemoteAPIError`` subclass carrying the
    platform's HTTP status:

    * 429 -> ``RateLimitedError`` (with the raw ``Retry-After`` value)
    * 401/403 -> ``AuthExpiredError``
    * 5xx, timeouts, connection errors, undecodable bodies -> ``TransientRemoteError``
    * any other 4xx -> ``RemoteRequestError`` (with the OAuth ``error`` field when present)
    """
    try:
        async with session.request(method, url, headers=headers, params=params, json=json_body) as response:
            status = response.status
            text = await response.text()
            retry_after = response.headers.get("Retry-After")
    except asyncio.TimeoutError as e:
        raise TransientRemoteError(f"Timeout calling {method} {url}") from e
    except aiohttp.ClientError as e:
        raise TransientRemoteError(f"Connection error calling {method} {url}: {e}") from e

    body: Any = None
    if text:
        try:
            body = json.loads(text)
        except ValueError as e:
            if status < 400:
                raise TransientRemoteError(f"Malformed JSON from {method} {url}", remote_status=status) from e

    if status < 400:
        return body if body is not None else {}

    description = _error_description(body, f"{method} {url} failed with HTTP {status}")
    if status == HTTPStatus.TOO_MANY_REQUESTS:
        raise RateLimitedError(description, retry_after=retry_after)
    if status in (HTTPStatus.UNAUTHORIZED, HTTPStatus.FORBIDDEN):
        raise AuthExpiredError(description, remote_status=status, oauth_error=_oauth_error(body))
    if status >= 500:
        raise TransientRemoteError(description, remote_status=status)
    raise RemoteRequestError(description, remote_status=status, oauth_error=_oauth_error(body))
