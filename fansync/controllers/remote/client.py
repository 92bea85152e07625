import logging
from datetime import datetime
from typing import Any

from fansync.controllers.remote.executor import RequestExecutor
from fansync.controllers.remote.http import HttpSessionProvider, request_json
from fansync.controllers.tokens.token_manager import TokenManager
from fansync.exceptions import AuthExpiredError
from fansync.models import Account
from fansync.utils.timestamps import format_remote_timestamp


def _query(params: dict[str, Any]) -> dict[str, str]:
    query = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            query[key] = "true" if value else "false"
        elif isinstance(value, datetime):
            query[key] = format_remote_timestamp(value)
        else:
            query[key] = str(value)
    return query


class FanvueClient:
    """Fanvue resource API client.

    Each request goes through the executor's 429 retry loop, and each attempt asks the
    token manager for a valid bearer token. A 401/403 answer triggers exactly one
    forced refresh, after which the request is resumed; a second authorization
    failure propagates.
    """

    def __init__(
        self,
        token_manager: TokenManager,
        executor: RequestExecutor,
        http: HttpSessionProvider,
        api_base: str,
        api_version: str,
    ) -> None:
        self._logger = logging.getLogger(__name__)
        self._token_manager = token_manager
        self._executor = executor
        self._http = http
        self._api_base = api_base.rstrip("/")
        self._api_version = api_version

    async def request(
        self,
        account: Account,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        query = _query(params or {})
        refreshed = False
        while True:
            try:
                return await self._executor.with_retry(
                    lambda: self._attempt(account, method, path, query, json_body)
                )
            except AuthExpiredError as e:
                if refreshed:
                    raise
                refreshed = True
                self._logger.info(
                    f"Authorization rejected for account {account.id} on {method} {path}, refreshing token",
                    extra=e.extra,
                )
                await self._token_manager.refresh_token(account)

    async def _attempt(
        self,
        account: Account,
        method: str,
        path: str,
        query: dict[str, str],
        json_body: dict[str, Any] | None,
    ) -> Any:
        token = await self._token_manager.get_valid_token(account)
        session = await self._http.get_session()
        headers = {
            "Authorization": f"Bearer {token}",
            "X-Fanvue-API-Version": self._api_version,
            "Content-Type": "application/json",
        }
        return await request_json(
            session, method, f"{self._api_base}{path}", headers=headers, params=query, json_body=json_body
        )

    async def get_profile(self, account: Account) -> dict[str, Any]:
        return await self.request(account, "GET", "/users/me")

    async def get_chats(
        self, account: Account, page: int = 1, size: int = 50, sort_by: str = "most_recent_messages"
    ) -> dict[str, Any]:
        """Chats ordered by most recent message; ``{data: [{user, lastMessage, isRead, ...}]}``."""
        return await self.request(account, "GET", "/chats", params={"page": page, "size": size, "sortBy": sort_by})

    async def get_chat_messages(
        self, account: Account, fan_uuid: str, page: int = 1, size: int = 50, mark_as_read: bool = False
    ) -> dict[str, Any]:
        return await self.request(
            account,
            "GET",
            f"/chats/{fan_uuid}/messages",
            params={"page": page, "size": size, "markAsRead": mark_as_read},
        )

    async def send_message(
        self,
        account: Account,
        fan_uuid: str,
        text: str | None = None,
        media_uuids: list[str] | None = None,
        price: int | None = None,
        template_uuid: str | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if text is not None:
            body["text"] = text
        if media_uuids:
            body["mediaUuids"] = media_uuids
        if price is not None:
            body["price"] = price
        if template_uuid is not None:
            body["templateUuid"] = template_uuid
        return await self.request(account, "POST", f"/chats/{fan_uuid}/message", json_body=body)

    async def get_insights_earnings(
        self,
        account: Account,
        start: datetime,
        end: datetime,
        cursor: str | None = None,
        limit: int | None = None,
        source: str | None = None,
    ) -> dict[str, Any]:
        """Cursor-paginated earnings transactions; amounts are integer cents."""
        params = {"startDate": start, "endDate": end, "cursor": cursor, "limit": limit, "source": source}
        return await self.request(account, "GET", "/insights/earnings", params=params)

    async def get_insights_subscribers(
        self, account: Account, start: datetime, end: datetime, cursor: str | None = None
    ) -> dict[str, Any]:
        """Daily subscriber counts for the range."""
        params = {"startDate": start, "endDate": end, "cursor": cursor}
        return await self.request(account, "GET", "/insights/subscribers", params=params)
