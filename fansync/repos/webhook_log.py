from datetime import datetime
from typing import Any

from fansync.models import WebhookLog
from fansync.repos.base import BaseRepo


class WebhookLogRepo(BaseRepo[WebhookLog]):
    """Repository for WebhookLog model operations."""

    def __init__(self) -> None:
        super().__init__(WebhookLog)

    async def record(
        self,
        event_type: str | None,
        signature_valid: bool,
        payload: dict[str, Any] | None,
        account_id: int | None = None,
        error: str | None = None,
        processed_at: datetime | None = None,
    ) -> WebhookLog:
        webhook_log = WebhookLog(
            account_id=account_id,
            event_type=event_type,
            signature_valid=signature_valid,
            payload=payload,
            error=error,
            processed_at=processed_at,
        )
        await self.add(webhook_log)
        return webhook_log
