from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel


class EarningsResponse(BaseModel):
    period: str
    start: datetime
    end: datetime
    total: Decimal
    gross: Decimal
    fees: Decimal
    breakdown: dict[str, Decimal]
    data: list[dict[str, Any]]


class SubscribersResponse(BaseModel):
    period: str
    start: datetime
    end: datetime
    new_subscribers: int
    cancelled_subscribers: int
    net_change: int
    total: int | None = None
    data: list[dict[str, Any]]
