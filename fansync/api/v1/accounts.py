"""
Accounts API router - sync status, manual sync and analytics per connected account.
"""

import logging
from uuid import UUID

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Path, Query

from fansync.api.middlewares.authentication import get_current_organization
from fansync.api.payloads import EarningsResponse, SubscribersResponse, SyncResultResponse, SyncStateResponse
from fansync.api.payloads.error import APIError
from fansync.api.utils.errors import get_account_or_404
from fansync.container import ApplicationContainer
from fansync.controllers.analytics.analytics_controller import AnalyticsController
from fansync.controllers.sync.poller import InboxPoller
from fansync.models import Account, SyncState, SyncStatus
from fansync.models.organization import Organization
from fansync.repos.sync_state import SyncStateRepo

logger = logging.getLogger(__name__)
router = APIRouter()

_ERRORS = {
    404: {"model": APIError, "description": "Account not found"},
    409: {"model": APIError, "description": "Account needs to be reconnected"},
    502: {"model": APIError, "description": "Fanvue request failed"},
}


def _sync_state_response(account: Account, state: SyncState | None, is_running: bool) -> SyncStateResponse:
    return SyncStateResponse(
        account_id=account.uuid,
        account_status=account.status.value,
        needs_reattach=account.needs_reattach,
        status=state.status.value if state else SyncStatus.idle.value,
        last_synced_at=state.last_synced_at if state else None,
        last_error=state.last_error if state else None,
        consecutive_failures=state.consecutive_failures if state else 0,
        is_running=is_running,
    )


@router.get(
    "/{account_uuid}/sync",
    response_model=SyncStateResponse,
    responses={404: _ERRORS[404]},
    summary="Get sync status",
    description="Returns the inbox sync status and last error of an account",
)
@inject
async def get_sync_status(
    account_uuid: UUID = Path(...),
    organization: Organization = Depends(get_current_organization),
    sync_state_repo: SyncStateRepo = Depends(Provide[ApplicationContainer.repos.sync_state]),
    inbox_poller: InboxPoller = Depends(Provide[ApplicationContainer.controllers.inbox_poller]),
) -> SyncStateResponse:
    account = await get_account_or_404(organization, account_uuid)
    state = await sync_state_repo.get_by_account(account.id)
    return _sync_state_response(account, state, inbox_poller.is_busy(account.id))


@router.post(
    "/{account_uuid}/sync",
    response_model=SyncResultResponse,
    responses=_ERRORS,
    summary="Sync now",
    description="Reconciles the account's inbox immediately; skipped when a poll is already running",
)
@inject
async def sync_now(
    account_uuid: UUID = Path(...),
    organization: Organization = Depends(get_current_organization),
    sync_state_repo: SyncStateRepo = Depends(Provide[ApplicationContainer.repos.sync_state]),
    inbox_poller: InboxPoller = Depends(Provide[ApplicationContainer.controllers.inbox_poller]),
) -> SyncResultResponse:
    account = await get_account_or_404(organization, account_uuid)
    result = await inbox_poller.sync_account(account)
    state = await sync_state_repo.get_by_account(account.id)
    return SyncResultResponse(
        skipped=result.skipped,
        updated_conversations=result.updated_conversations,
        state=_sync_state_response(account, state, inbox_poller.is_busy(account.id)),
    )


@router.get(
    "/{account_uuid}/analytics/earnings",
    response_model=EarningsResponse,
    responses=_ERRORS,
    summary="Earnings summary",
    description="Earnings over a rolling period (7d, 30d, 90d or all), in major currency units",
)
@inject
async def get_earnings(
    account_uuid: UUID = Path(...),
    period: str = Query("30d"),
    source: str | None = Query(None),
    organization: Organization = Depends(get_current_organization),
    analytics_controller: AnalyticsController = Depends(Provide[ApplicationContainer.controllers.analytics_controller]),
) -> EarningsResponse:
    account = await get_account_or_404(organization, account_uuid)
    summary = await analytics_controller.earnings(account, period, source)
    return EarningsResponse(
        period=summary.period,
        start=summary.start,
        end=summary.end,
        total=summary.total,
        gross=summary.gross,
        fees=summary.fees,
        breakdown=summary.breakdown,
        data=summary.transactions,
    )


@router.get(
    "/{account_uuid}/analytics/subscribers",
    response_model=SubscribersResponse,
    responses=_ERRORS,
    summary="Subscriber growth",
)
@inject
async def get_subscribers(
    account_uuid: UUID = Path(...),
    period: str = Query("30d"),
    organization: Organization = Depends(get_current_organization),
    analytics_controller: AnalyticsController = Depends(Provide[ApplicationContainer.controllers.analytics_controller]),
) -> SubscribersResponse:
    account = await get_account_or_404(organization, account_uuid)
    summary = await analytics_controller.subscribers(account, period)
    return SubscribersResponse(
        period=summary.period,
        start=summary.start,
        end=summary.end,
        new_subscribers=summary.new_subscribers,
        cancelled_subscribers=summary.cancelled_subscribers,
        net_change=summary.net_change,
        total=summary.total,
        data=summary.data,
    )
