"""
Webhooks API router - Fanvue event deliveries.
"""

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, BackgroundTasks, Depends, Request

from fansync.container import ApplicationContainer
from fansync.controllers.webhook.signature import SIGNATURE_HEADER
from fansync.controllers.webhook.webhook_controller import WebhookController

router = APIRouter()


@router.post(
    "/fanvue",
    summary="Receive a Fanvue webhook",
    description="Acknowledges immediately; signature verification outcome and processing happen in the background",
)
@inject
async def receive_fanvue_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    webhook_controller: WebhookController = Depends(Provide[ApplicationContainer.controllers.webhook_controller]),
) -> dict[str, bool]:
    raw_body = await request.body()
    signature_valid = webhook_controller.verify(raw_body, request.headers.get(SIGNATURE_HEADER))
    background_tasks.add_task(webhook_controller.process, raw_body, signature_valid)
    return {"received": True}
