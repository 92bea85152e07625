"""
Conversations API router - synchronous send and the per-conversation outbox.
"""

from uuid import UUID

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Path, status

from fansync.api.middlewares.authentication import get_current_organization
from fansync.api.payloads import OutboxItemResponse, OutboxResponse, SendMessageRequest, SendMessageResponse
from fansync.api.payloads.error import APIError
from fansync.api.utils.errors import get_conversation_or_404
from fansync.container import ApplicationContainer
from fansync.controllers.outbound.message_sender import MessageSender
from fansync.controllers.outbound.outbox import Outbox
from fansync.controllers.outbound.send_queue import QueueItem
from fansync.models.organization import Organization

router = APIRouter()


def _item_response(item: QueueItem) -> OutboxItemResponse:
    return OutboxItemResponse(
        id=item.id,
        temp_id=item.temp_id,
        server_id=item.server_id,
        state=item.state.value,
        error=item.error,
        text=item.payload.get("text"),
    )


@router.post(
    "/{conversation_uuid}/messages",
    response_model=SendMessageResponse,
    responses={
        404: {"model": APIError, "description": "Conversation not found"},
        409: {"model": APIError, "description": "Account needs to be reconnected"},
        502: {"model": APIError, "description": "Fanvue request failed"},
    },
    summary="Send a message",
    description="Sends a message and waits for the platform's confirmation",
)
@inject
async def send_message(
    request_body: SendMessageRequest,
    conversation_uuid: UUID = Path(...),
    organization: Organization = Depends(get_current_organization),
    message_sender: MessageSender = Depends(Provide[ApplicationContainer.controllers.message_sender]),
) -> SendMessageResponse:
    conversation = await get_conversation_or_404(organization, conversation_uuid)
    sent = await message_sender.send(
        conversation,
        text=request_body.text,
        media_uuids=request_body.media_uuids,
        price_cents=request_body.price_cents,
        template_uuid=request_body.template_uuid,
    )
    return SendMessageResponse(
        conversation_id=str(conversation_uuid), message_id=sent.remote_message_id, sent_at=sent.sent_at
    )


@router.get("/{conversation_uuid}/outbox", response_model=OutboxResponse, summary="List outbox items")
@inject
async def list_outbox(
    conversation_uuid: UUID = Path(...),
    organization: Organization = Depends(get_current_organization),
    outbox: Outbox = Depends(Provide[ApplicationContainer.controllers.outbox]),
) -> OutboxResponse:
    conversation = await get_conversation_or_404(organization, conversation_uuid)
    items = outbox.queue_for(conversation).items
    return OutboxResponse(conversation_id=str(conversation_uuid), data=[_item_response(item) for item in items])


@router.post(
    "/{conversation_uuid}/outbox",
    response_model=OutboxItemResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a message",
    description="Queues a message for ordered background delivery and returns its temporary id",
)
@inject
async def enqueue_message(
    request_body: SendMessageRequest,
    conversation_uuid: UUID = Path(...),
    organization: Organization = Depends(get_current_organization),
    outbox: Outbox = Depends(Provide[ApplicationContainer.controllers.outbox]),
) -> OutboxItemResponse:
    conversation = await get_conversation_or_404(organization, conversation_uuid)
    item = outbox.enqueue(conversation, request_body.model_dump())
    return _item_response(item)


@router.post(
    "/{conversation_uuid}/outbox/{item_id}/retry",
    response_model=OutboxItemResponse,
    responses={404: {"model": APIError}, 409: {"model": APIError, "description": "Item has not failed"}},
    summary="Retry a failed message",
)
@inject
async def retry_outbox_item(
    conversation_uuid: UUID = Path(...),
    item_id: str = Path(...),
    organization: Organization = Depends(get_current_organization),
    outbox: Outbox = Depends(Provide[ApplicationContainer.controllers.outbox]),
) -> OutboxItemResponse:
    conversation = await get_conversation_or_404(organization, conversation_uuid)
    return _item_response(outbox.queue_for(conversation).retry(item_id))


@router.delete(
    "/{conversation_uuid}/outbox/{item_id}",
    response_model=OutboxItemResponse,
    responses={404: {"model": APIError}, 409: {"model": APIError, "description": "Item has not failed"}},
    summary="Discard a failed message",
)
@inject
async def discard_outbox_item(
    conversation_uuid: UUID = Path(...),
    item_id: str = Path(...),
    organization: Organization = Depends(get_current_organization),
    outbox: Outbox = Depends(Provide[ApplicationContainer.controllers.outbox]),
) -> OutboxItemResponse:
    conversation = await get_conversation_or_404(organization, conversation_uuid)
    return _item_response(outbox.queue_for(conversation).discard(item_id))
