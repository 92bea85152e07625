import logging
from dataclasses import dataclass
from datetime import datetime

from fansync.controllers.remote.client import FanvueClient
from fansync.controllers.sync.reconciler import InboxReconciler
from fansync.exceptions import InvalidDataError, InvalidStateError, TransientRemoteError
from fansync.models import Conversation
from fansync.repos.conversation import ConversationRepo
from fansync.utils.timestamps import parse_remote_timestamp, utcnow


@dataclass
class SentMessage:
    remote_message_id: str
    sent_at: datetime


class MessageSender:
    """Sends a chat message and stores the platform's confirmation."""

    def __init__(self, client: FanvueClient, reconciler: InboxReconciler, conversation_repo: ConversationRepo) -> None:
        self._logger = logging.getLogger(__name__)
        self._client = client
        self._reconciler = reconciler
        self._conversation_repo = conversation_repo

    async def send(
        self,
        conversation: Conversation,
        text: str | None = None,
        media_uuids: list[str] | None = None,
        price_cents: int | None = None,
        template_uuid: str | None = None,
    ) -> SentMessage:
        if not text and not media_uuids and not template_uuid:
            raise InvalidDataError("A message needs text, media or a template")

        account = conversation.account
        if not account.is_eligible:
            raise InvalidStateError(
                f"Account {account.uuid} is not active or needs to be reconnected", account_id=account.id
            )

        response = await self._client.send_message(
            account,
            conversation.remote_thread_id,
            text=text,
            media_uuids=media_uuids,
            price=price_cents,
            template_uuid=template_uuid,
        )
        remote_message_id = response.get("messageUuid") or response.get("uuid")
        if not remote_message_id:
            raise TransientRemoteError("Send confirmation lacks a message id", account_id=account.id)

        sent_at = parse_remote_timestamp(response.get("sentAt")) or utcnow()
        await self._reconciler.record_outbound(
            conversation, str(remote_message_id), text, price_cents=price_cents, sent_at=sent_at
        )
        await self._conversation_repo.commit()

        self._logger.info(f"Sent message {remote_message_id} in conversation {conversation.uuid}")
        return SentMessage(remote_message_id=str(remote_message_id), sent_at=sent_at)
