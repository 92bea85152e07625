from datetime import UTC, datetime, timedelta
from unittest.mock import Mock

import pytest

from fansync.controllers.sync.reconciler import InboxReconciler, is_newer_than_cached, message_row, preview
from fansync.models import Fan, MessageDirection, MessageSide, PlatformStatus
from fansync.repos.conversation import ConversationRepo
from fansync.repos.fan import FanRepo
from fansync.repos.message import MessageRepo

T0 = datetime(2026, 1, 2, 10, 0, tzinfo=UTC)

CHAT = {
    "user": {"uuid": "fan-1", "username": "fan", "displayName": "Fan One"},
    "lastMessage": {"text": "hello there", "sentAt": "2026-01-02T10:00:00Z", "sender": {"uuid": "fan-1"}},
    "isRead": False,
    "unreadMessagesCount": 2,
}


@pytest.fixture
def repos():
    fan_repo = Mock(spec=FanRepo)
    fan_repo.upsert.return_value = Fan(id=100, account_id=1, remote_fan_id="fan-1")
    return fan_repo, Mock(spec=ConversationRepo), Mock(spec=MessageRepo)


@pytest.fixture
def reconciler(repos):
    return InboxReconciler(*repos)


def test_tie_break(make_conversation):
    cached = make_conversation(last_message_at=T0)

    assert is_newer_than_cached(None, None)
    assert is_newer_than_cached(cached, T0 + timedelta(seconds=1))
    assert not is_newer_than_cached(cached, T0)
    assert not is_newer_than_cached(cached, T0 - timedelta(minutes=5))
    assert not is_newer_than_cached(cached, None)
    assert is_newer_than_cached(make_conversation(last_message_at=None), T0)


def test_preview_is_truncated():
    assert preview("x" * 250) == "x" * 100
    assert preview("") is None
    assert preview(None) is None


def test_message_row_direction_follows_sender():
    inbound = message_row(10, "fan-1", {"uuid": "m-1", "text": "hi", "sender": {"uuid": "fan-1"}})
    outbound = message_row(10, "fan-1", {"uuid": "m-2", "text": "hey", "sender": {"uuid": "creator-1"}})

    assert inbound["direction"] == MessageDirection.inbound
    assert outbound["direction"] == MessageDirection.outbound
    assert inbound["platform_status"] == PlatformStatus.delivered


def test_message_row_pricing_and_media():
    row = message_row(
        10,
        "fan-1",
        {
            "uuid": "m-3",
            "sentAt": "2026-01-02T10:00:00Z",
            "pricing": {"price": 999, "isUnlocked": True},
            "attachments": [{"url": "https://cdn.test/a.jpg"}, {"fileUrl": "https://cdn.test/b.jpg"}, "junk"],
        },
    )

    assert row["is_ppv"] and row["ppv_price_cents"] == 999 and row["ppv_unlocked"]
    assert row["media_urls"] == ["https://cdn.test/a.jpg", "https://cdn.test/b.jpg"]
    assert row["sent_at"] == T0


def test_message_without_id_is_ignored():
    assert message_row(10, "fan-1", {"text": "no id"}) is None


@pytest.mark.asyncio
async def test_apply_chat_upserts_newer_chat(reconciler, repos, make_account, make_conversation):
    fan_repo, conversation_repo, _ = repos
    account = make_account()
    conversation_repo.get_by_account_and_fan.return_value = make_conversation(last_message_at=T0 - timedelta(hours=1))
    conversation_repo.upsert.return_value = make_conversation(last_message_at=T0)

    assert await reconciler.apply_chat(account, CHAT) is not None

    fan_repo.upsert.assert_awaited_once_with(
        account_id=1,
        remote_fan_id="fan-1",
        username="fan",
        display_name="Fan One",
        avatar_url=None,
        last_message_at=T0,
    )
    kwargs = conversation_repo.upsert.await_args.kwargs
    assert kwargs["last_message_at"] == T0
    assert kwargs["last_message_from"] == MessageSide.fan
    assert kwargs["is_unread"] and kwargs["unread_count"] == 2
    assert kwargs["last_message_preview"] == "hello there"


@pytest.mark.asyncio
async def test_apply_chat_skips_chat_with_same_timestamp(reconciler, repos, make_account, make_conversation):
    fan_repo, conversation_repo, _ = repos
    conversation_repo.get_by_account_and_fan.return_value = make_conversation(last_message_at=T0)

    assert await reconciler.apply_chat(make_account(), CHAT) is None

    fan_repo.upsert.assert_awaited_once()
    conversation_repo.upsert.assert_not_awaited()


@pytest.mark.asyncio
async def test_apply_chat_without_fan_is_skipped(reconciler, repos, make_account):
    fan_repo, conversation_repo, _ = repos

    assert await reconciler.apply_chat(make_account(), {"lastMessage": {}}) is None

    fan_repo.upsert.assert_not_awaited()


@pytest.mark.asyncio
async def test_ingest_is_idempotent(reconciler, repos, make_conversation):
    _, _, message_repo = repos
    conversation = make_conversation()
    messages = [
        {"uuid": "m-1", "text": "hi", "sender": {"uuid": "fan-1"}, "sentAt": "2026-01-02T10:00:00Z"},
        {"uuid": "m-2", "text": "yo", "sender": {"uuid": "creator-1"}, "sentAt": "2026-01-02T10:01:00Z"},
        {"text": "no id"},
    ]

    await reconciler.ingest_messages(conversation, "fan-1", messages)
    await reconciler.ingest_messages(conversation, "fan-1", messages)

    first, second = (call.args[0] for call in message_repo.upsert_many.await_args_list)
    assert first == second
    assert [row["remote_message_id"] for row in first] == ["m-1", "m-2"]


@pytest.mark.asyncio
async def test_inbound_media_message_uses_media_preview(reconciler, repos, make_account, make_conversation):
    _, conversation_repo, message_repo = repos
    conversation_repo.upsert.return_value = make_conversation()

    await reconciler.record_inbound_message(
        make_account(), {"uuid": "fan-1"}, {"uuid": "m-9", "sentAt": "2026-01-02T10:00:00Z"}
    )

    assert conversation_repo.upsert.await_args.kwargs["last_message_preview"] == "[Media]"
    row = message_repo.upsert_many.await_args.args[0][0]
    assert row["direction"] == MessageDirection.inbound
    assert row["sent_at"] == T0


@pytest.mark.asyncio
async def test_record_outbound_bumps_conversation(reconciler, repos, make_conversation):
    _, conversation_repo, message_repo = repos
    conversation = make_conversation()
    conversation_repo.upsert.return_value = None

    assert await reconciler.record_outbound(conversation, "m-10", "thanks!", sent_at=T0) is conversation

    row = message_repo.upsert_many.await_args.args[0][0]
    assert row["direction"] == MessageDirection.outbound
    assert row["platform_status"] == PlatformStatus.sent
    kwargs = conversation_repo.upsert.await_args.kwargs
    assert kwargs["last_message_from"] == MessageSide.creator
    assert kwargs["unread_count"] == 0 and not kwargs["is_unread"]
