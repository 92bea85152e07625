from typing import cast

from dependency_injector import containers, providers

from fansync.controllers.analytics.analytics_controller import AnalyticsController
from fansync.controllers.outbound.message_sender import MessageSender
from fansync.controllers.outbound.outbox import Outbox
from fansync.controllers.remote.client import FanvueClient
from fansync.controllers.remote.executor import RequestExecutor
from fansync.controllers.remote.http import HttpSessionProvider
from fansync.controllers.sync.poller import InboxPoller
from fansync.controllers.sync.range_fetcher import ChunkedRangeFetcher
from fansync.controllers.sync.reconciler import InboxReconciler
from fansync.controllers.tokens.token_manager import TokenManager
from fansync.controllers.webhook.webhook_controller import WebhookController
from fansync.repos.container import RepoContainer
from fansync.utils.encryption import TokenCipher
from settings import settings


class ControllerContainer(containers.DeclarativeContainer):
    repos: RepoContainer = cast(RepoContainer, providers.DependenciesContainer())

    http = providers.Singleton(HttpSessionProvider, timeout=settings.fanvue.request_timeout)
    executor = providers.Singleton(
        RequestExecutor, max_retries=settings.retry.max_retries, base_delay_ms=settings.retry.base_delay_ms
    )
    token_cipher = providers.Singleton(TokenCipher, key=settings.token_encryption_key)

    token_manager = providers.Singleton(
        TokenManager,
        account_repo=repos.account,
        executor=executor,
        http=http,
        cipher=token_cipher,
        token_url=settings.fanvue.token_url,
        client_id=settings.fanvue.client_id,
        client_secret=settings.fanvue.client_secret,
    )
    fanvue_client = providers.Singleton(
        FanvueClient,
        token_manager=token_manager,
        executor=executor,
        http=http,
        api_base=settings.fanvue.api_base,
        api_version=settings.fanvue.api_version,
    )

    range_fetcher = providers.Singleton(
        ChunkedRangeFetcher,
        max_span_days=settings.range_fetch.max_span_days,
        concurrency=settings.range_fetch.concurrency,
        max_pages=settings.range_fetch.max_pages,
    )
    reconciler = providers.Singleton(
        InboxReconciler, fan_repo=repos.fan, conversation_repo=repos.conversation, message_repo=repos.message
    )
    inbox_poller = providers.Singleton(
        InboxPoller,
        account_repo=repos.account,
        sync_state_repo=repos.sync_state,
        reconciler=reconciler,
        client=fanvue_client,
        group_size=settings.poller.account_group_size,
        chat_page_size=settings.poller.chat_page_size,
        message_page_size=settings.poller.message_page_size,
    )

    message_sender = providers.Singleton(
        MessageSender, client=fanvue_client, reconciler=reconciler, conversation_repo=repos.conversation
    )
    outbox = providers.Singleton(Outbox, sender=message_sender, conversation_repo=repos.conversation)

    webhook_controller = providers.Singleton(
        WebhookController,
        account_repo=repos.account,
        conversation_repo=repos.conversation,
        webhook_log_repo=repos.webhook_log,
        reconciler=reconciler,
        secret=settings.fanvue.webhook_secret,
        tolerance_seconds=settings.webhook.tolerance_seconds,
    )
    analytics_controller = providers.Singleton(
        AnalyticsController,
        client=fanvue_client,
        range_fetcher=range_fetcher,
        page_limit=settings.range_fetch.page_limit,
    )
