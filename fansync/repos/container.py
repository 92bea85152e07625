from dependency_injector import containers, providers

from fansync.repos.account import AccountRepo
from fansync.repos.conversation import ConversationRepo
from fansync.repos.fan import FanRepo
from fansync.repos.message import MessageRepo
from fansync.repos.organization import OrganizationRepo
from fansync.repos.sync_state import SyncStateRepo
from fansync.repos.webhook_log import WebhookLogRepo


class RepoContainer(containers.DeclarativeContainer):
    organization = providers.Singleton(OrganizationRepo)
    account = providers.Singleton(AccountRepo)
    sync_state = providers.Singleton(SyncStateRepo)
    fan = providers.Singleton(FanRepo)
    conversation = providers.Singleton(ConversationRepo)
    message = providers.Singleton(MessageRepo)
    webhook_log = providers.Singleton(WebhookLogRepo)
