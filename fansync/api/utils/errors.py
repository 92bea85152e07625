from uuid import UUID

from dependency_injector.wiring import Provide, inject

from fansync.container import ApplicationContainer
from fansync.exceptions import EntityNotFoundError
from fansync.models import Account, Conversation
from fansync.models.organization import Organization
from fansync.repos.account import AccountRepo
from fansync.repos.conversation import ConversationRepo


@inject
async def get_account_or_404(
    organization: Organization,
    account_uuid: UUID,
    account_repo: AccountRepo = Provide[ApplicationContainer.repos.account],
) -> Account:
    """Load an account of the organization; unknown or foreign ids are indistinguishable."""
    account = await account_repo.get_by_organization_and_uuid(organization.id, account_uuid)
    if account is None:
        raise EntityNotFoundError("Account not found")
    return account


@inject
async def get_conversation_or_404(
    organization: Organization,
    conversation_uuid: UUID,
    conversation_repo: ConversationRepo = Provide[ApplicationContainer.repos.conversation],
) -> Conversation:
    conversation = await conversation_repo.get_by_uuid_and_organization(conversation_uuid, organization.id)
    if conversation is None:
        raise EntityNotFoundError("Conversation not found")
    return conversation
