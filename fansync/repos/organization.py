from uuid import UUID

from fansync.models.organization import Organization
from fansync.repos.base import BaseRepo


class OrganizationRepo(BaseRepo[Organization]):
    """Organization repository."""

    def __init__(self) -> None:
        super().__init__(Organization)

    async def get_by_api_key(self, api_key: str) -> Organization | None:
        """Get organization by API key."""
        result = await self.execute(self.base_stmt.where(Organization.api_key == api_key))
        return result.one_or_none()

    async def get_by_uuid(self, uuid: UUID) -> Organization | None:
        result = await self.execute(self.base_stmt.where(Organization.uuid == uuid))
        return result.one_or_none()
