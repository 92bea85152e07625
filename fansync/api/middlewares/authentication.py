from typing import Annotated

from dependency_injector.wiring import Provide, inject
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from fansync.container import ApplicationContainer
from fansync.models.organization import Organization
from fansync.repos.organization import OrganizationRepo

security = HTTPBearer()


@inject
async def get_current_organization(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    organization_repo: OrganizationRepo = Depends(Provide[ApplicationContainer.repos.organization]),
) -> Organization:
    """
    FastAPI dependency resolving the organization that owns the bearer API key.

    Raises:
        HTTPException: If the key does not belong to any organization
    """
    organization = await organization_repo.get_by_api_key(credentials.credentials)
    if organization is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key.")

    return organization
