from fastapi import APIRouter

from fansync.api.v1.accounts import router as accounts_router
from fansync.api.v1.conversations import router as conversations_router
from fansync.api.v1.webhooks import router as webhooks_router

api_router = APIRouter()

api_router.include_router(accounts_router, prefix="/accounts", tags=["accounts"])
api_router.include_router(conversations_router, prefix="/conversations", tags=["conversations"])
api_router.include_router(webhooks_router, prefix="/webhooks", tags=["webhooks"])
