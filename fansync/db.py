from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi_async_sqlalchemy import SQLAlchemyMiddleware, db
from starlette.applications import Starlette

from settings import settings

ENGINE_ARGS = {
    "pool_size": settings.database.min_pool_size,
    "max_overflow": settings.database.max_pool_size - settings.database.min_pool_size,
    "pool_pre_ping": True,
    "pool_recycle": 300,
}
SESSION_ARGS = {"expire_on_commit": False}


def init_sqlalchemy() -> None:
    """Bind fastapi_async_sqlalchemy to the database outside of an ASGI app."""
    # The middleware configures the module-level session factory on construction
    SQLAlchemyMiddleware(
        Starlette(),
        db_url=settings.database.url,
        engine_args=ENGINE_ARGS,
        session_args=SESSION_ARGS,
    )


@asynccontextmanager
async def fastapi_sqlalchemy_context(multi_sessions: bool = False) -> AsyncGenerator[None, None]:
    """Initialize fastapi_async_sqlalchemy for standalone scripts.

    With ``multi_sessions`` every asyncio task gets its own session, committed when
    the task finishes.
    """
    init_sqlalchemy()

    async with db(multi_sessions=multi_sessions, commit_on_exit=multi_sessions):
        yield
