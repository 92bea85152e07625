"""
Middleware committing the request's database session once the handler returns.
"""

import logging
from typing import Awaitable, Callable

from fastapi import Request, Response
from fastapi_async_sqlalchemy import db
from fastapi_async_sqlalchemy.exceptions import MissingSessionError
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class AutoCommitMiddleware(BaseHTTPMiddleware):
    """
    Commits the session after a successful response and rolls it back when the handler raised.

    Error responses produced by exception handlers are not commits of partial work:
    the session is only committed for responses below 400.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        try:
            response = await call_next(request)
        except Exception as e:
            await self._finish(commit=False)
            logger.error(f"Database transaction rolled back due to error: {e}")
            raise

        await self._finish(commit=response.status_code < 400)
        return response

    async def _finish(self, commit: bool) -> None:
        try:
            session = db.session
        except MissingSessionError:
            # Endpoints that never touched the database
            logger.debug("No database session found for request")
            return

        try:
            if commit:
                await session.commit()
            else:
                await session.rollback()
        except Exception as e:
            logger.warning(f"Failed to finish database transaction: {e}")
