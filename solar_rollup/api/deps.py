"""
FastAPI dependency injection providers.

Provides database sessions and the loaded Settings for use with FastAPI's
Depends() mechanism.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-012)
"""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from solar_rollup.config import Settings
from solar_rollup.db.session import get_async_session


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session.

    Yields:
        AsyncSession: An async SQLAlchemy session.
    """
    async for session in get_async_session():
        yield session


def get_app_settings(request: Request) -> Settings:
    """Return the Settings loaded at startup."""
    return request.app.state.settings


DbSession = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
