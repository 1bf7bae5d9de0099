"""
FastAPI dependencies
"""

from typing import AsyncGenerator
from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from core.database import async_session_maker
from core.exceptions import ConfigurationError
from pipeline.extractors.courtlistener import CourtListenerClient, UpstreamClient
import logging

logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Database session per request"""
    async with async_session_maker() as session:
        yield session


async def get_upstream_client() -> AsyncGenerator[UpstreamClient, None]:
    """CourtListener client per request; 503 when no token is configured"""
    try:
        client = CourtListenerClient()
    except ConfigurationError as e:
        logger.error(f"Upstream client unavailable: {e.message}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)

    try:
        yield client
    finally:
        await client.aclose()
