import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from sqlalchemy.ext.asyncio import create_async_engine
from core.config import settings
from core.logging import setup_logging
from models.base import Base
# Import all models to ensure they are registered
from models.court import Court
from models.judge import Judge
from models.case import Case
from models.opinion import Opinion
from models.sync_job import SyncJob
from models.sync_log import SyncLog

setup_logging()
logger = logging.getLogger(__name__)


async def init_database():
    logger.info("Connecting to database...")
    engine = create_async_engine(settings.DATABASE_URL, echo=settings.ENVIRONMENT == "development")

    async with engine.begin() as conn:
        logger.info("Creating tables...")
        await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Tables created successfully: {', '.join(sorted(Base.metadata.tables))}")

    await engine.dispose()

if __name__ == "__main__":
    asyncio.run(init_database())
