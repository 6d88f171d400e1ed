import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from sqlalchemy.ext.asyncio import AsyncEngine
from core.database import create_engine_from_settings
from core.logging import setup_logging
from models.base import Base
# Import all models to ensure they are registered
from models.ingestion_job import IngestionJob
from models.product import Product

logger = logging.getLogger(__name__)


async def create_schema(engine: AsyncEngine):
    """Create ingestion_job and the partitioned products parent table"""
    async with engine.begin() as conn:
        logger.info("Creating tables...")
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Tables created successfully.")


async def init_database():
    logger.info("Connecting to database...")
    engine = create_engine_from_settings()
    try:
        await create_schema(engine)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(init_database())
