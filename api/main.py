"""
FastAPI application initialization
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from api.routes import health, jobs
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.database import dispose_default_engine
from core.logging import setup_logging
import logging

setup_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the optional queue poller and release the pool on shutdown"""
    logger.info("Starting Catalog Ingestion API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    poller = None
    if settings.START_QUEUE_POLLER:
        from ingestion.scheduler import QueuePoller

        poller = QueuePoller()
        poller.start()

    try:
        yield
    finally:
        logger.info("Shutting down Catalog Ingestion API")
        if poller is not None:
            await poller.close()
        await dispose_default_engine()


app = FastAPI(
    title="Catalog Ingestion API",
    description="Status surface for catalog file ingestion jobs",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(RequestContextMiddleware)

app.include_router(health.router)
app.include_router(jobs.router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Catalog Ingestion API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "jobs": "/jobs/{tenant_id}/{list_id}"
        }
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host=settings.API_HOST, port=settings.API_PORT)
