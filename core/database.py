"""
Database engine and session management with SQLAlchemy async

Workers build their own engine with ``create_engine_from_settings`` and own
its lifecycle; the status API uses the lazily created process default.
"""

from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from core.config import settings
from core.exceptions import DatabaseAuthorizationError, DatabaseConnectionError
from core.retry import with_retry
import logging

logger = logging.getLogger(__name__)

_default_engine: Optional[AsyncEngine] = None
_default_session_maker: Optional[async_sessionmaker] = None


def create_engine_from_settings(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Create an async engine whose pool is sized for one worker.

    Connection establishment and statements get short explicit timeouts;
    the overall job may still run for minutes.
    """
    url = database_url or settings.DATABASE_URL
    engine = create_async_engine(
        url,
        echo=False,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_pre_ping=True,
        connect_args={
            "timeout": settings.DB_CONNECT_TIMEOUT,
            "command_timeout": settings.DB_COMMAND_TIMEOUT,
        },
    )
    logger.info(
        f"Database engine created (pool_size={settings.DB_POOL_SIZE}, "
        f"max_overflow={settings.DB_MAX_OVERFLOW})"
    )
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create a session factory bound to ``engine``"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_default_session_maker() -> async_sessionmaker:
    """Process-wide session factory, created on first use"""
    global _default_engine, _default_session_maker
    if _default_session_maker is None:
        _default_engine = create_engine_from_settings()
        _default_session_maker = create_session_factory(_default_engine)
    return _default_session_maker


async def dispose_default_engine():
    """Release the process-wide pool (API shutdown)"""
    global _default_engine, _default_session_maker
    if _default_engine is not None:
        await _default_engine.dispose()
    _default_engine = None
    _default_session_maker = None


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session"""
    async with get_default_session_maker()() as session:
        yield session


# ============================================================================
# Validated connection acquisition
# ============================================================================

# SQLSTATE class 28 (invalid authorization) and insufficient_privilege
AUTH_SQLSTATE_CLASS = "28"
INSUFFICIENT_PRIVILEGE = "42501"


def sqlstate_of(exc: BaseException) -> Optional[str]:
    """Find the PostgreSQL SQLSTATE behind a (possibly wrapped) driver error"""
    current = exc
    for _ in range(8):
        if current is None:
            return None
        code = getattr(current, "sqlstate", None) or getattr(current, "pgcode", None)
        if isinstance(code, str):
            return code
        current = getattr(current, "orig", None) or current.__cause__
    return None


async def acquire_connection(engine: AsyncEngine) -> AsyncConnection:
    """
    Check out a connection and prove it with a round trip.

    The ``SELECT 1`` opens the transaction the caller goes on to use.

    Raises:
        DatabaseAuthorizationError: Credentials or privileges rejected
        DatabaseConnectionError: Anything else (refused, timeout, reset)
    """
    conn = None
    try:
        conn = await engine.connect()
        await conn.execute(text("SELECT 1"))
        return conn
    except Exception as e:
        if conn is not None:
            await close_quietly(conn)

        code = sqlstate_of(e)
        if code and (code.startswith(AUTH_SQLSTATE_CLASS) or code == INSUFFICIENT_PRIVILEGE):
            raise DatabaseAuthorizationError(
                "Database rejected the worker's credentials",
                context={"sqlstate": code},
                original_exception=e
            )
        raise DatabaseConnectionError(
            f"Failed to acquire database connection: {e}",
            context={"sqlstate": code},
            original_exception=e
        )


async def connect_with_retry(
    engine: AsyncEngine,
    max_attempts: Optional[int] = None,
    base_delay: Optional[float] = None
) -> AsyncConnection:
    """Acquire a validated connection through the retry helper"""
    return await with_retry(
        lambda: acquire_connection(engine),
        max_attempts=max_attempts or settings.MAX_RETRIES,
        base_delay=settings.RETRY_BASE_DELAY if base_delay is None else base_delay,
        jitter=settings.RETRY_JITTER,
        description="Database connection",
    )


async def close_quietly(conn: AsyncConnection):
    """Return a connection to the pool, logging instead of raising"""
    try:
        await conn.close()
    except Exception as e:
        logger.error(f"Failed to release database connection: {e}")
