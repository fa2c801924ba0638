"""
Database engine and request-scoped sessions.

WHY: Every invoice, payment and tax report query runs on an AsyncSession
bound to one request. The payment engine commits its own transaction;
everything else is committed when the route returns.
"""

from typing import Any, AsyncGenerator, Dict
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from chaching.core.config import settings


def engine_options(url: str) -> Dict[str, Any]:
    """
    Engine keyword arguments for a database URL.

    SQLite (local runs) uses a single-connection pool that rejects sizing
    arguments; PostgreSQL gets the configured pool.
    """
    options: Dict[str, Any] = {"echo": settings.DEBUG}
    if url.startswith("sqlite"):
        return options

    options.update(
        pool_pre_ping=True,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
    )
    return options


engine = create_async_engine(settings.async_database_url, **engine_options(settings.async_database_url))

# expire_on_commit=False lets services return ORM objects after the
# payment transaction commits without triggering lazy loads.
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Session for one request.

    Anything still pending when the route returns is committed; an
    exception rolls back. After the payment engine's own commit the final
    commit here is a no-op.

    Yields:
        AsyncSession: Database session for the request
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
