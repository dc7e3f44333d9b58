import asyncio
from typing import Any, AsyncGenerator, Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from libs.common.config import get_settings
from libs.common.errors import TransactionTimeoutError
from libs.common.logging import get_logger
from libs.db.config import get_sessionmaker

logger = get_logger(__name__)

T = TypeVar("T")


async def get_async_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that yields an async database session.

    Each request gets its own session; services receive it explicitly.
    """
    async with get_sessionmaker()() as session:
        try:
            yield session
        finally:
            await session.close()


async def run_bounded(
    db: AsyncSession,
    work: Callable[[], Awaitable[T]],
    label: str,
    **context: Any,
) -> T:
    """Run ``work`` as one transaction within the configured time bounds.

    Acquiring the transactional connection may take at most
    ``ORDER_TX_MAX_WAIT_SECONDS`` and ``work`` itself at most
    ``ORDER_TX_TIMEOUT_SECONDS``. Exceeding either rolls back and raises
    TransactionTimeoutError. Any other failure rolls back and propagates.
    ``work`` is responsible for committing.
    """
    settings = get_settings()

    try:
        await asyncio.wait_for(
            db.connection(), timeout=settings.ORDER_TX_MAX_WAIT_SECONDS
        )
    except asyncio.TimeoutError as e:
        await db.rollback()
        logger.warning("%s could not start in time (%s)", label, context)
        raise TransactionTimeoutError(
            "Timed out waiting for a database connection", **context
        ) from e

    try:
        return await asyncio.wait_for(
            work(), timeout=settings.ORDER_TX_TIMEOUT_SECONDS
        )
    except asyncio.TimeoutError as e:
        await db.rollback()
        logger.warning("%s timed out (%s)", label, context)
        raise TransactionTimeoutError(
            f"{label} exceeded its time limit", **context
        ) from e
    except Exception:
        await db.rollback()
        raise
