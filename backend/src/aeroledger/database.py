"""Database session management with async SQLAlchemy."""
from typing import Awaitable, Callable, TypeVar

import structlog
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from aeroledger.config import settings
from aeroledger.exceptions import ConsistencyError
from aeroledger.metrics import transaction_retries_total

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Serialization failure and deadlock
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})

engine_options = {"echo": settings.debug, "pool_pre_ping": True}
if not settings.database_url.startswith("sqlite"):
    engine_options.update(pool_size=20, max_overflow=10)

# Create async engine
engine = create_async_engine(settings.database_url, **engine_options)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


def is_retryable(exc: BaseException) -> bool:
    """Whether a failed unit of work may succeed when run again from scratch."""
    if isinstance(exc, ConsistencyError):
        return True
    if isinstance(exc, DBAPIError):
        code = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
        return code in RETRYABLE_SQLSTATES
    return False


async def run_in_transaction(
    session: AsyncSession,
    work: Callable[[], Awaitable[T]],
    operation: str = "unit_of_work",
    max_attempts: int | None = None,
) -> T:
    """
    Run ``work`` and commit it, retrying the whole unit on transient failures.

    Every attempt starts from a rolled back session, so ``work`` must load
    what it changes through the session rather than reuse earlier results.
    Consistency errors, serialization failures and deadlocks are retried up
    to ``transaction_max_attempts`` times; anything else propagates at once.

    Args:
        session: Request session
        work: Coroutine factory doing the writes without committing
        operation: Name used in logs and metrics
        max_attempts: Override for ``settings.transaction_max_attempts``

    Returns:
        Whatever ``work`` returned on the attempt that committed
    """
    attempts = max_attempts or settings.transaction_max_attempts
    attempt = 1
    while True:
        try:
            result = await work()
            await session.commit()
            return result
        except (ConsistencyError, DBAPIError) as exc:
            await session.rollback()
            if not is_retryable(exc) or attempt >= attempts:
                logger.error(
                    "transaction_failed",
                    operation=operation,
                    attempt=attempt,
                    max_attempts=attempts,
                    error=str(exc),
                )
                raise
            transaction_retries_total.labels(operation=operation).inc()
            logger.warning(
                "transaction_retry",
                operation=operation,
                attempt=attempt,
                max_attempts=attempts,
                error=str(exc),
            )
            attempt += 1


# Declarative base for all models
Base = declarative_base()
