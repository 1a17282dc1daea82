import asyncio
import functools
from sqlalchemy.exc import SQLAlchemyError
from core.config import settings
from core.exceptions import DependencyError
from core.logger import logger

STORAGE_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError)


def storage_guard(read_only: bool = False):
    """
    Turn storage failures of a service method into DependencyError.

    Read-only methods are bounded by STORAGE_TIMEOUT_SECONDS and retried
    STORAGE_READ_RETRIES times. Writes are never retried because a submission
    create is not idempotent, and they are not cancelled from outside: a
    cancellation after commit would report a failure for a stored row. Writes
    are bounded by the driver's connect and command timeouts instead (see
    db/session.py). On failure the service's session is rolled back so no
    partial write survives.
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            attempts = 1 + (settings.STORAGE_READ_RETRIES if read_only else 0)
            for attempt in range(1, attempts + 1):
                try:
                    if read_only:
                        return await asyncio.wait_for(func(self, *args, **kwargs), settings.STORAGE_TIMEOUT_SECONDS)
                    return await func(self, *args, **kwargs)
                except STORAGE_ERRORS as e:
                    await rollback_session(self)
                    logger.warning(
                        "Storage operation failed",
                        operation=func.__qualname__,
                        attempt=attempt,
                        error=repr(e),
                    )
                    if attempt == attempts:
                        raise DependencyError() from e
        return wrapper
    return decorator


async def rollback_session(service):
    """Roll back the service's session, logging instead of raising if that fails too."""
    db = getattr(service, "db", None)
    if db is None:
        return
    try:
        await db.rollback()
    except STORAGE_ERRORS as e:
        logger.warning("Rollback failed", error=repr(e))
