"""
Transaction boundary for mutating load operations.

Commits on success, rolls back on any failure, and translates store errors:
a stale versioned write becomes ConcurrentModificationError, anything else
raised by SQLAlchemy becomes StorageFailureError. Domain errors pass through.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from backend.app.core.exceptions import (
    AppException, ConcurrentModificationError, StorageFailureError
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def unit_of_work(db: AsyncSession, operation: str = "operation") -> AsyncIterator[AsyncSession]:
    """
    Run the block as one atomic write.

    Usage:
        async with unit_of_work(db, "transition"):
            load.status = LoadStatus.AT_PICKUP
            await EventLog.append(db, load.id, ...)
    """
    try:
        yield db
        await db.commit()
    except AppException:
        await db.rollback()
        raise
    except StaleDataError as exc:
        await db.rollback()
        logger.warning("Concurrent modification during %s: %s", operation, exc)
        raise ConcurrentModificationError(details={"operation": operation}) from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Storage failure during %s: %s", operation, exc)
        raise StorageFailureError(
            message=f"Storage failure during {operation}",
            details={"operation": operation, "error": type(exc).__name__}
        ) from exc
    except BaseException:
        await db.rollback()
        raise
