"""
Transaction scope shared by the application services.

Each unit of work is one session and one transaction. Any SQLAlchemy error
inside it is rolled back and surfaced as StorageError, which callers treat
as fatal for the current operation.

Dependencies: sqlalchemy
System role: Transaction boundary for service-layer writes
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chunk_index.core.exceptions import StorageError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def unit_of_work(
    session_factory: async_sessionmaker[AsyncSession],
    operation: str,
) -> AsyncIterator[AsyncSession]:
    """
    Open a session, begin a transaction and commit on exit.

    Args:
        session_factory: Factory from create_session_factory
        operation: Name recorded on StorageError

    Yields:
        AsyncSession: Session with an open transaction

    Raises:
        StorageError: On any SQLAlchemy error (the transaction is rolled back)
    """
    try:
        async with session_factory() as session:
            async with session.begin():
                yield session
    except SQLAlchemyError as e:
        logger.error(f"{__name__}:unit_of_work - {operation} failed: {e}", exc_info=True)
        raise StorageError(f"Storage failure during {operation}", operation=operation, details={"error": str(e)}) from e
