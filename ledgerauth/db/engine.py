"""Async SQLAlchemy engine and session management."""

import logging
from collections.abc import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ledgerauth.core.errors import ServerError
from ledgerauth.core.settings import DatabaseSettings

logger = logging.getLogger(__name__)


class _EngineHolder:
    """Lazy singleton for the async session factory."""

    factory: async_sessionmaker[AsyncSession] | None = None


_holder = _EngineHolder()


def _get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Lazily create the async session factory."""
    if _holder.factory is None:
        db = DatabaseSettings()
        engine = create_async_engine(
            db.async_url,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
        )
        _holder.factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _holder.factory


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency that yields a request-scoped database session.

    Nothing is committed here: code after ``yield`` runs once the response
    has been sent, too late to report a failed write. Handlers that write
    call ``commit_or_fail`` before returning. Anything left uncommitted is
    rolled back when the session closes.
    """
    factory = _get_session_factory()
    async with factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def commit_or_fail(session: AsyncSession) -> None:
    """Commit the request's writes, turning a database failure into a 500.

    The transaction is rolled back first so the session stays usable for
    the error response.
    """
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Database commit failed")
        raise ServerError("Internal server error") from exc
