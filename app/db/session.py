"""Database session dependency for FastAPI routes."""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from app.db import engine as _engine


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a read-only async database session.

    The chat service never writes, so the transaction is always rolled back
    when the request is done.

    Raises:
        RuntimeError: If the session factory has not been initialized.
    """
    if _engine.async_session_factory is None:
        msg = "Database session factory not initialized. Call init_engine() first."
        raise RuntimeError(msg)

    async with _engine.async_session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()
