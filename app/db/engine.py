"""Async engine for the credential and roster store.

The chat service only ever reads ``integrations`` and ``team_members``, so
connections are opened in read-only transaction mode and tagged with the
service name for ``pg_stat_activity``.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

# Credential and roster lookups are single indexed selects.
STATEMENT_TIMEOUT_MS = 5000

engine: AsyncEngine | None = None
async_session_factory: async_sessionmaker[AsyncSession] | None = None


def _server_settings(application_name: str) -> dict[str, str]:
    return {
        "application_name": application_name,
        "default_transaction_read_only": "on",
        "statement_timeout": str(STATEMENT_TIMEOUT_MS),
    }


async def init_engine(
    database_url: str,
    *,
    application_name: str = "pm-companion-chat",
    pool_size: int = 5,
    max_overflow: int = 5,
) -> None:
    """Create the async engine and session factory.

    Each chat request holds a connection only for the credential and roster
    reads, before the model stream starts.

    Args:
        database_url: PostgreSQL connection string using asyncpg driver.
        application_name: Reported to the server for connection tracing.
        pool_size: Persistent connections kept in the pool.
        max_overflow: Extra connections allowed under burst load.
    """
    global engine, async_session_factory  # noqa: PLW0603

    engine = create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        connect_args={"server_settings": _server_settings(application_name)},
    )

    async_session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def dispose_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global engine, async_session_factory  # noqa: PLW0603

    if engine is not None:
        await engine.dispose()
    engine = None
    async_session_factory = None
