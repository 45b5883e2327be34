# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database connection management using SQLAlchemy async.

All agencies share one PostgreSQL database. Tenant isolation is enforced by
row level security policies that read the app.current_agency_id setting,
which set_agency_context() applies to the current transaction.

Uses SQLAlchemy 2.0 async API with asyncpg driver.

Example:
    from src.infrastructure.database.connection import (
        init_database,
        get_session,
    )

    # Initialize at application startup
    await init_database(settings)

    # Use in request handlers or jobs
    async with get_session(agency_id) as session:
        result = await session.execute(select(PaymentPlan))
        plans = result.scalars().all()
"""

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

if TYPE_CHECKING:
    from src.core.config.settings import Settings

# Module-level state for the database connection
_engine: Optional[AsyncEngine] = None
_sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None
_app_role: str = ""


class DatabaseError(Exception):
    """Base exception for database operations.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying SQLAlchemy or database error.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        """Initialize the database error.

        Args:
            message: Human-readable error description.
            original_error: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


async def init_database(settings: "Settings", null_pool: bool = False) -> None:
    """Initialize the database connection pool.

    Args:
        settings: Application settings containing database configuration.
        null_pool: Open a fresh connection per session instead of pooling.
            Dramatiq worker threads each run their own event loop, and
            asyncpg connections cannot move between loops.

    Raises:
        DatabaseError: If connection pool creation fails.
    """
    global _engine, _sessionmaker, _app_role

    _app_role = settings.database.app_role

    if null_pool:
        pool_options: dict = {"poolclass": NullPool}
    else:
        pool_options = {
            "pool_size": settings.database.pool_size,
            "max_overflow": settings.database.max_overflow,
            "pool_pre_ping": True,
            "pool_recycle": 1800,
        }

    try:
        _engine = create_async_engine(
            settings.database.url,
            echo=settings.database.echo,
            **pool_options,
        )

        _sessionmaker = async_sessionmaker(
            bind=_engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to initialize database connection", e) from e


async def close_database() -> None:
    """Close the database connection pool."""
    global _engine, _sessionmaker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _sessionmaker = None


def is_database_initialized() -> bool:
    return _engine is not None


def get_engine() -> AsyncEngine:
    """Get the database async engine.

    Raises:
        DatabaseError: If the database has not been initialized.
    """
    if _engine is None:
        raise DatabaseError("Database not initialized. Call init_database() first.")
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Get the database sessionmaker.

    Raises:
        DatabaseError: If the database has not been initialized.
    """
    if _sessionmaker is None:
        raise DatabaseError("Database not initialized. Call init_database() first.")
    return _sessionmaker


async def set_agency_context(session: AsyncSession, agency_id: str | None) -> None:
    """Scope row level security to an agency for the current transaction.

    The setting is transaction local, so it must be re-applied after each
    commit when a session spans several transactions. When an app role is
    configured the transaction also switches to it, since the connecting
    role owns the tables and is not subject to the policies.

    Args:
        session: Active session.
        agency_id: Agency to scope to. None clears the scope.
    """
    await session.execute(
        text("SELECT set_config('app.current_agency_id', :agency_id, true)"),
        {"agency_id": agency_id or ""},
    )
    if agency_id and _app_role:
        await session.execute(text(f"SET LOCAL ROLE {_app_role}"))


def scope_session(session: AsyncSession, agency_id: str) -> None:
    """Apply the agency context to every transaction the session begins.

    Services commit mid-request, which ends the transaction and with it
    the transaction local setting.

    Args:
        session: Session to scope.
        agency_id: Agency to scope to.
    """

    @event.listens_for(session.sync_session, "after_begin")
    def _after_begin(_session, _transaction, connection) -> None:
        connection.execute(
            text("SELECT set_config('app.current_agency_id', :agency_id, true)"),
            {"agency_id": agency_id},
        )
        if _app_role:
            connection.execute(text(f"SET LOCAL ROLE {_app_role}"))


@asynccontextmanager
async def get_session(agency_id: str | None = None) -> AsyncIterator[AsyncSession]:
    """Get an async session, optionally scoped to an agency.

    The session is automatically committed on success and rolled back
    on exception.

    Args:
        agency_id: Agency to apply to row level security. System jobs that
            iterate over agencies pass None and scope each query explicitly.

    Yields:
        AsyncSession for database operations.

    Raises:
        DatabaseError: If the database has not been initialized or
            if a database operation fails.
    """
    sessionmaker = get_sessionmaker()

    async with sessionmaker() as session:
        try:
            if agency_id is not None:
                scope_session(session, agency_id)
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise DatabaseError("Database operation failed", e) from e
        except Exception:
            await session.rollback()
            raise


async def check_database_connection() -> bool:
    """Check if the database is reachable.

    Returns:
        True if the database is reachable, False otherwise.
    """
    if _engine is None:
        return False

    try:
        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False
