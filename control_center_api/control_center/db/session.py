from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Union
from uuid import UUID

from sqlalchemy import event, text
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import Session

from .config import get_settings

# session.info key holding the tenant a session is bound to
TENANT_INFO_KEY = "tenant_id"
_SET_TENANT = text("SELECT set_config('app.tenant_id', :tenant_id, true)")

_ENGINE: AsyncEngine | None = None
_SESSION_MAKER: async_sessionmaker[AsyncSession] | None = None


def _ensure_engine_initialized() -> None:
    """
    Lazily initialize the AsyncEngine and session maker.
    """
    global _ENGINE, _SESSION_MAKER
    if _ENGINE is None:
        settings = get_settings()
        _ENGINE = create_async_engine(
            settings.async_database_url,
            echo=settings.SQL_ECHO,
            pool_pre_ping=True,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
        )
    if _SESSION_MAKER is None:
        _SESSION_MAKER = async_sessionmaker(
            bind=_ENGINE, expire_on_commit=False, autoflush=False, autocommit=False
        )


# PUBLIC_INTERFACE
def get_engine() -> AsyncEngine:
    """Return the global AsyncEngine instance."""
    _ensure_engine_initialized()
    assert _ENGINE is not None
    return _ENGINE


# PUBLIC_INTERFACE
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield an AsyncSession suitable for FastAPI dependency injection.
    """
    _ensure_engine_initialized()
    assert _SESSION_MAKER is not None
    async with _SESSION_MAKER() as session:
        yield session


@event.listens_for(Session, "after_begin")
def _apply_tenant_setting(session: Session, transaction, connection: Connection) -> None:
    """
    Scope every transaction of a tenant-bound session to its tenant.

    A commit returns the connection to the pool, so the setting is applied
    transaction-locally each time the session begins on a connection.
    """
    tenant_id = session.info.get(TENANT_INFO_KEY)
    if tenant_id is not None:
        connection.execute(_SET_TENANT, {"tenant_id": tenant_id})


# PUBLIC_INTERFACE
async def set_current_tenant(
    session: AsyncSession, tenant_id: Union[str, UUID]
) -> None:
    """
    Bind the session to a tenant.

    RLS policies reference it as current_setting('app.tenant_id', true). The
    transaction already open, if any, is scoped at once; later transactions are
    scoped by the after_begin listener.
    """
    session.info[TENANT_INFO_KEY] = str(tenant_id)
    if session.in_transaction():
        await session.execute(_SET_TENANT, {"tenant_id": str(tenant_id)})


# PUBLIC_INTERFACE
@asynccontextmanager
async def tenant_context(
    session: AsyncSession, tenant_id: Union[str, UUID]
) -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager that binds the session to a tenant for its duration.

    Usage:
        async with tenant_context(session, tenant_id):
            # all queries inside are filtered by RLS
            ...
    """
    previous = session.info.get(TENANT_INFO_KEY)
    await set_current_tenant(session, tenant_id)
    try:
        yield session
    finally:
        if previous is None:
            session.info.pop(TENANT_INFO_KEY, None)
        else:
            session.info[TENANT_INFO_KEY] = previous


# PUBLIC_INTERFACE
@asynccontextmanager
async def open_tenant_session(tenant_id: Union[str, UUID]) -> AsyncGenerator[AsyncSession, None]:
    """
    Open a standalone tenant-scoped session outside of request dependency injection
    (WebSocket handlers, webhook ingestion, seeding).
    """
    _ensure_engine_initialized()
    assert _SESSION_MAKER is not None
    async with _SESSION_MAKER() as session:
        async with tenant_context(session, tenant_id):
            yield session
