from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import Session

from control_center.db.session import TENANT_INFO_KEY, set_current_tenant, tenant_context


@pytest.fixture
def recording_engine():
    """SQLite engine with a set_config() that records (name, value, is_local) calls."""
    engine = create_engine("sqlite://")
    calls = []

    @event.listens_for(engine, "connect")
    def _register(dbapi_connection, _record):
        def set_config(name, value, is_local):
            calls.append((name, value, bool(is_local)))
            return value

        dbapi_connection.create_function("set_config", 3, set_config)

    engine.calls = calls
    yield engine
    engine.dispose()


def test_every_transaction_is_scoped_after_commit(recording_engine):
    tenant_id = str(uuid4())
    with Session(recording_engine, info={TENANT_INFO_KEY: tenant_id}) as session:
        session.execute(text("SELECT 1"))
        session.commit()
        session.execute(text("SELECT 1"))
        session.rollback()
        session.execute(text("SELECT 1"))

    assert recording_engine.calls == [("app.tenant_id", tenant_id, True)] * 3


def test_unbound_session_sets_nothing(recording_engine):
    with Session(recording_engine) as session:
        session.execute(text("SELECT 1"))
        session.commit()
    assert recording_engine.calls == []


def _async_session(in_transaction):
    return SimpleNamespace(
        info={},
        in_transaction=MagicMock(return_value=in_transaction),
        execute=AsyncMock(),
    )


@pytest.mark.asyncio
async def test_set_current_tenant_scopes_open_transaction():
    session = _async_session(in_transaction=True)
    tenant_id = uuid4()

    await set_current_tenant(session, tenant_id)

    assert session.info[TENANT_INFO_KEY] == str(tenant_id)
    assert session.execute.await_args.args[1] == {"tenant_id": str(tenant_id)}


@pytest.mark.asyncio
async def test_set_current_tenant_defers_until_begin():
    session = _async_session(in_transaction=False)
    await set_current_tenant(session, uuid4())
    session.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_tenant_context_restores_binding():
    session = _async_session(in_transaction=False)
    outer, inner = uuid4(), uuid4()

    async with tenant_context(session, outer):
        async with tenant_context(session, inner):
            assert session.info[TENANT_INFO_KEY] == str(inner)
        assert session.info[TENANT_INFO_KEY] == str(outer)
    assert TENANT_INFO_KEY not in session.info
