"""Engine construction — pool settings per backend, session factory behavior."""

import pytest
from sqlalchemy import text
from sqlalchemy.pool import QueuePool

from myauth.db.engine import build_engine, build_session_factory


@pytest.mark.asyncio
async def test_sqlite_engine_uses_default_pool(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'a.db'}")
    try:
        async with build_session_factory(engine)() as session:
            assert (await session.execute(text("SELECT 1"))).scalar() == 1
    finally:
        await engine.dispose()


def test_postgres_engine_has_bounded_pool():
    # Nothing connects until first use
    engine = build_engine("postgresql+asyncpg://u:p@localhost:5432/db")

    pool = engine.sync_engine.pool
    assert isinstance(pool, QueuePool)
    assert pool.size() == 5
    assert pool._max_overflow == 15
    assert pool._pre_ping is True


def test_session_factory_keeps_objects_after_commit(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'a.db'}")
    factory = build_session_factory(engine)
    assert factory.kw["expire_on_commit"] is False
