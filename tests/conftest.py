from typing import AsyncIterator, Iterator

import pytest
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from orm_extensions.config import get_settings
from orm_extensions.infrastructure.database.merge import clear_merge_cache
from orm_extensions.infrastructure.database.session import DatabaseSessionFactory
from tests.models import Base


def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture(autouse=True)
def _fresh_caches(monkeypatch) -> Iterator[None]:
    monkeypatch.delenv("ORM_EXTENSIONS_MERGE_DIALECT", raising=False)
    get_settings.cache_clear()
    clear_merge_cache()
    yield
    get_settings.cache_clear()
    clear_merge_cache()


@pytest.fixture
def engine() -> Iterator[Engine]:
    engine = create_engine("sqlite://")
    event.listen(engine, "connect", _enable_foreign_keys)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine) -> Iterator[Session]:
    with Session(engine) as session:
        yield session


@pytest.fixture
async def session_factory() -> AsyncIterator[DatabaseSessionFactory]:
    factory = DatabaseSessionFactory("sqlite+aiosqlite:///:memory:")
    event.listen(factory.engine.sync_engine, "connect", _enable_foreign_keys)
    async with factory.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield factory
    await factory.dispose()


@pytest.fixture
async def async_session(session_factory) -> AsyncIterator[AsyncSession]:
    async with session_factory.get_session() as session:
        yield session
