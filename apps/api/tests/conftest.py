from __future__ import annotations

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["TIMEZONE"] = "UTC"
os.environ.pop("CRON_SECRET", None)
os.environ.pop("DEFAULT_COLUMN_ID", None)

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from moltboard.deps import get_db
from moltboard.main import app
from moltboard.metrics import runtime_metrics
from moltboard.models import Base
from moltboard.store import SqlBoardStore


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
async def engine():
  # One shared in-memory database per test.
  eng = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
  async with eng.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
  yield eng
  await eng.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
  return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
  async with session_factory() as session:
    yield session


@pytest.fixture
def store(db) -> SqlBoardStore:
  return SqlBoardStore(db)


@pytest.fixture
async def client(session_factory) -> AsyncClient:
  async def _get_db():
    async with session_factory() as session:
      yield session

  app.dependency_overrides[get_db] = _get_db
  runtime_metrics.reset()
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c
  app.dependency_overrides.clear()
