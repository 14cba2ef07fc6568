from __future__ import annotations

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from moltboard.config import settings
from moltboard.models import Base

engine = create_async_engine(settings.database_url, pool_pre_ping=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def init_models() -> None:
  # Creates missing tables only; existing tables are never altered.
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
