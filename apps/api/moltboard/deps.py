from __future__ import annotations

import secrets
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from moltboard.actors import Human
from moltboard.config import settings
from moltboard.db import SessionLocal
from moltboard.store import SqlBoardStore


async def get_db() -> AsyncSession:
  async with SessionLocal() as session:
    yield session


async def get_store(db: AsyncSession = Depends(get_db)) -> SqlBoardStore:
  return SqlBoardStore(db)


@dataclass(frozen=True)
class RequestContext:
  tenant_id: str
  user_id: str

  @property
  def actor(self) -> Human:
    return Human(user_id=self.user_id)


async def get_request_context(
  tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
  user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> RequestContext:
  # Identity is asserted by the auth gateway in front of this service.
  t = (tenant_id or "").strip()
  u = (user_id or "").strip()
  if not t or not u:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
  return RequestContext(tenant_id=t, user_id=u)


async def require_cron(authorization: str | None = Header(default=None)) -> None:
  expected = (settings.cron_secret or "").strip()
  # Unset secret leaves cron routes open (local development).
  if not expected:
    return
  if not authorization or not authorization.lower().startswith("bearer "):
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
  provided = authorization.split(" ", 1)[1].strip()
  if not secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
