from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from moltboard.deps import RequestContext, get_request_context, get_store
from moltboard.integrations.service import IntegrationConfigError, save_integration
from moltboard.integrations.webhook import send_test_message
from moltboard.models import Integration
from moltboard.schemas import (
  IntegrationGetOut,
  IntegrationOut,
  IntegrationSaveOut,
  IntegrationTestOut,
  IntegrationUpsertIn,
)
from moltboard.store import SqlBoardStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations/openclaw", tags=["integrations"])


def _integration_out(i: Integration) -> IntegrationOut:
  # Never exposes the key hash or the encrypted secret.
  return IntegrationOut(
    id=i.id,
    kind=i.kind,
    enabled=bool(i.enabled),
    webhookUrl=i.webhook_url,
    apiKeyPrefix=i.api_key_prefix,
    status=i.status,
    messagesSent=i.messages_sent or 0,
    messagesReceived=i.messages_received or 0,
    lastConnectedAt=i.last_connected_at,
    lastMessageAt=i.last_message_at,
    lastError=i.last_error,
    lastErrorAt=i.last_error_at,
    createdAt=i.created_at,
    updatedAt=i.updated_at,
  )


async def _require_integration(store: SqlBoardStore, ctx: RequestContext) -> Integration:
  integration = await store.find_integration(tenant_id=ctx.tenant_id, user_id=ctx.user_id)
  if not integration:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Integration not found")
  return integration


@router.get("", response_model=IntegrationGetOut)
async def get_integration(
  ctx: RequestContext = Depends(get_request_context),
  store: SqlBoardStore = Depends(get_store),
) -> IntegrationGetOut:
  integration = await store.find_integration(tenant_id=ctx.tenant_id, user_id=ctx.user_id)
  return IntegrationGetOut(integration=_integration_out(integration) if integration else None)


@router.post("", response_model=IntegrationSaveOut)
async def upsert_integration(
  payload: IntegrationUpsertIn,
  response: Response,
  ctx: RequestContext = Depends(get_request_context),
  store: SqlBoardStore = Depends(get_store),
) -> IntegrationSaveOut:
  try:
    integration, creds, created = await save_integration(
      store,
      tenant_id=ctx.tenant_id,
      user_id=ctx.user_id,
      webhook_url=payload.webhookUrl,
      enabled=payload.enabled,
      regenerate_api_key=payload.regenerateApiKey,
      regenerate_secret=payload.regenerateSecret,
    )
  except IntegrationConfigError as exc:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
  await store.commit()
  if created:
    response.status_code = status.HTTP_201_CREATED
  return IntegrationSaveOut(
    integration=_integration_out(integration), apiKey=creds.api_key, webhookSecret=creds.webhook_secret
  )


@router.delete("")
async def delete_integration(
  ctx: RequestContext = Depends(get_request_context),
  store: SqlBoardStore = Depends(get_store),
) -> dict:
  integration = await _require_integration(store, ctx)
  await store.delete_integration(integration)
  await store.commit()
  logger.info("integration deleted tenant=%s user=%s", ctx.tenant_id, ctx.user_id)
  return {"success": True}


@router.post("/test", response_model=IntegrationTestOut)
async def test_integration(
  ctx: RequestContext = Depends(get_request_context),
  store: SqlBoardStore = Depends(get_store),
) -> IntegrationTestOut:
  integration = await _require_integration(store, ctx)
  if not integration.enabled:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Integration is disabled")
  if not integration.webhook_url:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No webhook URL configured")
  result = await send_test_message(store, integration)
  await store.commit()
  return IntegrationTestOut(
    success=result.success, error=result.error, latencyMs=result.latency_ms, statusCode=result.status_code
  )
