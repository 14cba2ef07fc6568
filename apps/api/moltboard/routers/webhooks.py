from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from moltboard.deps import get_store
from moltboard.integrations.service import InboundReply, authenticate_api_key, record_inbound_reply
from moltboard.integrations.webhook import verify_signature
from moltboard.schemas import InboundWebhookIn, InboundWebhookOut
from moltboard.security import decrypt_integration_secret
from moltboard.store import SqlBoardStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

API_KEY_HEADER = "X-Moltboard-Api-Key"
# Older gateways still sign with the Clawdbot header name.
INBOUND_SIGNATURE_HEADERS = ("X-OpenClaw-Signature", "X-Clawdbot-Signature")


@router.post("/openclaw", response_model=InboundWebhookOut)
async def openclaw_inbound(request: Request, store: SqlBoardStore = Depends(get_store)) -> InboundWebhookOut:
  api_key = request.headers.get(API_KEY_HEADER)
  if not api_key:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing API key")
  integration = await authenticate_api_key(store, api_key)
  if not integration:
    logger.warning("inbound webhook rejected: invalid api key")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")

  raw = await request.body()
  secret = decrypt_integration_secret(integration.webhook_secret_encrypted)
  signature = next((request.headers.get(h) for h in INBOUND_SIGNATURE_HEADERS if request.headers.get(h)), None)
  if not verify_signature(raw, signature, secret):
    logger.warning("inbound webhook rejected: bad signature integration=%s", integration.id)
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

  try:
    payload = InboundWebhookIn.model_validate_json(raw)
  except ValidationError as exc:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload") from exc

  message = payload.message
  content = (message.content if message else None) or ""
  if not content.strip():
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message content is required")

  original_id = (payload.meta.originalMessageId if payload.meta else None) or message.replyTo
  stored = await record_inbound_reply(
    store,
    integration,
    InboundReply(
      content=content,
      board_id=message.boardId,
      task_id=message.taskId,
      task_title=message.taskTitle,
      reply_to=original_id,
    ),
  )
  await store.commit()
  return InboundWebhookOut(success=True, messageId=stored.id)


@router.get("/openclaw")
async def openclaw_health() -> dict:
  return {"status": "ok", "supportsApiKey": True, "signatureHeaders": list(INBOUND_SIGNATURE_HEADERS)}
