from __future__ import annotations

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from time import monotonic
from typing import Any

import httpx

from moltboard.config import settings
from moltboard.metrics import runtime_metrics
from moltboard.models import Integration, utcnow
from moltboard.security import IntegrationSecretDecryptError, decrypt_integration_secret
from moltboard.store import BoardStore

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Moltboard-Signature"
TIMESTAMP_HEADER = "X-Moltboard-Timestamp"
TEST_HEADER = "X-Moltboard-Test"

TEST_MESSAGE = "\U0001F517 Connection test from Moltboard! If you see this, your OpenClaw integration is working."


@dataclass(frozen=True)
class OutboundMessage:
  id: str
  content: str
  author: str
  created_at: datetime


@dataclass(frozen=True)
class DeliveryResult:
  success: bool
  error: str | None = None
  latency_ms: float | None = None
  response_id: str | None = None
  status_code: int | None = None


def sign_payload(body: str | bytes, secret: str) -> str:
  raw = body.encode("utf-8") if isinstance(body, str) else body
  return hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).hexdigest()


def verify_signature(body: str | bytes, signature: str | None, secret: str | None) -> bool:
  # No secret configured means signatures are not enforced.
  if not secret:
    return True
  if not signature:
    return False
  expected = sign_payload(body, secret)
  return hmac.compare_digest(signature.strip().lower().encode("utf-8"), expected.encode("ascii"))


def _iso(dt: datetime) -> str:
  return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def build_payload(
  integration: Integration, message: OutboundMessage, *, now: datetime | None = None, is_test: bool = False
) -> str:
  now = now or utcnow()
  meta: dict[str, Any] = {
    "tenantId": integration.tenant_id,
    "userId": integration.user_id,
    "integrationId": integration.id,
    "timestamp": _iso(now),
  }
  if is_test:
    meta["isTest"] = True
  payload = {
    "type": "message",
    "message": {
      "id": message.id,
      "content": message.content,
      "author": message.author,
      "createdAt": _iso(message.created_at),
    },
    "meta": meta,
  }
  # Serialized once; the signature covers these exact bytes.
  return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def _response_id(response: httpx.Response) -> str | None:
  try:
    data = response.json()
  except ValueError:
    return None
  if not isinstance(data, dict):
    return None
  rid = data.get("messageId") or data.get("id")
  return str(rid) if rid is not None else None


async def _record_failure(store: BoardStore, integration: Integration, error: str) -> None:
  await store.update_integration_status(
    integration,
    status="error",
    last_error=error[: settings.webhook_error_max_chars],
    last_error_at=utcnow(),
  )


async def _record_success(store: BoardStore, integration: Integration, *, count_message: bool) -> None:
  now = utcnow()
  values: dict[str, Any] = {"status": "connected", "last_error": None, "last_connected_at": now}
  if count_message:
    values["last_message_at"] = now
    values["messages_sent"] = (integration.messages_sent or 0) + 1
  await store.update_integration_status(integration, **values)


async def send_to_integration(
  store: BoardStore,
  integration: Integration,
  message: OutboundMessage,
  *,
  client: httpx.AsyncClient | None = None,
  is_test: bool = False,
) -> DeliveryResult:
  """
  Deliver one message to the integration's webhook.

  - One attempt, bounded by `webhook_timeout_seconds`.
  - Failures are returned (and recorded on the integration), never raised.
  """
  if not integration.enabled:
    return DeliveryResult(success=False, error="Integration disabled")
  if not integration.webhook_url:
    return DeliveryResult(success=False, error="No webhook URL configured")

  try:
    secret = decrypt_integration_secret(integration.webhook_secret_encrypted)
  except IntegrationSecretDecryptError as exc:
    await _record_failure(store, integration, str(exc))
    return DeliveryResult(success=False, error=str(exc))

  now = utcnow()
  body = build_payload(integration, message, now=now, is_test=is_test)
  headers = {
    "Content-Type": "application/json",
    SIGNATURE_HEADER: sign_payload(body, secret),
    TIMESTAMP_HEADER: _iso(now),
  }
  if is_test:
    headers[TEST_HEADER] = "true"

  start = monotonic()
  try:
    if client is not None:
      response = await client.post(integration.webhook_url, content=body.encode("utf-8"), headers=headers)
    else:
      async with httpx.AsyncClient(timeout=settings.webhook_timeout_seconds) as c:
        response = await c.post(integration.webhook_url, content=body.encode("utf-8"), headers=headers)
  except httpx.HTTPError as exc:
    latency_ms = (monotonic() - start) * 1000.0
    error = str(exc) or exc.__class__.__name__
    logger.warning("webhook delivery failed integration=%s error=%s", integration.id, error)
    runtime_metrics.observe_webhook(False, latency_ms)
    await _record_failure(store, integration, error)
    return DeliveryResult(success=False, error=error, latency_ms=round(latency_ms, 2))

  latency_ms = (monotonic() - start) * 1000.0
  runtime_metrics.observe_webhook(response.is_success, latency_ms)
  if not response.is_success:
    error = f"HTTP {response.status_code}: {response.text}"
    logger.warning("webhook delivery rejected integration=%s status=%s", integration.id, response.status_code)
    await _record_failure(store, integration, error)
    return DeliveryResult(
      success=False, error=error[: settings.webhook_error_max_chars], latency_ms=round(latency_ms, 2), status_code=response.status_code
    )

  await _record_success(store, integration, count_message=not is_test)
  logger.info("webhook delivered integration=%s latency_ms=%.1f", integration.id, latency_ms)
  return DeliveryResult(
    success=True, latency_ms=round(latency_ms, 2), response_id=_response_id(response), status_code=response.status_code
  )


async def send_test_message(
  store: BoardStore, integration: Integration, *, client: httpx.AsyncClient | None = None
) -> DeliveryResult:
  now = utcnow()
  message = OutboundMessage(id=f"test_{int(now.timestamp() * 1000)}", content=TEST_MESSAGE, author="moltboard", created_at=now)
  return await send_to_integration(store, integration, message, client=client, is_test=True)
