from __future__ import annotations

import logging
from dataclasses import dataclass

from moltboard.models import ChatMessage, Integration, utcnow
from moltboard.security import api_key_hash, api_key_prefix, encrypt_secret, new_api_key, new_webhook_secret
from moltboard.store import BoardStore

logger = logging.getLogger(__name__)


class IntegrationConfigError(ValueError):
  pass


@dataclass(frozen=True)
class IntegrationCredentials:
  """Raw credentials; only ever returned at creation or regeneration."""

  api_key: str | None = None
  webhook_secret: str | None = None


@dataclass(frozen=True)
class InboundReply:
  content: str
  board_id: str | None = None
  task_id: str | None = None
  task_title: str | None = None
  reply_to: str | None = None


def _validate_url(url: str | None) -> str | None:
  if url is None:
    return None
  u = url.strip()
  if u and not u.lower().startswith("http"):
    raise IntegrationConfigError("Invalid webhook URL")
  return u or None


def _apply_api_key(integration: Integration, api_key: str) -> None:
  integration.api_key_hash = api_key_hash(api_key)
  integration.api_key_prefix = api_key_prefix(api_key)


async def save_integration(
  store: BoardStore,
  *,
  tenant_id: str,
  user_id: str,
  webhook_url: str | None = None,
  enabled: bool | None = None,
  regenerate_api_key: bool = False,
  regenerate_secret: bool = False,
) -> tuple[Integration, IntegrationCredentials, bool]:
  """Create or update the caller's integration. Returns (integration, credentials, created)."""
  url = _validate_url(webhook_url)
  existing = await store.find_integration(tenant_id=tenant_id, user_id=user_id)

  if existing is None:
    if not url:
      raise IntegrationConfigError("Webhook URL is required")
    api_key = new_api_key()
    secret = new_webhook_secret()
    integration = Integration(
      tenant_id=tenant_id,
      user_id=user_id,
      enabled=True if enabled is None else bool(enabled),
      webhook_url=url,
      webhook_secret_encrypted=encrypt_secret(secret),
      status="pending",
    )
    _apply_api_key(integration, api_key)
    await store.insert_integration(integration)
    logger.info("integration created tenant=%s user=%s id=%s", tenant_id, user_id, integration.id)
    return integration, IntegrationCredentials(api_key=api_key, webhook_secret=secret), True

  values: dict = {}
  if webhook_url is not None and url != existing.webhook_url:
    values["webhook_url"] = url
    # New endpoint has not been proven yet.
    values["status"] = "pending"
  if enabled is not None:
    values["enabled"] = bool(enabled)

  api_key: str | None = None
  secret: str | None = None
  if regenerate_api_key:
    api_key = new_api_key()
    values["api_key_hash"] = api_key_hash(api_key)
    values["api_key_prefix"] = api_key_prefix(api_key)
  if regenerate_secret:
    secret = new_webhook_secret()
    values["webhook_secret_encrypted"] = encrypt_secret(secret)

  if values:
    await store.update_integration_status(existing, **values)
  return existing, IntegrationCredentials(api_key=api_key, webhook_secret=secret), False


async def authenticate_api_key(store: BoardStore, api_key: str | None) -> Integration | None:
  key = (api_key or "").strip()
  if not key:
    return None
  integration = await store.find_integration_by_api_key_hash(api_key_hash(key))
  if not integration or not integration.enabled:
    return None
  return integration


async def record_inbound_reply(store: BoardStore, integration: Integration, reply: InboundReply) -> ChatMessage:
  """
  Store a gateway reply as an agent message and close out the message it answers.

  Everything is scoped to the integration's tenant: a `reply_to` owned by another
  tenant is left untouched, and foreign board or task ids are dropped.
  """
  tenant_id = integration.tenant_id
  if reply.reply_to:
    await store.mark_message_complete(reply.reply_to, tenant_id=tenant_id)

  board_id = reply.board_id
  if board_id:
    board = await store.find_board(board_id)
    if not board or board.tenant_id != tenant_id:
      logger.warning("inbound reply names unknown board=%s integration=%s", board_id, integration.id)
      board_id = None

  task_id, task_title = reply.task_id, reply.task_title
  if task_id:
    task = await store.find_task(task_id)
    if not task or task.tenant_id != tenant_id:
      logger.warning("inbound reply names unknown task=%s integration=%s", task_id, integration.id)
      task_id, task_title = None, None

  msg = ChatMessage(
    tenant_id=tenant_id,
    board_id=board_id,
    author_kind="agent",
    author_id="openclaw",
    content=reply.content.strip(),
    status="complete",
    task_id=task_id,
    task_title=task_title,
    reply_to=reply.reply_to,
    meta={"integrationId": integration.id},
  )
  await store.insert_chat_message(msg)

  now = utcnow()
  await store.update_integration_status(
    integration,
    status="connected",
    last_connected_at=now,
    last_message_at=now,
    messages_received=(integration.messages_received or 0) + 1,
  )
  logger.info("inbound reply stored integration=%s message=%s", integration.id, msg.id)
  return msg
