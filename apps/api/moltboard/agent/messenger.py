from __future__ import annotations

import logging
from typing import Any

from moltboard.config import settings
from moltboard.models import ChatMessage
from moltboard.store import BoardStore

logger = logging.getLogger(__name__)


class ProactiveMessenger:
  """Posts agent-authored chat messages on behalf of the board agent."""

  def __init__(self, store: BoardStore, *, tenant_id: str, board_id: str | None = None) -> None:
    self.store = store
    self.tenant_id = tenant_id
    self.board_id = board_id

  async def send(self, content: str, metadata: dict[str, Any] | None = None, *, dedupe_key: str | None = None) -> str:
    meta = {"proactive": True, **(metadata or {})}
    msg = ChatMessage(
      tenant_id=self.tenant_id,
      board_id=self.board_id,
      author_kind="agent",
      author_id=settings.agent_author_id,
      content=content,
      status="complete",
      task_id=meta.get("taskId"),
      task_title=meta.get("taskTitle"),
      reply_to=meta.get("replyTo"),
      message_type=meta.get("type"),
      dedupe_key=dedupe_key,
      meta=meta,
    )
    await self.store.insert_chat_message(msg)
    logger.info("agent message posted board=%s type=%s id=%s", self.board_id, msg.message_type, msg.id)
    return msg.id
