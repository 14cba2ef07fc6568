from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status

from moltboard.actors import parse_actor
from moltboard.agent.task_creator import handle_chat_message
from moltboard.deps import RequestContext, get_request_context, get_store
from moltboard.integrations.webhook import OutboundMessage, send_to_integration
from moltboard.models import ChatMessage
from moltboard.schemas import ChatListMetaOut, ChatListOut, ChatMessageIn, ChatMessageOut, ChatPostOut
from moltboard.store import SqlBoardStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


def _message_out(m: ChatMessage) -> ChatMessageOut:
  return ChatMessageOut(
    id=m.id,
    boardId=m.board_id,
    author=m.author_kind,
    authorId=m.author_id,
    content=m.content,
    status=m.status,
    taskId=m.task_id,
    taskTitle=m.task_title,
    replyTo=m.reply_to,
    type=m.message_type,
    metadata=dict(m.meta or {}),
    createdAt=m.created_at,
  )


@router.get("", response_model=ChatListOut)
async def list_messages(
  boardId: str | None = Query(default=None, max_length=64),
  since: datetime | None = None,
  limit: int = Query(default=50, ge=1, le=200),
  pendingOnly: bool = False,
  ctx: RequestContext = Depends(get_request_context),
  store: SqlBoardStore = Depends(get_store),
) -> ChatListOut:
  rows = await store.list_chat_messages(
    tenant_id=ctx.tenant_id, board_id=boardId, since=since, limit=limit, pending_only=pendingOnly
  )
  return ChatListOut(
    messages=[_message_out(m) for m in rows],
    meta=ChatListMetaOut(count=len(rows), since=since, latestTimestamp=rows[-1].created_at if rows else None),
  )


@router.post("", response_model=ChatPostOut, status_code=status.HTTP_201_CREATED)
async def post_message(
  payload: ChatMessageIn,
  ctx: RequestContext = Depends(get_request_context),
  store: SqlBoardStore = Depends(get_store),
) -> ChatPostOut:
  content = payload.content.strip()
  if not content:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message content is required")
  if payload.boardId:
    board = await store.find_board(payload.boardId)
    if not board or board.tenant_id != ctx.tenant_id:
      raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Board not found")

  msg = ChatMessage(
    tenant_id=ctx.tenant_id,
    board_id=payload.boardId,
    author_kind="human",
    author_id=ctx.user_id,
    content=content,
    status="pending",
  )
  await store.insert_chat_message(msg)

  out = ChatPostOut(message=_message_out(msg))
  if payload.boardId:
    try:
      async with store.db.begin_nested():
        handled = await handle_chat_message(
          store, content, payload.boardId, parse_actor(msg.author_kind, msg.author_id), message_id=msg.id
        )
    except Exception:
      # Task detection is best effort; the user's message still posts.
      logger.exception("task detection failed message=%s board=%s", msg.id, payload.boardId)
    else:
      out.taskCreated = handled.task_created
      out.taskId = handled.task_id
      out.responseMessageId = handled.response_message_id
  await store.commit()

  integration = await store.find_integration(tenant_id=ctx.tenant_id, user_id=ctx.user_id)
  if integration and integration.enabled and integration.webhook_url:
    delivery = await send_to_integration(
      store,
      integration,
      OutboundMessage(id=msg.id, content=msg.content, author=ctx.user_id, created_at=msg.created_at),
    )
    await store.commit()
    out.delivered = delivery.success
  return out
