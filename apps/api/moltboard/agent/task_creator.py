from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from moltboard.actors import AGENT, Actor, actor_key, is_human
from moltboard.agent.messenger import ProactiveMessenger
from moltboard.config import settings
from moltboard.models import Board, Task
from moltboard.nlp.formatting import format_task_confirmation
from moltboard.nlp.intent import ParseResult, parse_task_intent, should_create_task
from moltboard.store import BoardStore

logger = logging.getLogger(__name__)

TODO_COLUMN_HINTS = ("to do", "todo", "backlog")


class BoardNotFoundError(LookupError):
  pass


class NoDestinationColumnError(RuntimeError):
  def __init__(self, board_id: str) -> None:
    super().__init__(f"Board {board_id} has no columns and no default column is configured")
    self.board_id = board_id


@dataclass
class TaskCreationResult:
  created: bool
  intent: ParseResult
  task: Task | None = None
  confirmation: str | None = None


@dataclass
class ChatHandlingResult:
  task_created: bool
  response_message_id: str | None = None
  task_id: str | None = None


async def resolve_todo_column(store: BoardStore, board_id: str) -> str:
  columns = await store.list_columns(board_id)
  for col in columns:
    title = (col.title or "").lower()
    if any(h in title for h in TODO_COLUMN_HINTS):
      return col.id
  if columns:
    return columns[0].id
  if settings.default_column_id:
    return settings.default_column_id
  raise NoDestinationColumnError(board_id)


async def next_order(store: BoardStore, board_id: str, column_id: str) -> int:
  max_order = await store.max_task_order(board_id, column_id)
  return (max_order + 1) if max_order is not None else 0


async def _require_board(store: BoardStore, board_id: str) -> Board:
  board = await store.find_board(board_id)
  if not board:
    raise BoardNotFoundError(f"Board {board_id} not found")
  return board


async def create_task_from_intent(store: BoardStore, result: ParseResult, board_id: str) -> Task:
  board = await _require_board(store, board_id)
  intent = result.intent
  column_id = await resolve_todo_column(store, board.id)

  task = Task(
    tenant_id=board.tenant_id,
    board_id=board.id,
    column_id=column_id,
    title=(intent.title or "").strip() or "Untitled Task",
    description=f'Created from chat: "{result.original_message}"',
    order=await next_order(store, board.id, column_id),
    labels=list(intent.labels or []),
    priority=intent.priority or "P2",
    due_date=intent.due_date,
    created_by=actor_key(AGENT),
  )
  await store.insert_task(task)
  await store.insert_activity(
    task=task,
    action="created",
    actor=actor_key(AGENT),
    details={"source": "chat", "intent": intent.context, "confidence": intent.confidence},
  )
  logger.info("task created from chat board=%s task=%s context=%s", board.id, task.id, intent.context)
  return task


async def process_message_for_task(
  store: BoardStore, message: str, board_id: str, *, now: datetime | None = None
) -> TaskCreationResult:
  result = parse_task_intent(message, now=now)
  if not should_create_task(result):
    return TaskCreationResult(created=False, intent=result)

  task = await create_task_from_intent(store, result, board_id)
  confirmation = format_task_confirmation(task.title, task.due_date, task.priority, task.labels)
  return TaskCreationResult(created=True, intent=result, task=task, confirmation=confirmation)


async def handle_chat_message(
  store: BoardStore,
  content: str,
  board_id: str,
  author: Actor,
  *,
  message_id: str | None = None,
  now: datetime | None = None,
) -> ChatHandlingResult:
  # Agent, system and API messages are never re-parsed.
  if not is_human(author):
    return ChatHandlingResult(task_created=False)

  result = await process_message_for_task(store, content, board_id, now=now)
  if not result.created or not result.task or not result.confirmation:
    return ChatHandlingResult(task_created=False)

  task = result.task
  messenger = ProactiveMessenger(store, tenant_id=task.tenant_id, board_id=board_id)
  response_id = await messenger.send(
    result.confirmation,
    {
      "type": "task-created",
      "taskId": task.id,
      "taskTitle": task.title,
      "intent": result.intent.intent.context,
      "confidence": result.intent.intent.confidence,
      "replyTo": message_id,
    },
  )
  return ChatHandlingResult(task_created=True, response_message_id=response_id, task_id=task.id)
