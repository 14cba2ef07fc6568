from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timezone

from moltboard.actors import EXTERNAL_API, Actor, actor_key
from moltboard.agent.analysis import analyze_board_state, is_in_progress
from moltboard.agent.task_creator import next_order
from moltboard.models import Board, BoardColumn, Task, utcnow
from moltboard.nlp.commands import COLUMN_CATEGORIES, ParsedCommand, resolve_column_category
from moltboard.nlp.extract import local_tz
from moltboard.nlp.formatting import format_date
from moltboard.store import BoardStore

logger = logging.getLogger(__name__)

QUERY_LIMIT = 20

# Column-title keywords used when a command names a category instead of a column.
_CATEGORY_TITLE_HINTS: dict[str, tuple[str, ...]] = {
  "todo": ("to do", "todo", "backlog"),
  "in_progress": ("in progress", "doing", "progress"),
  "review": ("review", "testing"),
  "done": ("done", "complete", "finished"),
}


class CommandError(Exception):
  def __init__(self, message: str, status_code: int = 400) -> None:
    super().__init__(message)
    self.message = message
    self.status_code = status_code


@dataclass
class CommandOutcome:
  action: str
  message: str
  task: Task | None = None
  tasks: list[Task] = field(default_factory=list)


def _find_task(tasks: list[Task], ref: str) -> Task | None:
  needle = ref.strip().lower()
  for t in tasks:
    if t.id == ref or t.title.lower() == needle:
      return t
  for t in tasks:
    if needle and needle in t.title.lower():
      return t
  return None


def _column_by_title(columns: list[BoardColumn], *hints: str) -> BoardColumn | None:
  for c in columns:
    title = (c.title or "").lower()
    if any(h in title for h in hints):
      return c
  return None


def resolve_target_column(columns: list[BoardColumn], target: str | None) -> BoardColumn | None:
  name = (target or "").strip().lower()
  if not name:
    return None
  for c in columns:
    title = (c.title or "").lower()
    if c.id == target or title == name:
      return c
  for c in columns:
    title = (c.title or "").lower()
    if name in title or (title and title in name):
      return c
  category = name if name in COLUMN_CATEGORIES else resolve_column_category(name)
  if category:
    return _column_by_title(columns, *_CATEGORY_TITLE_HINTS[category])
  return None


async def _require_task(store: BoardStore, board: Board, ref: str | None, *, include_archived: bool = False) -> Task:
  if not ref:
    raise CommandError("Could not identify which task to update")
  tasks = await store.list_tasks(board.id, include_archived=include_archived)
  task = _find_task(tasks, ref)
  if not task:
    raise CommandError(f'Could not find task matching "{ref}"', 404)
  return task


async def _compact_column(store: BoardStore, board_id: str, column_id: str) -> None:
  tasks = [t for t in await store.list_tasks(board_id) if t.column_id == column_id]
  for idx, t in enumerate(sorted(tasks, key=lambda x: x.order)):
    if t.order != idx:
      await store.update_task(t, order=idx)


async def _create(store: BoardStore, cmd: ParsedCommand, board: Board, actor: Actor) -> CommandOutcome:
  title = (cmd.params.title or "").strip()
  if not title:
    raise CommandError("Could not extract task title from command")
  columns = await store.list_columns(board.id)
  column = _column_by_title(columns, "to do", "todo", "backlog") or (columns[0] if columns else None)
  if not column:
    raise CommandError("No columns found on board")

  task = Task(
    tenant_id=board.tenant_id,
    board_id=board.id,
    column_id=column.id,
    title=title,
    order=await next_order(store, board.id, column.id),
    labels=[],
    priority=cmd.params.priority or "P2",
    due_date=cmd.params.due_date,
    created_by=actor_key(actor),
  )
  await store.insert_task(task)
  await store.insert_activity(
    task=task, action="created", actor=actor_key(actor), details={"note": f'Created via command: "{cmd.raw}"'}
  )
  message = f'✅ Created task: "{task.title}"'
  if cmd.params.priority:
    message += f" ({task.priority})"
  if task.due_date:
    message += f" due {format_date(task.due_date)}"
  return CommandOutcome(action="created", message=message, task=task)


async def _move(store: BoardStore, cmd: ParsedCommand, board: Board, actor: Actor) -> CommandOutcome:
  task = await _require_task(store, board, cmd.task_ref)
  columns = await store.list_columns(board.id)
  if cmd.type == "complete":
    target = _column_by_title(columns, "done") or resolve_target_column(columns, "done")
  else:
    target = resolve_target_column(columns, cmd.params.column)
  if not target:
    raise CommandError(f'Could not find column "{cmd.params.column or "done"}"', 404)

  source = next((c for c in columns if c.id == task.column_id), None)
  if target.id != task.column_id:
    from_column_id = task.column_id
    await store.update_task(task, column_id=target.id, order=await next_order(store, board.id, target.id))
    await _compact_column(store, board.id, from_column_id)
  await store.insert_activity(
    task=task,
    action="moved",
    actor=actor_key(actor),
    details={
      "from": source.title if source else task.column_id,
      "to": target.title,
      "note": f'Moved via command: "{cmd.raw}"',
    },
  )
  return CommandOutcome(action="moved", message=f'✅ Moved "{task.title}" to {target.title}', task=task)


async def _priority(store: BoardStore, cmd: ParsedCommand, board: Board, actor: Actor) -> CommandOutcome:
  if not cmd.task_ref or not cmd.params.priority:
    raise CommandError("Could not identify task or priority")
  task = await _require_task(store, board, cmd.task_ref)
  old = task.priority
  await store.update_task(task, priority=cmd.params.priority)
  await store.insert_activity(
    task=task, action="priority_changed", actor=actor_key(actor), details={"from": old or "none", "to": task.priority}
  )
  return CommandOutcome(
    action="priority_changed", message=f'✅ Set priority of "{task.title}" to {task.priority}', task=task
  )


async def _due(store: BoardStore, cmd: ParsedCommand, board: Board, actor: Actor) -> CommandOutcome:
  if not cmd.task_ref or not cmd.params.due_date:
    raise CommandError("Could not identify task or due date")
  task = await _require_task(store, board, cmd.task_ref)
  await store.update_task(task, due_date=cmd.params.due_date)
  await store.insert_activity(
    task=task,
    action="updated",
    actor=actor_key(actor),
    details={"field": "dueDate", "to": cmd.params.due_date.astimezone(timezone.utc).isoformat()},
  )
  return CommandOutcome(
    action="due_set", message=f'✅ Set due date of "{task.title}" to {format_date(cmd.params.due_date)}', task=task
  )


async def _archive(store: BoardStore, cmd: ParsedCommand, board: Board, actor: Actor) -> CommandOutcome:
  now = utcnow()
  if cmd.params.query == "all_done":
    done = _column_by_title(await store.list_columns(board.id), "done")
    if not done:
      raise CommandError("Could not find Done column", 404)
    archived = [t for t in await store.list_tasks(board.id) if t.column_id == done.id]
    for t in archived:
      await store.update_task(t, archived=True, archived_at=now, archived_by=actor_key(actor))
      await store.insert_activity(task=t, action="archived", actor=actor_key(actor))
    n = len(archived)
    return CommandOutcome(action="archived", message=f"✅ Archived {n} completed task{'s' if n != 1 else ''}", tasks=archived)

  task = await _require_task(store, board, cmd.task_ref)
  await store.update_task(task, archived=True, archived_at=now, archived_by=actor_key(actor))
  await _compact_column(store, board.id, task.column_id)
  await store.insert_activity(task=task, action="archived", actor=actor_key(actor))
  return CommandOutcome(action="archived", message=f'✅ Archived "{task.title}"', task=task)


async def _query(store: BoardStore, cmd: ParsedCommand, board: Board, now: datetime) -> CommandOutcome:
  query = cmd.params.query or "all"
  columns = await store.list_columns(board.id)
  columns_by_id = {c.id: c for c in columns}
  tasks = await store.list_tasks(board.id)

  if query == "overdue":
    start_of_day = datetime.combine(now.astimezone(local_tz()).date(), time.min, tzinfo=local_tz())
    tasks = [t for t in tasks if t.due_date and t.due_date < start_of_day]
  elif query == "stuck":
    analysis = await analyze_board_state(store, board, now=now)
    tasks = [s.task for s in analysis.stuck_tasks]
  elif query == "in_progress":
    tasks = [t for t in tasks if is_in_progress(t, columns_by_id)]
  elif query == "todo":
    todo = _column_by_title(columns, "to do", "todo")
    tasks = [t for t in tasks if todo and t.column_id == todo.id]
  elif query.startswith("priority:"):
    level = query.split(":", 1)[1].upper()
    tasks = [t for t in tasks if t.priority == level]
  elif query != "all":
    needle = query.lower()
    tasks = [t for t in tasks if needle in t.title.lower() or needle in (t.description or "").lower()]

  tasks = sorted(tasks, key=lambda t: (t.priority or "P9", t.order))[:QUERY_LIMIT]
  if not tasks:
    message = f'No tasks found for "{query}"'
  else:
    message = f"Found {len(tasks)} task{'s' if len(tasks) != 1 else ''}"
  return CommandOutcome(action="query", message=message, tasks=tasks)


async def execute_command(
  store: BoardStore,
  cmd: ParsedCommand,
  board: Board,
  *,
  actor: Actor = EXTERNAL_API,
  now: datetime | None = None,
) -> CommandOutcome:
  now = now or datetime.now(timezone.utc)
  if cmd.type == "create":
    outcome = await _create(store, cmd, board, actor)
  elif cmd.type in ("move", "complete"):
    outcome = await _move(store, cmd, board, actor)
  elif cmd.type == "priority":
    outcome = await _priority(store, cmd, board, actor)
  elif cmd.type == "due":
    outcome = await _due(store, cmd, board, actor)
  elif cmd.type == "archive":
    outcome = await _archive(store, cmd, board, actor)
  elif cmd.type in ("query", "list"):
    outcome = await _query(store, cmd, board, now)
  else:
    raise CommandError(
      "I didn't understand that command. Try: \"create task: ...\", \"move X to done\", \"show overdue tasks\""
    )
  logger.info("command executed board=%s type=%s action=%s", board.id, cmd.type, outcome.action)
  return outcome
