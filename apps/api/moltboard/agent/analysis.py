from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone

from moltboard.config import settings
from moltboard.models import Board, BoardColumn, Task
from moltboard.nlp.extract import local_tz
from moltboard.store import BoardStore


@dataclass(frozen=True)
class StuckTask:
  task: Task
  days_stuck: int
  last_activity_at: datetime


@dataclass
class BoardAnalysis:
  board: Board
  total_tasks: int
  by_column: dict[str, int]
  in_progress: int
  overdue: int
  due_today: int
  due_soon: int
  stuck_tasks: list[StuckTask] = field(default_factory=list)
  tasks: list[Task] = field(default_factory=list)
  columns_by_id: dict[str, BoardColumn] = field(default_factory=dict)


def greeting(now: datetime | None = None) -> str:
  now = now or datetime.now(timezone.utc)
  hour = now.astimezone(local_tz()).hour
  if hour < 12:
    return "Good morning"
  if hour < 17:
    return "Good afternoon"
  return "Good evening"


def is_in_progress(task: Task, columns_by_id: dict[str, BoardColumn]) -> bool:
  col_id = task.column_id or ""
  if col_id in settings.in_progress_column_id_set() or "progress" in col_id.lower():
    return True
  col = columns_by_id.get(col_id)
  return bool(col and "progress" in (col.title or "").lower())


def find_stuck_tasks(
  tasks: list[Task],
  last_activity: dict[str, datetime],
  columns_by_id: dict[str, BoardColumn],
  *,
  now: datetime,
  threshold_days: int,
) -> list[StuckTask]:
  cutoff = now - timedelta(days=threshold_days)
  out: list[StuckTask] = []
  for t in tasks:
    if not is_in_progress(t, columns_by_id):
      continue
    last = last_activity.get(t.id) or t.created_at
    # Inclusive: exactly `threshold_days` of silence counts as stuck.
    if last > cutoff:
      continue
    days = int((now - last).total_seconds() // 86400)
    out.append(StuckTask(task=t, days_stuck=days, last_activity_at=last))
  out.sort(key=lambda s: s.days_stuck, reverse=True)
  return out


async def analyze_board_state(
  store: BoardStore,
  board: Board,
  *,
  now: datetime | None = None,
  threshold_days: int | None = None,
) -> BoardAnalysis:
  now = now or datetime.now(timezone.utc)
  threshold = settings.stuck_threshold_days if threshold_days is None else threshold_days

  tasks = await store.list_tasks(board.id)
  columns_by_id = {c.id: c for c in await store.list_columns(board.id)}
  last_activity = await store.last_activity_by_task(board.id)

  local_now = now.astimezone(local_tz())
  today_start = datetime.combine(local_now.date(), time.min, tzinfo=local_tz())
  today_end = today_start + timedelta(days=1)
  soon_end = now + timedelta(days=settings.due_soon_days)

  dated = [t for t in tasks if t.due_date]
  return BoardAnalysis(
    board=board,
    total_tasks=len(tasks),
    by_column=dict(Counter(t.column_id or "unknown" for t in tasks)),
    in_progress=sum(1 for t in tasks if is_in_progress(t, columns_by_id)),
    overdue=sum(1 for t in dated if t.due_date < now),
    due_today=sum(1 for t in dated if today_start <= t.due_date < today_end),
    due_soon=sum(1 for t in dated if now <= t.due_date <= soon_end),
    stuck_tasks=find_stuck_tasks(tasks, last_activity, columns_by_id, now=now, threshold_days=threshold),
    tasks=tasks,
    columns_by_id=columns_by_id,
  )
