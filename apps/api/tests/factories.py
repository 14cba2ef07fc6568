from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from moltboard.models import Activity, Board, BoardColumn, Task, User

NOW = datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc)  # a Monday

DEFAULT_COLUMNS = (("todo", "To Do"), ("in-progress", "In Progress"), ("review", "Review"), ("done", "Done"))


def auth_headers(tenant_id: str = "tenant-1", user_id: str = "user-1") -> dict[str, str]:
  return {"X-Tenant-Id": tenant_id, "X-User-Id": user_id}


def column_id(board: Board, slug: str) -> str:
  return f"{slug}-{board.id[:8]}"


async def seed_board(
  db: AsyncSession,
  *,
  tenant_id: str = "tenant-1",
  name: str = "Launch",
  owner_name: str | None = "Mike Jones",
  columns: tuple[tuple[str, str], ...] = DEFAULT_COLUMNS,
  created_at: datetime | None = None,
) -> Board:
  owner_id = None
  if owner_name:
    owner = User(tenant_id=tenant_id, name=owner_name, email=f"{owner_name.split()[0].lower()}@example.com")
    db.add(owner)
    await db.flush()
    owner_id = owner.id
  board = Board(tenant_id=tenant_id, name=name, owner_id=owner_id)
  if created_at is not None:
    board.created_at = created_at
  db.add(board)
  await db.flush()
  for idx, (slug, title) in enumerate(columns):
    db.add(BoardColumn(id=column_id(board, slug), board_id=board.id, title=title, position=idx))
  await db.commit()
  return board


async def add_task(
  db: AsyncSession,
  board: Board,
  title: str,
  *,
  column: str = "todo",
  order: int = 0,
  priority: str = "P2",
  due_date: datetime | None = None,
  created_at: datetime | None = None,
  labels: list[str] | None = None,
) -> Task:
  task = Task(
    tenant_id=board.tenant_id,
    board_id=board.id,
    column_id=column_id(board, column),
    title=title,
    order=order,
    priority=priority,
    due_date=due_date,
    labels=labels or [],
    created_at=created_at or NOW,
  )
  db.add(task)
  await db.commit()
  return task


async def add_activity(db: AsyncSession, task: Task, at: datetime, action: str = "updated") -> Activity:
  a = Activity(
    tenant_id=task.tenant_id,
    board_id=task.board_id,
    task_id=task.id,
    action=action,
    actor="user-1",
    details={},
    created_at=at,
  )
  db.add(a)
  await db.commit()
  return a
