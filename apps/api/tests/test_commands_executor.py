from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from factories import NOW, add_task, column_id, seed_board
from moltboard.actors import Human
from moltboard.agent.commands import CommandError, execute_command, resolve_target_column
from moltboard.models import Activity, Task
from moltboard.nlp.commands import parse_command


async def run(store, board, text: str, **kwargs):
  return await execute_command(store, parse_command(text, now=NOW), board, now=NOW, **kwargs)


async def _activities(db, task_id: str) -> list[Activity]:
  res = await db.execute(select(Activity).where(Activity.task_id == task_id).order_by(Activity.created_at))
  return list(res.scalars().all())


@pytest.mark.anyio
async def test_create_lands_in_todo(db, store) -> None:
  board = await seed_board(db)
  await add_task(db, board, "Existing", order=2)

  out = await run(store, board, "create task: Write report high priority due tomorrow")
  assert out.action == "created"
  assert out.message == '✅ Created task: "Write report" (P1) due Oct 20, 2026'
  task = out.task
  assert task.column_id == column_id(board, "todo")
  assert task.order == 3
  assert task.priority == "P1"
  assert task.due_date == datetime(2026, 10, 20, 23, 59, 59, tzinfo=timezone.utc)
  assert task.created_by == "api"

  acts = await _activities(db, task.id)
  assert [(a.action, a.actor) for a in acts] == [("created", "api")]


@pytest.mark.anyio
async def test_create_records_human_actor(db, store) -> None:
  board = await seed_board(db)
  out = await run(store, board, "add: buy paper", actor=Human(user_id="user-9"))
  assert out.task.created_by == "user-9"
  assert out.task.priority == "P2"
  assert out.message == '✅ Created task: "buy paper"'


@pytest.mark.anyio
async def test_move_appends_and_compacts(db, store) -> None:
  board = await seed_board(db)
  first = await add_task(db, board, "Fix login", order=0)
  await add_task(db, board, "Write docs", order=1)
  third = await add_task(db, board, "Pay invoice", order=2)
  await add_task(db, board, "Already going", column="in-progress", order=0)

  out = await run(store, board, "move Write docs to in progress")
  assert out.action == "moved"
  assert out.message == '✅ Moved "Write docs" to In Progress'
  assert out.task.column_id == column_id(board, "in-progress")
  assert out.task.order == 1
  assert first.order == 0
  assert third.order == 1

  acts = await _activities(db, out.task.id)
  assert acts[-1].action == "moved"
  assert acts[-1].details["from"] == "To Do"
  assert acts[-1].details["to"] == "In Progress"


@pytest.mark.anyio
async def test_complete_moves_to_done(db, store) -> None:
  board = await seed_board(db)
  await add_task(db, board, "Fix login")
  out = await run(store, board, "mark fix login as done")
  assert out.task.column_id == column_id(board, "done")
  assert out.message == '✅ Moved "Fix login" to Done'


@pytest.mark.anyio
async def test_priority_and_due(db, store) -> None:
  board = await seed_board(db)
  task = await add_task(db, board, "Fix login")

  out = await run(store, board, "set priority of Fix login to urgent")
  assert out.action == "priority_changed"
  assert task.priority == "P0"
  acts = await _activities(db, task.id)
  assert acts[-1].details == {"from": "P2", "to": "P0"}

  out = await run(store, board, "set due date of Fix login to friday")
  assert out.action == "due_set"
  assert out.message == '✅ Set due date of "Fix login" to Oct 23, 2026'
  assert task.due_date == datetime(2026, 10, 23, 23, 59, 59, tzinfo=timezone.utc)


@pytest.mark.anyio
async def test_archive_all_done(db, store) -> None:
  board = await seed_board(db)
  await add_task(db, board, "Shipped A", column="done", order=0)
  await add_task(db, board, "Shipped B", column="done", order=1)
  open_task = await add_task(db, board, "Still open")

  out = await run(store, board, "archive all done tasks")
  assert out.message == "✅ Archived 2 completed tasks"
  assert {t.title for t in out.tasks} == {"Shipped A", "Shipped B"}
  assert all(t.archived and t.archived_by == "api" for t in out.tasks)

  remaining = [t.id for t in await store.list_tasks(board.id)]
  assert remaining == [open_task.id]


@pytest.mark.anyio
async def test_archive_single_task(db, store) -> None:
  board = await seed_board(db)
  await add_task(db, board, "Keep me", order=0)
  gone = await add_task(db, board, "Drop me", order=1)
  out = await run(store, board, "archive Drop me")
  assert out.message == '✅ Archived "Drop me"'
  assert gone.archived


@pytest.mark.anyio
async def test_queries(db, store) -> None:
  board = await seed_board(db)
  await add_task(db, board, "Late", order=0, due_date=NOW - timedelta(days=1))
  await add_task(db, board, "Due later today", order=1, due_date=NOW + timedelta(hours=2))
  await add_task(db, board, "Important", order=2, priority="P1")

  overdue = await run(store, board, "show overdue tasks")
  assert overdue.action == "query"
  assert [t.title for t in overdue.tasks] == ["Late"]
  assert overdue.message == "Found 1 task"

  high = await run(store, board, "show high priority tasks")
  assert [t.title for t in high.tasks] == ["Important"]

  listing = await run(store, board, "list tasks")
  assert [t.title for t in listing.tasks] == ["Important", "Late", "Due later today"]

  empty = await run(store, board, "find unicorns")
  assert empty.tasks == []
  assert empty.message == 'No tasks found for "unicorns"'


@pytest.mark.anyio
async def test_unknown_task_is_404(db, store) -> None:
  board = await seed_board(db)
  with pytest.raises(CommandError) as err:
    await run(store, board, "complete Nonexistent thing")
  assert err.value.status_code == 404
  assert err.value.message == 'Could not find task matching "Nonexistent thing"'


@pytest.mark.anyio
async def test_unrecognized_command_is_400(db, store) -> None:
  board = await seed_board(db)
  with pytest.raises(CommandError) as err:
    await run(store, board, "hello there")
  assert err.value.status_code == 400
  assert (await db.execute(select(Task))).scalars().all() == []


@pytest.mark.anyio
async def test_resolve_target_column(db, store) -> None:
  board = await seed_board(db, columns=(("backlog", "Backlog"), ("doing", "Doing"), ("qa", "QA / Testing"), ("shipped", "Shipped")))
  columns = await store.list_columns(board.id)
  assert resolve_target_column(columns, "todo").title == "Backlog"
  assert resolve_target_column(columns, "in_progress").title == "Doing"
  assert resolve_target_column(columns, "review").title == "QA / Testing"
  assert resolve_target_column(columns, "shipped").title == "Shipped"
  assert resolve_target_column(columns, "nowhere") is None
  assert resolve_target_column(columns, "") is None
