from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select

from factories import NOW, add_activity, add_task, seed_board
from moltboard.agent.analysis import analyze_board_state
from moltboard.agent.stuck import (
  STUCK_ALERT_TYPE,
  detect_and_alert_stuck_tasks,
  format_stuck_alert,
  get_stuck_tasks_summary,
  stuck_alert_dedupe_key,
)
from moltboard.models import ChatMessage
from moltboard.store import SqlBoardStore


async def _alerts(db) -> list[ChatMessage]:
  res = await db.execute(select(ChatMessage).where(ChatMessage.message_type == STUCK_ALERT_TYPE))
  return list(res.scalars().all())


@pytest.mark.anyio
async def test_threshold_is_inclusive(db, store) -> None:
  board = await seed_board(db)
  old = await add_task(db, board, "Silent for five", column="in-progress", created_at=NOW - timedelta(days=5))
  edge = await add_task(db, board, "Exactly three", column="in-progress", created_at=NOW - timedelta(days=10))
  await add_activity(db, edge, NOW - timedelta(days=3))
  fresh = await add_task(db, board, "Touched yesterday", column="in-progress", created_at=NOW - timedelta(days=10))
  await add_activity(db, fresh, NOW - timedelta(days=2, hours=23))
  await add_task(db, board, "Old but not started", column="todo", created_at=NOW - timedelta(days=30))

  analysis = await analyze_board_state(store, board, now=NOW, threshold_days=3)
  stuck = [(s.task.title, s.days_stuck) for s in analysis.stuck_tasks]
  assert stuck == [("Silent for five", 5), ("Exactly three", 3)]
  assert analysis.in_progress == 3
  assert analysis.total_tasks == 4
  assert old.id in {s.task.id for s in analysis.stuck_tasks}


@pytest.mark.anyio
async def test_injected_threshold(db, store) -> None:
  board = await seed_board(db)
  await add_task(db, board, "Two days", column="in-progress", created_at=NOW - timedelta(days=2))
  assert (await analyze_board_state(store, board, now=NOW, threshold_days=3)).stuck_tasks == []
  assert len((await analyze_board_state(store, board, now=NOW, threshold_days=1)).stuck_tasks) == 1


@pytest.mark.anyio
async def test_alerts_are_posted_once(db, store) -> None:
  board = await seed_board(db)
  task = await add_task(db, board, "Migrate billing", column="in-progress", created_at=NOW - timedelta(days=6))
  task_id = task.id

  first = await detect_and_alert_stuck_tasks(store, now=NOW)
  assert first.success
  assert first.tasks_checked == 1
  assert first.stuck_found == 1
  assert first.alerts_sent == 1

  second = await detect_and_alert_stuck_tasks(store, now=NOW + timedelta(hours=1))
  assert second.stuck_found == 1
  assert second.alerts_sent == 0

  alerts = await _alerts(db)
  assert len(alerts) == 1
  alert = alerts[0]
  assert alert.task_id == task_id
  assert alert.author_kind == "agent"
  assert alert.dedupe_key == stuck_alert_dedupe_key(task_id, NOW)
  assert alert.meta["daysStuck"] == 6
  assert "**6 days**" in alert.content


@pytest.mark.anyio
async def test_dedupe_key_blocks_a_racing_duplicate(db, store) -> None:
  board = await seed_board(db)
  task = await add_task(db, board, "Race me", column="in-progress", created_at=NOW - timedelta(days=4))
  db.add(
    ChatMessage(
      tenant_id=board.tenant_id,
      board_id=board.id,
      author_kind="agent",
      author_id="moltbot",
      content="earlier alert",
      message_type="something-else",
      dedupe_key=stuck_alert_dedupe_key(task.id, NOW),
    )
  )
  await db.commit()

  result = await detect_and_alert_stuck_tasks(store, now=NOW)
  assert result.success
  assert result.alerts_sent == 0
  assert await _alerts(db) == []


@pytest.mark.anyio
async def test_alerts_capped_per_board(db, store) -> None:
  board = await seed_board(db)
  for i in range(5):
    await add_task(db, board, f"Stuck {i}", column="in-progress", order=i, created_at=NOW - timedelta(days=4 + i))

  result = await detect_and_alert_stuck_tasks(store, now=NOW)
  assert result.stuck_found == 5
  assert result.alerts_sent == 3
  titles = sorted(a.task_title for a in await _alerts(db))
  assert titles == ["Stuck 2", "Stuck 3", "Stuck 4"]


class _BrokenBoardStore:
  """Delegates to a real store but fails when listing one board's tasks."""

  def __init__(self, inner: SqlBoardStore, broken_board_id: str) -> None:
    self._inner = inner
    self._broken = broken_board_id

  def __getattr__(self, name: str):
    return getattr(self._inner, name)

  async def list_tasks(self, board_id: str, *, include_archived: bool = False):
    if board_id == self._broken:
      raise RuntimeError("boom")
    return await self._inner.list_tasks(board_id, include_archived=include_archived)


@pytest.mark.anyio
async def test_one_failing_board_does_not_stop_the_run(db, store) -> None:
  bad = await seed_board(db, name="Bad", created_at=NOW - timedelta(days=2))
  good = await seed_board(db, name="Good", owner_name=None, created_at=NOW - timedelta(days=1))
  bad_id = bad.id
  await add_task(db, good, "Still stuck", column="in-progress", created_at=NOW - timedelta(days=9))

  result = await detect_and_alert_stuck_tasks(_BrokenBoardStore(store, bad_id), now=NOW)
  assert not result.success
  assert result.errors == [f"Board {bad_id}: boom"]
  assert result.alerts_sent == 1


@pytest.mark.anyio
async def test_summary_and_alert_text(db, store) -> None:
  board = await seed_board(db)
  await add_task(db, board, "Write proposal", column="in-progress", created_at=NOW - timedelta(days=3))
  await add_task(db, board, "Just started", column="in-progress", created_at=NOW)

  summary = await get_stuck_tasks_summary(store, board.id, now=NOW)
  assert summary.total_in_progress == 2
  assert [s.task.title for s in summary.stuck_tasks] == ["Write proposal"]

  text = format_stuck_alert(summary.stuck_tasks[0])
  assert text.startswith("\U0001F6A8 **Task Alert**")
  assert '"**Write proposal**" has been in progress for **3 days** without activity.' in text
  assert "Last activity: Oct 16, 2026" in text

  empty = await get_stuck_tasks_summary(store, "no-such-board", now=NOW)
  assert empty.stuck_tasks == [] and empty.total_in_progress == 0
