from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select

from factories import NOW, add_task, seed_board
from moltboard.agent.analysis import analyze_board_state
from moltboard.agent.briefing import (
  BRIEFING_TYPE,
  focus_tasks,
  generate_briefing_for_board,
  generate_daily_briefings,
  generate_suggestions,
)
from moltboard.models import ChatMessage


@pytest.mark.anyio
async def test_briefing_content(db, store) -> None:
  board = await seed_board(db, owner_name="Mike Jones")
  await add_task(db, board, "Ship v2", column="in-progress", priority="P0", created_at=NOW)
  await add_task(db, board, "Pay vendor", priority="P2", due_date=NOW - timedelta(days=1))
  await add_task(db, board, "Draft post", priority="P3", due_date=NOW + timedelta(hours=3))
  await add_task(db, board, "Old refactor", column="in-progress", created_at=NOW - timedelta(days=8))

  text = await generate_briefing_for_board(store, board.id, now=NOW)
  assert text is not None
  assert text.startswith("Good morning, Mike! \U0001F525")
  assert "• 4 total tasks" in text
  assert "• 2 in progress" in text
  assert "• ⚠️ **1 overdue**" in text
  assert "• \U0001F4C5 1 due today" in text
  assert '• "Old refactor" (8 days without activity)' in text
  assert "• **Ship v2** \U0001F534" in text
  assert "• **Pay vendor** (⚠️ Overdue: Oct 18, 2026)" in text
  assert text.rstrip().endswith("Ready to help! Just ask. \U0001F525")


@pytest.mark.anyio
async def test_briefing_for_unknown_board(store) -> None:
  assert await generate_briefing_for_board(store, "missing", now=NOW) is None


@pytest.mark.anyio
async def test_greeting_falls_back_to_team(db, store) -> None:
  board = await seed_board(db, owner_name=None)
  text = await generate_briefing_for_board(store, board.id, now=NOW + timedelta(hours=9))
  assert text.startswith("Good evening, team!")


@pytest.mark.anyio
async def test_focus_and_suggestions(db, store) -> None:
  board = await seed_board(db)
  await add_task(db, board, "Low overdue", order=0, priority="P3", due_date=NOW - timedelta(days=2))
  await add_task(db, board, "High one", order=1, priority="P1")
  await add_task(db, board, "Critical one", order=2, priority="P0")
  await add_task(db, board, "Another high", order=3, priority="P1")
  for i in range(6):
    await add_task(db, board, f"WIP {i}", column="in-progress", order=i)

  analysis = await analyze_board_state(store, board, now=NOW)
  assert [t.title for t in focus_tasks(analysis, NOW)] == ["Critical one", "High one", "Another high"]

  suggestions = generate_suggestions(analysis)
  assert len(suggestions) == 2
  assert suggestions[0].startswith("You have 6 tasks in progress.")
  assert suggestions[1] == "1 tasks are overdue. Should I reschedule them or mark as blocked?"


@pytest.mark.anyio
async def test_daily_briefings_post_once_per_board_per_day(db, store) -> None:
  await seed_board(db, name="A", created_at=NOW - timedelta(days=2))
  await seed_board(db, name="B", owner_name=None, created_at=NOW - timedelta(days=1))

  first = await generate_daily_briefings(store, now=NOW)
  assert first.success
  assert first.boards_processed == 2
  assert first.messages_posted == 2

  again = await generate_daily_briefings(store, now=NOW + timedelta(hours=2))
  assert again.boards_processed == 2
  assert again.messages_posted == 0

  rows = (await db.execute(select(ChatMessage).where(ChatMessage.message_type == BRIEFING_TYPE))).scalars().all()
  assert len(rows) == 2
  assert all(r.author_kind == "agent" and r.meta["proactive"] for r in rows)
  assert {r.meta["stats"]["totalTasks"] for r in rows} == {0}


@pytest.mark.anyio
async def test_no_boards_is_a_successful_noop(store) -> None:
  result = await generate_daily_briefings(store, now=NOW)
  assert result.success
  assert result.boards_processed == 0
  assert result.messages_posted == 0
