from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from moltboard.agent.analysis import BoardAnalysis, analyze_board_state, greeting, is_in_progress
from moltboard.agent.messenger import ProactiveMessenger
from moltboard.config import settings
from moltboard.models import Board, Task
from moltboard.nlp.extract import local_tz
from moltboard.nlp.formatting import format_task_line
from moltboard.store import BoardStore, DuplicateMessageError

logger = logging.getLogger(__name__)

BRIEFING_TYPE = "daily-briefing"
MAX_STUCK_LISTED = 3
MAX_FOCUS = 3
MAX_SUGGESTIONS = 2
BUSY_IN_PROGRESS = 5


@dataclass
class BriefingResult:
  success: bool = True
  boards_processed: int = 0
  messages_posted: int = 0
  errors: list[str] = field(default_factory=list)


def focus_tasks(analysis: BoardAnalysis, now: datetime) -> list[Task]:
  p0 = [t for t in analysis.tasks if t.priority == "P0"]
  p1 = [t for t in analysis.tasks if t.priority == "P1"]
  overdue = [t for t in analysis.tasks if t.due_date and t.due_date < now and t.priority not in ("P0", "P1")]
  return (p0 + p1 + overdue)[:MAX_FOCUS]


def generate_suggestions(analysis: BoardAnalysis) -> list[str]:
  out: list[str] = []
  if analysis.in_progress > BUSY_IN_PROGRESS:
    out.append(
      f"You have {analysis.in_progress} tasks in progress. Consider finishing some before starting new ones."
    )
  if analysis.stuck_tasks:
    worst = analysis.stuck_tasks[0]
    out.append(f'"{worst.task.title}" has been stuck for {worst.days_stuck} days. Want me to help break it down?')
  if analysis.overdue > 0:
    out.append(f"{analysis.overdue} tasks are overdue. Should I reschedule them or mark as blocked?")
  undated = sum(1 for t in analysis.tasks if not t.due_date and is_in_progress(t, analysis.columns_by_id))
  if undated > 2:
    out.append(f"{undated} in-progress tasks have no due date. Want me to suggest deadlines?")
  return out[:MAX_SUGGESTIONS]


def format_briefing(analysis: BoardAnalysis, *, name: str, now: datetime | None = None) -> str:
  now = now or datetime.now(timezone.utc)
  lines = [
    f"{greeting(now)}, {name}! \U0001F525\n",
    "Here's your board overview:\n",
    "**\U0001F4CA Status**",
    f"• {analysis.total_tasks} total tasks",
    f"• {analysis.in_progress} in progress",
  ]
  if analysis.overdue > 0:
    lines.append(f"• ⚠️ **{analysis.overdue} overdue**")
  if analysis.due_today > 0:
    lines.append(f"• \U0001F4C5 {analysis.due_today} due today")
  if analysis.due_soon > 0 and analysis.due_soon != analysis.due_today:
    lines.append(f"• \U0001F5D3️ {analysis.due_soon} due in next {settings.due_soon_days} days")

  if analysis.stuck_tasks:
    lines.append("\n**\U0001F6A8 Stuck Tasks**")
    for stuck in analysis.stuck_tasks[:MAX_STUCK_LISTED]:
      lines.append(f'• "{stuck.task.title}" ({stuck.days_stuck} days without activity)')
    extra = len(analysis.stuck_tasks) - MAX_STUCK_LISTED
    if extra > 0:
      lines.append(f"• ...and {extra} more")

  focus = focus_tasks(analysis, now)
  if focus:
    lines.append("\n**\U0001F3AF Suggested Focus**")
    lines.extend(format_task_line(t, now) for t in focus)

  suggestions = generate_suggestions(analysis)
  if suggestions:
    lines.append("\n**\U0001F4A1 Suggestions**")
    lines.extend(f"• {s}" for s in suggestions)

  lines.append("\n---")
  lines.append("Ready to help! Just ask. \U0001F525")
  return "\n".join(lines)


async def _greeting_name(store: BoardStore, board: Board) -> str:
  if board.owner_id:
    owner = await store.find_user(board.owner_id)
    if owner and owner.name:
      return owner.name.split()[0]
  return "team"


async def generate_briefing_for_board(store: BoardStore, board_id: str, *, now: datetime | None = None) -> str | None:
  board = await store.find_board(board_id)
  if not board:
    return None
  analysis = await analyze_board_state(store, board, now=now)
  return format_briefing(analysis, name=await _greeting_name(store, board), now=now)


async def _post_briefing(store: BoardStore, board_id: str, *, now: datetime) -> bool:
  board = await store.find_board(board_id)
  if not board:
    return False
  analysis = await analyze_board_state(store, board, now=now)
  text = format_briefing(analysis, name=await _greeting_name(store, board), now=now)
  messenger = ProactiveMessenger(store, tenant_id=board.tenant_id, board_id=board.id)
  day = now.astimezone(local_tz()).date().isoformat()
  try:
    await messenger.send(
      text,
      {
        "type": BRIEFING_TYPE,
        "generatedAt": now.isoformat(),
        "stats": {
          "totalTasks": analysis.total_tasks,
          "inProgress": analysis.in_progress,
          "overdue": analysis.overdue,
          "stuckCount": len(analysis.stuck_tasks),
        },
      },
      dedupe_key=f"{BRIEFING_TYPE}:{board.id}:{day}",
    )
  except DuplicateMessageError:
    logger.info("briefing already posted board=%s day=%s", board.id, day)
    return False
  await store.commit()
  return True


async def generate_daily_briefings(store: BoardStore, *, now: datetime | None = None) -> BriefingResult:
  now = now or datetime.now(timezone.utc)
  result = BriefingResult()

  board_ids = [b.id for b in await store.list_boards()]
  result.boards_processed = len(board_ids)
  for board_id in board_ids:
    try:
      if await _post_briefing(store, board_id, now=now):
        result.messages_posted += 1
    except Exception as exc:
      logger.exception("daily briefing failed board=%s", board_id)
      await store.rollback()
      result.errors.append(f"Board {board_id}: {exc}")

  result.success = not result.errors
  logger.info(
    "daily briefings done boards=%s posted=%s errors=%s",
    result.boards_processed,
    result.messages_posted,
    len(result.errors),
  )
  return result
