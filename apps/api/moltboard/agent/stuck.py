from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from moltboard.agent.analysis import StuckTask, analyze_board_state
from moltboard.agent.messenger import ProactiveMessenger
from moltboard.config import settings
from moltboard.nlp.extract import local_tz
from moltboard.nlp.formatting import format_date
from moltboard.store import BoardStore, DuplicateMessageError

logger = logging.getLogger(__name__)

STUCK_ALERT_TYPE = "stuck-task-alert"


@dataclass
class StuckDetectionResult:
  success: bool = True
  tasks_checked: int = 0
  stuck_found: int = 0
  alerts_sent: int = 0
  errors: list[str] = field(default_factory=list)


@dataclass
class StuckSummary:
  stuck_tasks: list[StuckTask]
  total_in_progress: int


def stuck_alert_dedupe_key(task_id: str, now: datetime) -> str:
  day = now.astimezone(local_tz()).date().isoformat()
  return f"{STUCK_ALERT_TYPE}:{task_id}:{day}"


def format_stuck_alert(stuck: StuckTask) -> str:
  lines = [
    "\U0001F6A8 **Task Alert**\n",
    f'"**{stuck.task.title}**" has been in progress for **{stuck.days_stuck} days** without activity.\n',
    f"Last activity: {format_date(stuck.last_activity_at)}\n",
    "Need help? I can:",
    "• Break this into smaller subtasks",
    "• Research solutions or approaches",
    "• Mark it as blocked and move on",
    "• Draft content if it's a writing task\n",
    "Just let me know! \U0001F525",
  ]
  return "\n".join(lines)


async def _alert_board(
  store: BoardStore, board_id: str, result: StuckDetectionResult, *, now: datetime, threshold_days: int
) -> None:
  board = await store.find_board(board_id)
  if not board:
    return
  analysis = await analyze_board_state(store, board, now=now, threshold_days=threshold_days)
  result.tasks_checked += analysis.total_tasks
  result.stuck_found += len(analysis.stuck_tasks)

  messenger = ProactiveMessenger(store, tenant_id=board.tenant_id, board_id=board.id)
  since = now - timedelta(hours=settings.alert_dedupe_hours)
  sent_here = 0
  for stuck in analysis.stuck_tasks:
    if sent_here >= settings.stuck_alerts_per_board:
      break
    if await store.find_recent_alert(task_id=stuck.task.id, message_type=STUCK_ALERT_TYPE, since=since):
      continue
    try:
      await messenger.send(
        format_stuck_alert(stuck),
        {
          "type": STUCK_ALERT_TYPE,
          "taskId": stuck.task.id,
          "taskTitle": stuck.task.title,
          "daysStuck": stuck.days_stuck,
        },
        dedupe_key=stuck_alert_dedupe_key(stuck.task.id, now),
      )
    except DuplicateMessageError:
      # Another run posted this alert between our check and insert.
      logger.info("stuck alert already posted task=%s", stuck.task.id)
      continue
    await store.commit()
    sent_here += 1
    result.alerts_sent += 1


async def detect_and_alert_stuck_tasks(
  store: BoardStore, *, now: datetime | None = None, threshold_days: int | None = None
) -> StuckDetectionResult:
  now = now or datetime.now(timezone.utc)
  threshold = settings.stuck_threshold_days if threshold_days is None else threshold_days
  result = StuckDetectionResult()

  board_ids = [b.id for b in await store.list_boards()]
  for board_id in board_ids:
    try:
      await _alert_board(store, board_id, result, now=now, threshold_days=threshold)
    except Exception as exc:
      logger.exception("stuck-task check failed board=%s", board_id)
      await store.rollback()
      result.errors.append(f"Board {board_id}: {exc}")

  result.success = not result.errors
  logger.info(
    "stuck-task check done checked=%s stuck=%s alerts=%s errors=%s",
    result.tasks_checked,
    result.stuck_found,
    result.alerts_sent,
    len(result.errors),
  )
  return result


async def get_stuck_tasks_summary(
  store: BoardStore, board_id: str, *, now: datetime | None = None, threshold_days: int | None = None
) -> StuckSummary:
  board = await store.find_board(board_id)
  if not board:
    return StuckSummary(stuck_tasks=[], total_in_progress=0)
  analysis = await analyze_board_state(store, board, now=now, threshold_days=threshold_days)
  return StuckSummary(stuck_tasks=analysis.stuck_tasks, total_in_progress=analysis.in_progress)
