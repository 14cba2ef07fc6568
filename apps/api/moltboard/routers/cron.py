from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from moltboard.agent.briefing import generate_daily_briefings
from moltboard.agent.stuck import detect_and_alert_stuck_tasks
from moltboard.deps import get_store, require_cron
from moltboard.schemas import DailyBriefingOut, StuckCheckOut
from moltboard.store import SqlBoardStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(require_cron)])


@router.api_route("/check-stuck", methods=["GET", "POST"], response_model=StuckCheckOut)
async def check_stuck(store: SqlBoardStore = Depends(get_store)) -> StuckCheckOut:
  logger.info("cron check-stuck started")
  result = await detect_and_alert_stuck_tasks(store)
  return StuckCheckOut(
    success=result.success,
    tasksChecked=result.tasks_checked,
    stuckFound=result.stuck_found,
    alertsSent=result.alerts_sent,
    errors=result.errors,
  )


@router.api_route("/daily-briefing", methods=["GET", "POST"], response_model=DailyBriefingOut)
async def daily_briefing(store: SqlBoardStore = Depends(get_store)) -> DailyBriefingOut:
  logger.info("cron daily-briefing started")
  result = await generate_daily_briefings(store)
  return DailyBriefingOut(
    success=result.success,
    boardsProcessed=result.boards_processed,
    messagesPosted=result.messages_posted,
    errors=result.errors,
  )
