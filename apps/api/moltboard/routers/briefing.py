from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from moltboard.agent.briefing import generate_briefing_for_board
from moltboard.agent.stuck import get_stuck_tasks_summary
from moltboard.deps import RequestContext, get_request_context, get_store
from moltboard.routers.commands import resolve_board, task_out
from moltboard.schemas import BriefingPreviewOut, StuckSummaryOut, StuckTaskOut
from moltboard.store import SqlBoardStore

router = APIRouter(prefix="/briefing", tags=["briefing"])


@router.get("", response_model=BriefingPreviewOut)
async def preview_briefing(
  boardId: str | None = Query(default=None, max_length=64),
  ctx: RequestContext = Depends(get_request_context),
  store: SqlBoardStore = Depends(get_store),
) -> BriefingPreviewOut:
  board = await resolve_board(store, ctx, boardId)
  content = await generate_briefing_for_board(store, board.id)
  if content is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Board not found")
  return BriefingPreviewOut(boardId=board.id, content=content)


@router.get("/stuck", response_model=StuckSummaryOut)
async def stuck_summary(
  boardId: str | None = Query(default=None, max_length=64),
  ctx: RequestContext = Depends(get_request_context),
  store: SqlBoardStore = Depends(get_store),
) -> StuckSummaryOut:
  board = await resolve_board(store, ctx, boardId)
  summary = await get_stuck_tasks_summary(store, board.id)
  return StuckSummaryOut(
    boardId=board.id,
    totalInProgress=summary.total_in_progress,
    stuckTasks=[
      StuckTaskOut(task=task_out(s.task), daysStuck=s.days_stuck, lastActivityAt=s.last_activity_at)
      for s in summary.stuck_tasks
    ],
  )
