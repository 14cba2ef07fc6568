from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from moltboard.agent.commands import execute_command
from moltboard.deps import RequestContext, get_request_context, get_store
from moltboard.models import Board, Task
from moltboard.nlp.commands import parse_command
from moltboard.nlp.formatting import describe_command
from moltboard.schemas import CommandIn, CommandOut, CommandResultOut, ParsedCommandOut, TaskOut
from moltboard.store import SqlBoardStore

router = APIRouter(prefix="/commands", tags=["commands"])


def task_out(t: Task) -> TaskOut:
  return TaskOut(
    id=t.id,
    boardId=t.board_id,
    columnId=t.column_id,
    title=t.title,
    description=t.description,
    order=t.order,
    labels=list(t.labels or []),
    priority=t.priority,
    dueDate=t.due_date,
    createdBy=t.created_by,
    archived=bool(t.archived),
    createdAt=t.created_at,
    updatedAt=t.updated_at,
  )


async def resolve_board(store: SqlBoardStore, ctx: RequestContext, board_id: str | None) -> Board:
  """Named board in the caller's tenant, or the tenant's most recently created one."""
  if board_id:
    board = await store.find_board(board_id)
    if not board or board.tenant_id != ctx.tenant_id:
      raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Board not found")
    return board
  boards = await store.list_boards(tenant_id=ctx.tenant_id)
  if not boards:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No board found")
  return boards[-1]


@router.post("", response_model=CommandOut)
async def run_command(
  payload: CommandIn,
  ctx: RequestContext = Depends(get_request_context),
  store: SqlBoardStore = Depends(get_store),
) -> CommandOut:
  board = await resolve_board(store, ctx, payload.boardId)
  cmd = parse_command(payload.text)
  outcome = await execute_command(store, cmd, board)
  await store.commit()
  return CommandOut(
    success=True,
    command=ParsedCommandOut(
      type=cmd.type, description=describe_command(cmd), confidence=cmd.confidence, taskRef=cmd.task_ref
    ),
    result=CommandResultOut(
      action=outcome.action,
      message=outcome.message,
      task=task_out(outcome.task) if outcome.task else None,
      tasks=[task_out(t) for t in outcome.tasks],
    ),
  )
