from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from fastapi.encoders import jsonable_encoder
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from moltboard.models import Activity, Board, BoardColumn, ChatMessage, Integration, Task, User, utcnow


class DuplicateMessageError(RuntimeError):
  def __init__(self, dedupe_key: str) -> None:
    super().__init__(f"Message already posted: {dedupe_key}")
    self.dedupe_key = dedupe_key


class BoardStore(Protocol):
  async def find_board(self, board_id: str) -> Board | None: ...
  async def list_boards(self, *, tenant_id: str | None = None) -> list[Board]: ...
  async def list_columns(self, board_id: str) -> list[BoardColumn]: ...
  async def find_user(self, user_id: str) -> User | None: ...
  async def find_task(self, task_id: str) -> Task | None: ...
  async def list_tasks(self, board_id: str, *, include_archived: bool = False) -> list[Task]: ...
  async def max_task_order(self, board_id: str, column_id: str) -> int | None: ...
  async def insert_task(self, task: Task) -> Task: ...
  async def update_task(self, task: Task, **values: Any) -> Task: ...
  async def insert_activity(
    self, *, task: Task, action: str, actor: str, details: dict[str, Any] | None = None
  ) -> Activity: ...
  async def last_activity_by_task(self, board_id: str) -> dict[str, datetime]: ...
  async def insert_chat_message(self, message: ChatMessage) -> ChatMessage: ...
  async def find_chat_message(self, message_id: str) -> ChatMessage | None: ...
  async def list_chat_messages(
    self,
    *,
    tenant_id: str,
    board_id: str | None = None,
    since: datetime | None = None,
    limit: int = 50,
    pending_only: bool = False,
  ) -> list[ChatMessage]: ...
  async def find_recent_alert(self, *, task_id: str, message_type: str, since: datetime) -> ChatMessage | None: ...
  async def mark_message_complete(self, message_id: str, *, tenant_id: str) -> bool: ...
  async def find_integration(self, *, tenant_id: str, user_id: str) -> Integration | None: ...
  async def find_integration_by_api_key_hash(self, key_hash: str) -> Integration | None: ...
  async def insert_integration(self, integration: Integration) -> Integration: ...
  async def update_integration_status(self, integration: Integration, **values: Any) -> Integration: ...
  async def delete_integration(self, integration: Integration) -> None: ...
  async def commit(self) -> None: ...
  async def rollback(self) -> None: ...


class SqlBoardStore:
  """BoardStore over one AsyncSession. Writes flush; callers decide when to commit."""

  def __init__(self, db: AsyncSession) -> None:
    self.db = db

  async def find_board(self, board_id: str) -> Board | None:
    res = await self.db.execute(select(Board).where(Board.id == board_id))
    return res.scalar_one_or_none()

  async def list_boards(self, *, tenant_id: str | None = None) -> list[Board]:
    q = select(Board).where(Board.archived.is_(False))
    if tenant_id:
      q = q.where(Board.tenant_id == tenant_id)
    res = await self.db.execute(q.order_by(Board.created_at.asc(), Board.id.asc()))
    return list(res.scalars().all())

  async def list_columns(self, board_id: str) -> list[BoardColumn]:
    res = await self.db.execute(
      select(BoardColumn).where(BoardColumn.board_id == board_id).order_by(BoardColumn.position.asc(), BoardColumn.id.asc())
    )
    return list(res.scalars().all())

  async def find_user(self, user_id: str) -> User | None:
    res = await self.db.execute(select(User).where(User.id == user_id))
    return res.scalar_one_or_none()

  async def find_task(self, task_id: str) -> Task | None:
    res = await self.db.execute(select(Task).where(Task.id == task_id))
    return res.scalar_one_or_none()

  async def list_tasks(self, board_id: str, *, include_archived: bool = False) -> list[Task]:
    q = select(Task).where(Task.board_id == board_id)
    if not include_archived:
      q = q.where(Task.archived.is_(False))
    res = await self.db.execute(q.order_by(Task.column_id.asc(), Task.order.asc()))
    return list(res.scalars().all())

  async def max_task_order(self, board_id: str, column_id: str) -> int | None:
    res = await self.db.execute(
      select(func.max(Task.order)).where(Task.board_id == board_id, Task.column_id == column_id, Task.archived.is_(False))
    )
    return res.scalar_one()

  async def insert_task(self, task: Task) -> Task:
    self.db.add(task)
    await self.db.flush()
    return task

  async def update_task(self, task: Task, **values: Any) -> Task:
    for k, v in values.items():
      setattr(task, k, v)
    task.updated_at = utcnow()
    await self.db.flush()
    return task

  async def insert_activity(
    self, *, task: Task, action: str, actor: str, details: dict[str, Any] | None = None
  ) -> Activity:
    a = Activity(
      tenant_id=task.tenant_id,
      board_id=task.board_id,
      task_id=task.id,
      action=action,
      actor=actor,
      details=jsonable_encoder(details or {}),
    )
    self.db.add(a)
    await self.db.flush()
    return a

  async def last_activity_by_task(self, board_id: str) -> dict[str, datetime]:
    res = await self.db.execute(
      select(Activity.task_id, func.max(Activity.created_at)).where(Activity.board_id == board_id).group_by(Activity.task_id)
    )
    return {task_id: ts for task_id, ts in res.all() if ts is not None}

  async def insert_chat_message(self, message: ChatMessage) -> ChatMessage:
    if not message.dedupe_key:
      self.db.add(message)
      await self.db.flush()
      return message
    try:
      async with self.db.begin_nested():
        self.db.add(message)
        await self.db.flush()
    except IntegrityError as exc:
      raise DuplicateMessageError(message.dedupe_key) from exc
    return message

  async def find_chat_message(self, message_id: str) -> ChatMessage | None:
    res = await self.db.execute(select(ChatMessage).where(ChatMessage.id == message_id))
    return res.scalar_one_or_none()

  async def list_chat_messages(
    self,
    *,
    tenant_id: str,
    board_id: str | None = None,
    since: datetime | None = None,
    limit: int = 50,
    pending_only: bool = False,
  ) -> list[ChatMessage]:
    q = select(ChatMessage).where(ChatMessage.tenant_id == tenant_id)
    if board_id:
      q = q.where(ChatMessage.board_id == board_id)
    if since is not None:
      q = q.where(ChatMessage.created_at > since)
    if pending_only:
      # Human messages still waiting on an agent reply.
      q = q.where(ChatMessage.author_kind == "human", ChatMessage.status != "complete")
    res = await self.db.execute(q.order_by(ChatMessage.created_at.desc()).limit(int(limit)))
    # Newest page, returned oldest first.
    return list(reversed(res.scalars().all()))

  async def find_recent_alert(self, *, task_id: str, message_type: str, since: datetime) -> ChatMessage | None:
    res = await self.db.execute(
      select(ChatMessage)
      .where(
        ChatMessage.task_id == task_id,
        ChatMessage.message_type == message_type,
        ChatMessage.author_kind == "agent",
        ChatMessage.created_at >= since,
      )
      .order_by(ChatMessage.created_at.desc())
      .limit(1)
    )
    return res.scalar_one_or_none()

  async def mark_message_complete(self, message_id: str, *, tenant_id: str) -> bool:
    res = await self.db.execute(
      update(ChatMessage).where(ChatMessage.id == message_id, ChatMessage.tenant_id == tenant_id).values(status="complete")
    )
    return bool(res.rowcount)

  async def find_integration(self, *, tenant_id: str, user_id: str) -> Integration | None:
    res = await self.db.execute(
      select(Integration).where(Integration.tenant_id == tenant_id, Integration.user_id == user_id, Integration.kind == "openclaw")
    )
    return res.scalar_one_or_none()

  async def find_integration_by_api_key_hash(self, key_hash: str) -> Integration | None:
    res = await self.db.execute(select(Integration).where(Integration.api_key_hash == key_hash))
    return res.scalar_one_or_none()

  async def insert_integration(self, integration: Integration) -> Integration:
    self.db.add(integration)
    await self.db.flush()
    return integration

  async def update_integration_status(self, integration: Integration, **values: Any) -> Integration:
    for k, v in values.items():
      setattr(integration, k, v)
    integration.updated_at = utcnow()
    await self.db.flush()
    return integration

  async def delete_integration(self, integration: Integration) -> None:
    await self.db.delete(integration)
    await self.db.flush()

  async def commit(self) -> None:
    await self.db.commit()

  async def rollback(self) -> None:
    await self.db.rollback()
