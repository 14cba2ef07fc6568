from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def new_id() -> str:
  return str(uuid.uuid4())


class UTCDateTime(TypeDecorator):
  """Timezone-aware datetime that always round-trips as UTC, including on SQLite."""

  impl = DateTime(timezone=True)
  cache_ok = True

  def process_bind_param(self, value: Any, dialect: Any) -> Any:
    if value is None:
      return None
    if value.tzinfo is None:
      value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

  def process_result_value(self, value: Any, dialect: Any) -> Any:
    if value is None:
      return None
    if value.tzinfo is None:
      return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


JsonType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
  pass


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
  tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
  email: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)


class Board(Base):
  __tablename__ = "boards"

  id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
  tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  owner_id: Mapped[str | None] = mapped_column(String(64), ForeignKey("users.id"), nullable=True)
  archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)


class BoardColumn(Base):
  __tablename__ = "board_columns"

  # Column ids are caller-chosen slugs such as "todo" or "in-progress".
  id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(String(64), ForeignKey("boards.id"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Task(Base):
  __tablename__ = "tasks"

  id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
  tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
  board_id: Mapped[str] = mapped_column(String(64), ForeignKey("boards.id"), nullable=False, index=True)
  column_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  labels: Mapped[list[str]] = mapped_column(JsonType, nullable=False, default=list)
  priority: Mapped[str] = mapped_column(String(2), nullable=False, default="P2")  # P0..P3
  due_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
  assignee: Mapped[str | None] = mapped_column(String, nullable=True)
  checklist: Mapped[list[dict[str, Any]] | None] = mapped_column(JsonType, nullable=True)
  created_by: Mapped[str | None] = mapped_column(String, nullable=True)
  archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  archived_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
  archived_by: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Activity(Base):
  __tablename__ = "activities"

  id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
  tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
  board_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
  task_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
  action: Mapped[str] = mapped_column(String, nullable=False)  # created | moved | commented | priority_changed | updated | archived | restored
  actor: Mapped[str] = mapped_column(String, nullable=False)
  details: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False, index=True)


class ChatMessage(Base):
  __tablename__ = "chat_messages"
  __table_args__ = (UniqueConstraint("dedupe_key", name="ux_chat_messages_dedupe_key"),)

  id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
  tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
  board_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
  author_kind: Mapped[str] = mapped_column(String, nullable=False)  # human | agent | system | api
  author_id: Mapped[str | None] = mapped_column(String, nullable=True)
  content: Mapped[str] = mapped_column(Text, nullable=False)
  status: Mapped[str | None] = mapped_column(String, nullable=True)  # pending | processing | complete
  task_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
  task_title: Mapped[str | None] = mapped_column(String, nullable=True)
  reply_to: Mapped[str | None] = mapped_column(String(64), nullable=True)
  message_type: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  dedupe_key: Mapped[str | None] = mapped_column(String, nullable=True)
  meta: Mapped[dict[str, Any]] = mapped_column("metadata", JsonType, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False, index=True)


class Integration(Base):
  __tablename__ = "integrations"
  __table_args__ = (UniqueConstraint("tenant_id", "user_id", "kind", name="ux_integrations_tenant_user_kind"),)

  id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
  tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
  user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
  kind: Mapped[str] = mapped_column(String, nullable=False, default="openclaw")
  enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  webhook_url: Mapped[str | None] = mapped_column(String, nullable=True)
  api_key_hash: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  api_key_prefix: Mapped[str] = mapped_column(String, nullable=False)
  webhook_secret_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, default="pending")  # pending | connected | error
  messages_sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  messages_received: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  last_connected_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
  last_message_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
  last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
  last_error_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)
