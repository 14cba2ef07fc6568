from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class TaskOut(BaseModel):
  id: str
  boardId: str
  columnId: str
  title: str
  description: str | None = None
  order: int
  labels: list[str] = Field(default_factory=list)
  priority: str
  dueDate: datetime | None = None
  createdBy: str | None = None
  archived: bool = False
  createdAt: datetime
  updatedAt: datetime


class ChatMessageIn(BaseModel):
  content: str = Field(min_length=1, max_length=10000)
  boardId: str | None = Field(default=None, max_length=64)


class ChatMessageOut(BaseModel):
  id: str
  boardId: str | None = None
  author: Literal["human", "agent", "system", "api"]
  authorId: str | None = None
  content: str
  status: str | None = None
  taskId: str | None = None
  taskTitle: str | None = None
  replyTo: str | None = None
  type: str | None = None
  metadata: dict[str, Any] = Field(default_factory=dict)
  createdAt: datetime


class ChatPostOut(BaseModel):
  message: ChatMessageOut
  taskCreated: bool = False
  taskId: str | None = None
  responseMessageId: str | None = None
  delivered: bool | None = None


class CommandIn(BaseModel):
  text: str = Field(min_length=1, max_length=2000)
  boardId: str | None = Field(default=None, max_length=64)


class ParsedCommandOut(BaseModel):
  type: str
  description: str
  confidence: float
  taskRef: str | None = None


class CommandResultOut(BaseModel):
  action: str
  message: str
  task: TaskOut | None = None
  tasks: list[TaskOut] = Field(default_factory=list)


class CommandOut(BaseModel):
  success: bool = True
  command: ParsedCommandOut
  result: CommandResultOut


class StuckCheckOut(BaseModel):
  success: bool
  tasksChecked: int
  stuckFound: int
  alertsSent: int
  errors: list[str] = Field(default_factory=list)


class DailyBriefingOut(BaseModel):
  success: bool
  boardsProcessed: int
  messagesPosted: int
  errors: list[str] = Field(default_factory=list)


class BriefingPreviewOut(BaseModel):
  boardId: str
  content: str


class StuckTaskOut(BaseModel):
  task: TaskOut
  daysStuck: int
  lastActivityAt: datetime


class StuckSummaryOut(BaseModel):
  boardId: str
  totalInProgress: int
  stuckTasks: list[StuckTaskOut] = Field(default_factory=list)


class IntegrationUpsertIn(BaseModel):
  webhookUrl: str | None = Field(default=None, max_length=2000)
  enabled: bool | None = None
  regenerateApiKey: bool = False
  regenerateSecret: bool = False


class IntegrationOut(BaseModel):
  id: str
  kind: str
  enabled: bool
  webhookUrl: str | None = None
  apiKeyPrefix: str
  status: Literal["pending", "connected", "error"]
  messagesSent: int = 0
  messagesReceived: int = 0
  lastConnectedAt: datetime | None = None
  lastMessageAt: datetime | None = None
  lastError: str | None = None
  lastErrorAt: datetime | None = None
  createdAt: datetime
  updatedAt: datetime


class IntegrationSaveOut(BaseModel):
  integration: IntegrationOut
  # Raw credentials are only present right after creation or regeneration.
  apiKey: str | None = None
  webhookSecret: str | None = None


class IntegrationTestOut(BaseModel):
  success: bool
  error: str | None = None
  latencyMs: float | None = None
  statusCode: int | None = None


class InboundMessageIn(BaseModel):
  content: str | None = None
  boardId: str | None = Field(default=None, max_length=64)
  taskId: str | None = Field(default=None, max_length=64)
  taskTitle: str | None = None
  replyTo: str | None = Field(default=None, max_length=64)


class InboundMetaIn(BaseModel):
  originalMessageId: str | None = Field(default=None, max_length=64)


class InboundWebhookIn(BaseModel):
  type: str | None = None
  message: InboundMessageIn | None = None
  meta: InboundMetaIn | None = None


class InboundWebhookOut(BaseModel):
  success: bool = True
  messageId: str


class ChatListMetaOut(BaseModel):
  count: int
  since: datetime | None = None
  latestTimestamp: datetime | None = None


class ChatListOut(BaseModel):
  messages: list[ChatMessageOut] = Field(default_factory=list)
  meta: ChatListMetaOut


class IntegrationGetOut(BaseModel):
  integration: IntegrationOut | None = None
