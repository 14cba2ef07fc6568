from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Sequence

from moltboard.nlp.commands import ParsedCommand
from moltboard.nlp.extract import local_tz

PRIORITY_LABELS = {
  "P0": "\U0001F534 Critical",
  "P1": "\U0001F7E0 High",
  "P2": "\U0001F7E1 Medium",
  "P3": "⚪ Low",
}

PRIORITY_BADGES = {"P0": "\U0001F534", "P1": "\U0001F7E0"}


def format_date(value: datetime) -> str:
  local = value.astimezone(local_tz())
  return f"{local:%b} {local.day}, {local.year}"


def format_task_confirmation(
  title: str,
  due_date: datetime | None = None,
  priority: str | None = None,
  labels: Sequence[str] | None = None,
) -> str:
  message = f'✅ Created task: "**{title}**"'
  details: list[str] = []
  if due_date:
    details.append(f"Due: {format_date(due_date)}")
  if priority:
    details.append(PRIORITY_LABELS.get(priority.upper(), priority))
  if labels:
    details.append(f"Labels: {', '.join(labels)}")
  if details:
    message += "\n" + " • ".join(details)
  return message


def format_task_line(task: Any, now: datetime | None = None) -> str:
  """One bullet line for a task: bold title, due/overdue marker, priority badge."""
  now = now or datetime.now(timezone.utc)
  line = f"• **{task.title}**"
  if task.due_date:
    label = "⚠️ Overdue: " if task.due_date < now else "Due: "
    line += f" ({label}{format_date(task.due_date)})"
  badge = PRIORITY_BADGES.get((task.priority or "").upper())
  if badge:
    line += f" {badge}"
  return line


def describe_command(cmd: ParsedCommand) -> str:
  p = cmd.params
  if cmd.type == "create":
    desc = f'Create task: "{p.title}"'
    if p.priority:
      desc += f" ({p.priority.upper()})"
    if p.due_date:
      desc += f" due {format_date(p.due_date)}"
    return desc
  if cmd.type == "move":
    return f'Move "{cmd.task_ref}" to {p.column}'
  if cmd.type == "complete":
    return f'Complete "{cmd.task_ref}"'
  if cmd.type == "priority":
    return f'Set priority of "{cmd.task_ref}" to {(p.priority or "").upper()}'
  if cmd.type == "due":
    due = format_date(p.due_date) if p.due_date else "(unrecognized date)"
    return f'Set due date of "{cmd.task_ref}" to {due}'
  if cmd.type == "archive":
    if p.query == "all_done":
      return "Archive all completed tasks"
    return f'Archive "{cmd.task_ref}"'
  if cmd.type == "query":
    return f"Search: {p.query}"
  if cmd.type == "list":
    return "List all tasks"
  return f"Unknown command: {cmd.raw}"
