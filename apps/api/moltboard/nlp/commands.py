from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Literal

from moltboard.nlp.extract import WEEKDAYS, local_tz

CommandType = Literal["create", "move", "query", "list", "archive", "complete", "priority", "due", "unknown"]

MATCH_CONFIDENCE = 0.9

# Dict order matters: the first keyword found wins.
PRIORITY_KEYWORDS: dict[str, str] = {
  "critical": "P0",
  "urgent": "P0",
  "p0": "P0",
  "high": "P1",
  "important": "P1",
  "p1": "P1",
  "medium": "P2",
  "normal": "P2",
  "p2": "P2",
  "low": "P3",
  "minor": "P3",
  "p3": "P3",
}

COLUMN_CATEGORIES: dict[str, tuple[str, ...]] = {
  "todo": ("todo", "to do", "to-do", "backlog", "new"),
  "in_progress": ("in progress", "doing", "working on", "started"),
  "review": ("review", "testing", "qa", "needs review"),
  "done": ("done", "complete", "completed", "finished", "shipped"),
}

COMMAND_STARTERS = (
  "create",
  "add",
  "new",
  "task:",
  "move",
  "set",
  "change",
  "complete",
  "finish",
  "close",
  "mark",
  "archive",
  "show",
  "list",
  "what",
  "find",
  "search",
  "priority",
)

_MONTHS = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")


@dataclass
class CommandParams:
  title: str | None = None
  priority: str | None = None
  due_date: datetime | None = None
  column: str | None = None
  query: str | None = None
  board_id: str | None = None


@dataclass
class ParsedCommand:
  type: CommandType
  confidence: float
  raw: str
  task_ref: str | None = None
  params: CommandParams = field(default_factory=CommandParams)


def _end_of_day(day: date) -> datetime:
  return datetime.combine(day, time(23, 59, 59), tzinfo=local_tz())


def _today(now: datetime | None) -> date:
  now = now or datetime.now(timezone.utc)
  if now.tzinfo is None:
    now = now.replace(tzinfo=timezone.utc)
  return now.astimezone(local_tz()).date()


def _weekday_date(m: re.Match[str], today: date) -> date:
  target = WEEKDAYS.index(m.group(1).lower())
  ahead = (target - today.weekday()) % 7
  return today + timedelta(days=ahead or 7)


def _numeric_date(m: re.Match[str], today: date) -> date | None:
  year = today.year
  if m.group(3):
    year = int(m.group(3))
    if len(m.group(3)) == 2:
      year += 2000
  try:
    return date(year, int(m.group(1)), int(m.group(2)))
  except ValueError:
    return None


def _month_name_date(m: re.Match[str], today: date) -> date | None:
  month = _MONTHS.index(m.group(1).lower()[:3]) + 1
  year = int(m.group(3)) if m.group(3) else today.year
  try:
    return date(year, month, int(m.group(2)))
  except ValueError:
    return None


_DatePattern = tuple[re.Pattern[str], Callable[[re.Match[str], date], date | None]]

DATE_PATTERNS: list[_DatePattern] = [
  (re.compile(r"\btoday\b", re.IGNORECASE), lambda m, today: today),
  (re.compile(r"\btomorrow\b", re.IGNORECASE), lambda m, today: today + timedelta(days=1)),
  (re.compile(r"\b(?:(?:next|by|on)\s+)?(" + "|".join(WEEKDAYS) + r")\b", re.IGNORECASE), _weekday_date),
  (re.compile(r"\bin\s+(\d{1,3})\s+days?\b", re.IGNORECASE), lambda m, today: today + timedelta(days=int(m.group(1)))),
  (re.compile(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?\b"), _numeric_date),
  (
    re.compile(r"\b(" + "|".join(_MONTHS) + r")[a-z]*\.?\s+(\d{1,2})(?:\s*,?\s*(\d{4}))?\b", re.IGNORECASE),
    _month_name_date,
  ),
]


def parse_date_text(text: str, now: datetime | None = None) -> tuple[datetime | None, re.Match[str] | None]:
  """First recognizable date in `text`, due at the end of that local day."""
  today = _today(now)
  for pattern, handler in DATE_PATTERNS:
    m = pattern.search(text)
    if not m:
      continue
    d = handler(m, today)
    if d is not None:
      return _end_of_day(d), m
  return None, None


def resolve_column_category(text: str) -> str | None:
  lowered = (text or "").strip().lower()
  for category, phrases in COLUMN_CATEGORIES.items():
    if any(p in lowered for p in phrases):
      return category
  return None


def looks_like_command(text: str) -> bool:
  lowered = (text or "").strip().lower()
  return any(lowered.startswith(s) for s in COMMAND_STARTERS)


def _priority_word(word: str) -> str | None:
  return PRIORITY_KEYWORDS.get((word or "").strip().lower())


def _extract_create(text: str, m: re.Match[str], now: datetime | None) -> dict[str, Any]:
  content = m.group(1).strip()
  title = content
  out: dict[str, Any] = {}

  for keyword, level in PRIORITY_KEYWORDS.items():
    prio_re = re.compile(r"\b(?:priority\s+)?" + keyword + r"\b(?:\s+priority)?", re.IGNORECASE)
    if prio_re.search(content):
      out["priority"] = level
      title = prio_re.sub("", title, count=1)
      break

  for pattern, handler in DATE_PATTERNS:
    due_re = re.compile(r"(?:\bdue\s+)?" + pattern.pattern, pattern.flags)
    dm = due_re.search(title)
    if not dm:
      continue
    d = handler(dm, _today(now))
    if d is None:
      continue
    out["due_date"] = _end_of_day(d)
    title = due_re.sub("", title, count=1)
    break

  title = re.sub(r"\s+", " ", title).strip()
  title = re.sub(r"[\s,;:\-]+$", "", title)
  out["title"] = title
  return out


def _extract_move(text: str, m: re.Match[str], now: datetime | None) -> dict[str, Any]:
  target = m.group(2).strip().lower()
  return {"task_ref": m.group(1).strip(), "column": resolve_column_category(target) or target}


def _extract_complete(text: str, m: re.Match[str], now: datetime | None) -> dict[str, Any]:
  return {"task_ref": m.group(1).strip(), "column": "done"}


def _extract_priority(text: str, m: re.Match[str], now: datetime | None) -> dict[str, Any]:
  return {"task_ref": m.group(1).strip(), "priority": _priority_word(m.group(2))}


def _extract_due(text: str, m: re.Match[str], now: datetime | None) -> dict[str, Any]:
  due, _ = parse_date_text(m.group(2).strip(), now=now)
  out: dict[str, Any] = {"task_ref": m.group(1).strip()}
  if due is not None:
    out["due_date"] = due
  return out


def _extract_archive(text: str, m: re.Match[str], now: datetime | None) -> dict[str, Any]:
  lowered = text.lower()
  if "all done" in lowered or "all completed" in lowered:
    return {"query": "all_done"}
  return {"task_ref": m.group(1).strip()}


def _extract_list(text: str, m: re.Match[str], now: datetime | None) -> dict[str, Any]:
  return {"query": "all"}


def _extract_query(text: str, m: re.Match[str], now: datetime | None) -> dict[str, Any]:
  q = m.group(1).strip().lower()
  if "overdue" in q:
    return {"query": "overdue"}
  if "stuck" in q:
    return {"query": "stuck"}
  if "in progress" in q or "doing" in q:
    return {"query": "in_progress"}
  if "todo" in q or "to do" in q:
    return {"query": "todo"}
  for keyword, level in PRIORITY_KEYWORDS.items():
    if re.search(r"\b" + keyword + r"\b", q):
      return {"query": f"priority:{level}"}
  return {"query": q}


_Extractor = Callable[[str, re.Match[str], datetime | None], dict[str, Any]]


def _rx(pattern: str) -> re.Pattern[str]:
  return re.compile(pattern, re.IGNORECASE)


_Q = r"['\"]?"

# Specific forms come before the catch-alls they would otherwise fall into
# ("set priority of X to high" is not a move, "list tasks" is not a search).
COMMAND_RULES: list[tuple[CommandType, list[re.Pattern[str]], _Extractor]] = [
  (
    "create",
    [
      _rx(r"^(?:create|add|new)\s+(?:a\s+)?task[:\s]+(.+)"),
      _rx(r"^(?:create|add|new)[:\s]+(.+)"),
      _rx(r"^task[:\s]+(.+)"),
    ],
    _extract_create,
  ),
  (
    "priority",
    [
      _rx(r"^(?:set|change)\s+(?:the\s+)?priority\s+(?:of\s+)?" + _Q + r"(.+?)" + _Q + r"\s+to\s+(\w+)"),
      _rx(r"^make\s+" + _Q + r"(.+?)" + _Q + r"\s+(critical|urgent|high|medium|low|p[0-3])$"),
    ],
    _extract_priority,
  ),
  (
    "due",
    [_rx(r"^(?:set|change)\s+(?:the\s+)?due\s*(?:date)?\s+(?:of\s+)?" + _Q + r"(.+?)" + _Q + r"\s+to\s+(.+)")],
    _extract_due,
  ),
  (
    "move",
    [
      _rx(r"^move\s+" + _Q + r"(.+?)" + _Q + r"\s+to\s+(.+)"),
      _rx(r"^(?:set|change)\s+" + _Q + r"(.+?)" + _Q + r"\s+(?:status\s+)?to\s+(.+)"),
    ],
    _extract_move,
  ),
  (
    "complete",
    [
      _rx(r"^(?:complete|finish|close)\s+" + _Q + r"(.+?)" + _Q + r"$"),
      _rx(r"^mark\s+" + _Q + r"(.+?)" + _Q + r"\s+(?:as\s+)?(?:done|complete|finished)"),
    ],
    _extract_complete,
  ),
  (
    "archive",
    [
      _rx(r"^archive\s+all\s+(?:done|completed)\s+tasks?"),
      _rx(r"^archive\s+" + _Q + r"(.+?)" + _Q + r"$"),
    ],
    _extract_archive,
  ),
  (
    "list",
    [
      _rx(r"^list\s*(?:all\s+)?tasks?$"),
      _rx(r"^show\s+(?:the\s+)?board$"),
      _rx(r"^what(?:'s|s)?\s+on\s+my\s+plate"),
    ],
    _extract_list,
  ),
  (
    "query",
    [
      _rx(r"^(?:show|list|what(?:'s|s)?|find|search)\s+(?:me\s+)?(?:all\s+)?(?:the\s+)?(.+?)(?:\s+tasks?)?\??$"),
    ],
    _extract_query,
  ),
  (
    "due",
    [_rx(r"^" + _Q + r"(.+?)" + _Q + r"\s+due\s+(.+)")],
    _extract_due,
  ),
]


def parse_command(text: str, now: datetime | None = None) -> ParsedCommand:
  trimmed = (text or "").strip()
  for kind, patterns, extractor in COMMAND_RULES:
    for pattern in patterns:
      m = pattern.search(trimmed)
      if not m:
        continue
      extracted = extractor(trimmed, m, now)
      task_ref = extracted.pop("task_ref", None)
      return ParsedCommand(
        type=kind,
        confidence=MATCH_CONFIDENCE,
        raw=text,
        task_ref=task_ref,
        params=CommandParams(**extracted),
      )
  return ParsedCommand(type="unknown", confidence=0.0, raw=text)
