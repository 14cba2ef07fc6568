from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable
from zoneinfo import ZoneInfo

from moltboard.config import settings

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_TOMORROW_RE = re.compile(r"\btomorrow\b", re.IGNORECASE)
_TODAY_RE = re.compile(r"\btoday\b", re.IGNORECASE)
_NEXT_WEEK_RE = re.compile(r"\bnext\s+week\b", re.IGNORECASE)
_IN_DAYS_RE = re.compile(r"\bin\s+(\d{1,3})\s+days?\b", re.IGNORECASE)
_WEEKDAY_RE = re.compile(r"\b(?:by|next)\s+(" + "|".join(WEEKDAYS) + r")\b", re.IGNORECASE)

_PRIORITY_RULES: list[tuple[str, re.Pattern[str]]] = [
  ("P0", re.compile(r"\b(?:urgent|critical|asap|p0)\b", re.IGNORECASE)),
  ("P1", re.compile(r"\b(?:high\s*priority|important|p1)\b", re.IGNORECASE)),
  ("P3", re.compile(r"\b(?:low\s*priority|eventually|someday|p3)\b", re.IGNORECASE)),
]

_DANGLING_TAIL_RE = re.compile(r"(?:\s+(?:by|on|due|at))+\s*$", re.IGNORECASE)
_TRAILING_PUNCT_RE = re.compile(r"[\s.!?,;:\-]+$")
_LEADING_PUNCT_RE = re.compile(r"^[\s,;:\-]+")
_SPACES_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class ExtractedDetails:
  title: str
  due_date: datetime | None
  priority: str | None


def local_tz() -> ZoneInfo:
  return ZoneInfo(settings.timezone or "UTC")


def _local_today(now: datetime | None) -> date:
  now = now or datetime.now(timezone.utc)
  if now.tzinfo is None:
    now = now.replace(tzinfo=timezone.utc)
  return now.astimezone(local_tz()).date()


def _at(day: date, hour: int) -> datetime:
  return datetime.combine(day, time(hour=hour), tzinfo=local_tz())


def _next_weekday(today: date, name: str) -> date:
  target = WEEKDAYS.index(name.lower())
  ahead = (target - today.weekday()) % 7
  return today + timedelta(days=ahead or 7)


_DateRule = tuple[re.Pattern[str], Callable[[re.Match[str], date], datetime]]

# First matching rule supplies the value.
_DATE_RULES: list[_DateRule] = [
  (_TOMORROW_RE, lambda m, today: _at(today + timedelta(days=1), settings.due_default_hour)),
  (_TODAY_RE, lambda m, today: _at(today, settings.due_today_hour)),
  (_NEXT_WEEK_RE, lambda m, today: _at(today + timedelta(days=7), settings.due_default_hour)),
  (_IN_DAYS_RE, lambda m, today: _at(today + timedelta(days=int(m.group(1))), settings.due_default_hour)),
  (_WEEKDAY_RE, lambda m, today: _at(_next_weekday(today, m.group(1)), settings.due_default_hour)),
]

_ALL_TOKEN_PATTERNS = [p for p, _ in _DATE_RULES] + [p for _, p in _PRIORITY_RULES]


def _strip_all(text: str, patterns: list[re.Pattern[str]]) -> str:
  # Loop until stable so removals can't splice together a new token.
  changed = True
  while changed:
    changed = False
    for p in patterns:
      if p.search(text):
        text = p.sub(" ", text)
        changed = True
  return _SPACES_RE.sub(" ", text).strip()


def _drop_dangling_tail(text: str) -> str:
  prev = None
  while prev != text:
    prev = text
    text = _TRAILING_PUNCT_RE.sub("", text)
    text = _DANGLING_TAIL_RE.sub("", text)
  return text


def extract_due_date(text: str, now: datetime | None = None) -> tuple[str, datetime | None]:
  today = _local_today(now)
  due: datetime | None = None
  for pattern, build in _DATE_RULES:
    m = pattern.search(text)
    if m:
      due = build(m, today)
      break
  if due is None:
    return text, None
  remaining = _strip_all(text, [p for p, _ in _DATE_RULES])
  return _drop_dangling_tail(remaining), due


def extract_priority(text: str) -> tuple[str, str | None]:
  priority: str | None = None
  for level, pattern in _PRIORITY_RULES:
    if pattern.search(text):
      priority = level
      break
  if priority is None:
    return text, None
  remaining = _strip_all(text, [p for _, p in _PRIORITY_RULES])
  return _drop_dangling_tail(remaining), priority


def clean_title(text: str) -> str:
  t = _SPACES_RE.sub(" ", text or "").strip()
  t = _drop_dangling_tail(t)
  t = _LEADING_PUNCT_RE.sub("", t)
  return t.strip()


def extract_details(text: str, now: datetime | None = None) -> ExtractedDetails:
  remaining, due = extract_due_date(text, now=now)
  remaining, priority = extract_priority(remaining)
  remaining = _strip_all(remaining, _ALL_TOKEN_PATTERNS)
  return ExtractedDetails(title=clean_title(remaining), due_date=due, priority=priority)
