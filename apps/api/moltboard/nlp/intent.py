from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Literal

from moltboard.nlp.extract import extract_details

Action = Literal["create", "update", "query", "none"]
Confidence = Literal["high", "medium", "low"]

MIN_MESSAGE_LENGTH = 5

ACTION_VERBS = (
  "draft",
  "write",
  "build",
  "fix",
  "review",
  "update",
  "refactor",
  "implement",
  "design",
  "test",
  "deploy",
  "document",
  "research",
  "analyze",
  "prepare",
  "schedule",
  "send",
  "call",
  "email",
  "meet",
)

_SMALL_TALK_RES = [
  re.compile(r"^(?:hi|hey|hello|yo|sup|what'?s up|good morning|good afternoon|good evening|gm|gn)\b", re.IGNORECASE),
  re.compile(r"^(?:thanks|thank you|thx|ty|cool|nice|great|awesome|ok|okay|k|sure|yep|yup|yeah|yes|no|nope)\b", re.IGNORECASE),
  re.compile(r"^(?:how are you|how's it going|what's new|how do you|can you|could you|would you)\b", re.IGNORECASE),
  re.compile(r"^(?:lol|haha|hehe|\U0001F44B|\U0001F525|\U0001F44D)", re.IGNORECASE),
]

_EXPLICIT_RES = [
  re.compile(r"^(?:create|add|new|make)\s+(?:a\s+)?task[:\s]+(.+)", re.IGNORECASE | re.DOTALL),
  re.compile(r"^task[:\s]+(.+)", re.IGNORECASE | re.DOTALL),
]

_REMINDER_RES = [
  re.compile(r"^remind(?:er)?[:\s]*(?:me\s+)?(?:to\s+)?(.+)", re.IGNORECASE | re.DOTALL),
  re.compile(r"^todo[:\s]+(.+)", re.IGNORECASE | re.DOTALL),
  re.compile(r"^don'?t\s+(?:let\s+me\s+)?forget\s+(?:to\s+)?(.+)", re.IGNORECASE | re.DOTALL),
]

_VERB_RE = re.compile(r"^(" + "|".join(ACTION_VERBS) + r")\s+\S", re.IGNORECASE)

_FUTURE_RES = [
  re.compile(r"\b(?:(?:we|i)\s+)?should\s+(?:probably\s+)?(.+)", re.IGNORECASE | re.DOTALL),
  re.compile(r"\b(?:(?:i|we)\s+)?need\s+to\s+(.+)", re.IGNORECASE | re.DOTALL),
  re.compile(r"\b(?:(?:i|we)\s+)?have\s+to\s+(.+)", re.IGNORECASE | re.DOTALL),
  re.compile(r"\b(?:(?:i'?m|we'?re)\s+)?gonna\s+(.+)", re.IGNORECASE | re.DOTALL),
  re.compile(r"\b(?:(?:i|we)\s+)?want\s+to\s+(.+)", re.IGNORECASE | re.DOTALL),
  re.compile(r"\blet'?s\s+(.+)", re.IGNORECASE | re.DOTALL),
]


@dataclass(frozen=True)
class TaskIntent:
  action: Action
  confidence: Confidence
  title: str | None = None
  due_date: datetime | None = None
  priority: str | None = None
  labels: list[str] = field(default_factory=list)
  context: str | None = None


@dataclass(frozen=True)
class ParseResult:
  intent: TaskIntent
  original_message: str
  explanation: str | None = None


NO_INTENT = TaskIntent(action="none", confidence="high")


def capitalize_first(text: str) -> str:
  return text[:1].upper() + text[1:] if text else text


def is_small_talk(message: str) -> bool:
  return any(p.search(message) for p in _SMALL_TALK_RES)


def _first_capture(patterns: list[re.Pattern[str]], message: str) -> str | None:
  for p in patterns:
    m = p.search(message)
    if m and m.group(1).strip():
      return m.group(1)
  return None


def _match_small_talk(message: str, now: datetime | None) -> TaskIntent | None:
  if len(message) < MIN_MESSAGE_LENGTH or is_small_talk(message):
    return NO_INTENT
  return None


def _match_explicit(message: str, now: datetime | None) -> TaskIntent | None:
  captured = _first_capture(_EXPLICIT_RES, message)
  if captured is None:
    return None
  d = extract_details(captured, now=now)
  return TaskIntent(
    action="create",
    confidence="high",
    title=d.title,
    due_date=d.due_date,
    priority=d.priority,
    context="explicit",
  )


def _match_reminder(message: str, now: datetime | None) -> TaskIntent | None:
  captured = _first_capture(_REMINDER_RES, message)
  if captured is None:
    return None
  d = extract_details(captured, now=now)
  return TaskIntent(
    action="create",
    confidence="high",
    title=d.title,
    due_date=d.due_date,
    priority=d.priority or "P1",
    labels=["reminder"],
    context="reminder",
  )


def _match_action_verb(message: str, now: datetime | None) -> TaskIntent | None:
  m = _VERB_RE.search(message)
  if not m:
    return None
  # The verb stays in the title: "Fix the login bug", not "the login bug".
  d = extract_details(message, now=now)
  return TaskIntent(
    action="create",
    confidence="medium",
    title=capitalize_first(d.title),
    due_date=d.due_date,
    priority=d.priority,
    labels=[m.group(1).lower()],
    context="action-verb",
  )


def _match_future_intent(message: str, now: datetime | None) -> TaskIntent | None:
  captured = _first_capture(_FUTURE_RES, message)
  if captured is None:
    return None
  d = extract_details(captured, now=now)
  return TaskIntent(
    action="create",
    confidence="low",
    title=capitalize_first(d.title),
    due_date=d.due_date,
    priority=d.priority or "P3",
    labels=["idea"],
    context="future-intent",
  )


IntentMatcher = Callable[[str, datetime | None], TaskIntent | None]

# Evaluated in order; the first matcher returning an intent wins.
INTENT_RULES: list[tuple[str, IntentMatcher]] = [
  ("small-talk", _match_small_talk),
  ("explicit", _match_explicit),
  ("reminder", _match_reminder),
  ("action-verb", _match_action_verb),
  ("future-intent", _match_future_intent),
]

_EXPLANATIONS = {
  "explicit": "Explicit task creation request",
  "reminder": "Reminder pattern detected",
  "action-verb": "Action verb detected",
  "future-intent": "Future intent detected (suggestion only)",
}


def parse_task_intent(message: str, now: datetime | None = None) -> ParseResult:
  text = (message or "").strip()
  for name, matcher in INTENT_RULES:
    intent = matcher(text, now)
    if intent is not None:
      return ParseResult(intent=intent, original_message=message, explanation=_EXPLANATIONS.get(name))
  return ParseResult(intent=NO_INTENT, original_message=message)


def should_create_task(result: ParseResult) -> bool:
  """Only medium/high confidence creation intents are materialized; low ones are suggestions."""
  return result.intent.action == "create" and result.intent.confidence in ("high", "medium")

