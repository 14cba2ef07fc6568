from __future__ import annotations

from datetime import datetime, timezone

import pytest

from moltboard.nlp.intent import is_small_talk, parse_task_intent, should_create_task

NOW = datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("message", ["", "fix", "ok!", "hey there, how's it going?", "thanks a lot", "can you help me out"])
def test_short_messages_and_small_talk_have_no_intent(message: str) -> None:
  result = parse_task_intent(message, now=NOW)
  assert result.intent.action == "none"
  assert not should_create_task(result)


def test_small_talk_does_not_match_word_prefixes() -> None:
  assert is_small_talk("hello")
  assert not is_small_talk("highlight the risks")


def test_explicit_prefix_is_high_confidence() -> None:
  result = parse_task_intent("create task: Update docs next week high priority", now=NOW)
  intent = result.intent
  assert intent.action == "create"
  assert intent.confidence == "high"
  assert intent.context == "explicit"
  assert intent.title == "Update docs"
  assert intent.priority == "P1"
  assert intent.due_date == datetime(2026, 10, 26, 9, tzinfo=timezone.utc)
  assert result.original_message == "create task: Update docs next week high priority"
  assert should_create_task(result)


def test_task_colon_prefix() -> None:
  result = parse_task_intent("task: order new laptops", now=NOW)
  assert result.intent.context == "explicit"
  assert result.intent.title == "order new laptops"


def test_reminder_defaults_to_p1_with_label() -> None:
  result = parse_task_intent("remind me to call mom tomorrow", now=NOW)
  intent = result.intent
  assert intent.context == "reminder"
  assert intent.confidence == "high"
  assert intent.title == "call mom"
  assert intent.priority == "P1"
  assert intent.labels == ["reminder"]
  assert intent.due_date == datetime(2026, 10, 20, 9, tzinfo=timezone.utc)


def test_reminder_keeps_explicit_priority() -> None:
  result = parse_task_intent("don't forget to renew the domain, low priority", now=NOW)
  assert result.intent.context == "reminder"
  assert result.intent.priority == "P3"
  assert result.intent.title == "renew the domain"


def test_action_verb_keeps_verb_in_title() -> None:
  result = parse_task_intent("fix the login bug by friday", now=NOW)
  intent = result.intent
  assert intent.context == "action-verb"
  assert intent.confidence == "medium"
  assert intent.title == "Fix the login bug"
  assert intent.labels == ["fix"]
  assert intent.priority is None
  assert should_create_task(result)


def test_future_intent_is_only_a_suggestion() -> None:
  result = parse_task_intent("we should refactor the auth module", now=NOW)
  intent = result.intent
  assert intent.action == "create"
  assert intent.confidence == "low"
  assert intent.title == "Refactor the auth module"
  assert intent.priority == "P3"
  assert intent.labels == ["idea"]
  assert not should_create_task(result)


def test_future_intent_mid_sentence() -> None:
  result = parse_task_intent("I think we need to update the onboarding docs", now=NOW)
  intent = result.intent
  assert intent.context == "future-intent"
  assert intent.title == "Update the onboarding docs"
  assert intent.labels == ["idea"]

  assert parse_task_intent("The kitchen needs tonight's dishes done", now=NOW).intent.action == "none"


def test_explicit_beats_later_rules() -> None:
  # "add task" is explicit even though "remind" appears later on.
  result = parse_task_intent("add task: remind Sam about the invoice", now=NOW)
  assert result.intent.context == "explicit"


def test_plain_statement_has_no_intent() -> None:
  result = parse_task_intent("The deploy went fine last night", now=NOW)
  assert result.intent.action == "none"
