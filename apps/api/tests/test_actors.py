from __future__ import annotations

import pytest

from moltboard.actors import AGENT, EXTERNAL_API, SYSTEM, Human, actor_key, actor_kind, is_human, parse_actor


def test_human_round_trip() -> None:
  actor = parse_actor("human", "user-7")
  assert actor == Human(user_id="user-7")
  assert actor_kind(actor) == "human"
  assert actor_key(actor) == "user-7"
  assert is_human(actor)


@pytest.mark.parametrize("kind", ["moltbot", "clawdbot", "bot", "agent", "AGENT"])
def test_agent_kinds_and_legacy_keys(kind: str) -> None:
  actor = parse_actor(kind)
  assert actor is AGENT
  assert actor_key(actor) == "agent"
  assert not is_human(actor)


def test_system_and_api() -> None:
  assert parse_actor("system") is SYSTEM
  assert parse_actor("api") is EXTERNAL_API
  assert actor_kind(EXTERNAL_API) == "api"


def test_legacy_user_key_needs_an_id() -> None:
  assert parse_actor("user", "u1") == Human(user_id="u1")
  with pytest.raises(ValueError):
    parse_actor("human")


def test_unknown_kind_is_rejected() -> None:
  with pytest.raises(ValueError):
    parse_actor("robot")
