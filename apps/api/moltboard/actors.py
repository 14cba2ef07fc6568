from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Human:
  user_id: str


@dataclass(frozen=True)
class Agent:
  pass


@dataclass(frozen=True)
class System:
  pass


@dataclass(frozen=True)
class ExternalApi:
  pass


Actor = Union[Human, Agent, System, ExternalApi]

AGENT = Agent()
SYSTEM = System()
EXTERNAL_API = ExternalApi()

# Stored author keys written by older clients.
_LEGACY_KINDS = {"moltbot": "agent", "clawdbot": "agent", "bot": "agent", "user": "human"}


def actor_kind(actor: Actor) -> str:
  if isinstance(actor, Human):
    return "human"
  if isinstance(actor, Agent):
    return "agent"
  if isinstance(actor, System):
    return "system"
  return "api"


def actor_key(actor: Actor) -> str:
  """Flat string used in activity records and `created_by` columns."""
  if isinstance(actor, Human):
    return actor.user_id
  return actor_kind(actor)


def parse_actor(kind: str | None, author_id: str | None = None) -> Actor:
  k = (kind or "").strip().lower()
  k = _LEGACY_KINDS.get(k, k)
  if k == "agent":
    return AGENT
  if k == "system":
    return SYSTEM
  if k == "api":
    return EXTERNAL_API
  if k == "human" and author_id:
    return Human(user_id=author_id)
  raise ValueError(f"Unknown author kind: {kind!r}")


def is_human(actor: Actor) -> bool:
  return isinstance(actor, Human)
