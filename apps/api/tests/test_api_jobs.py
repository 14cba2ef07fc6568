from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from factories import add_task, auth_headers, seed_board
from moltboard.config import settings
from moltboard.main import check_secrets


@pytest.mark.anyio
async def test_cron_is_open_without_a_secret(client, monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setattr(settings, "cron_secret", None)
  res = await client.get("/cron/check-stuck")
  assert res.status_code == 200
  assert res.json() == {"success": True, "tasksChecked": 0, "stuckFound": 0, "alertsSent": 0, "errors": []}


@pytest.mark.anyio
async def test_cron_bearer_token(client, db, monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setattr(settings, "cron_secret", "cron-s3cret")
  now = datetime.now(timezone.utc)
  board = await seed_board(db, created_at=now - timedelta(days=30))
  await add_task(db, board, "Forgotten migration", column="in-progress", created_at=now - timedelta(days=7))

  res = await client.post("/cron/check-stuck")
  assert res.status_code == 401
  assert res.json()["detail"] == "Missing bearer token"

  res = await client.post("/cron/check-stuck", headers={"Authorization": "Bearer nope"})
  assert res.status_code == 401
  assert res.json()["detail"] == "Unauthorized"

  auth = {"Authorization": "Bearer cron-s3cret"}
  res = await client.post("/cron/check-stuck", headers=auth)
  assert res.status_code == 200
  assert res.json()["stuckFound"] == 1
  assert res.json()["alertsSent"] == 1

  # Same day, same task: nothing new.
  res = await client.get("/cron/check-stuck", headers=auth)
  assert res.json()["alertsSent"] == 0

  res = await client.post("/cron/daily-briefing", headers=auth)
  assert res.status_code == 200
  assert res.json() == {"success": True, "boardsProcessed": 1, "messagesPosted": 1, "errors": []}

  messages = (await client.get("/chat", params={"boardId": board.id}, headers=auth_headers())).json()["messages"]
  assert sorted(m["type"] for m in messages) == ["daily-briefing", "stuck-task-alert"]
  assert all(m["author"] == "agent" and m["metadata"]["proactive"] for m in messages)


@pytest.mark.anyio
async def test_briefing_preview_and_stuck_summary(client, db) -> None:
  now = datetime.now(timezone.utc)
  board = await seed_board(db, created_at=now - timedelta(days=30))
  await add_task(db, board, "Forgotten migration", column="in-progress", created_at=now - timedelta(days=7))
  await add_task(db, board, "Fresh work", column="in-progress", created_at=now)
  headers = auth_headers()

  res = await client.get("/briefing", params={"boardId": board.id}, headers=headers)
  assert res.status_code == 200
  content = res.json()["content"]
  assert ", Mike! \U0001F525" in content
  assert "**\U0001F4CA Status**" in content
  assert '• "Forgotten migration" (7 days without activity)' in content

  res = await client.get("/briefing/stuck", headers=headers)
  assert res.status_code == 200
  data = res.json()
  assert data["boardId"] == board.id
  assert data["totalInProgress"] == 2
  assert [(s["task"]["title"], s["daysStuck"]) for s in data["stuckTasks"]] == [("Forgotten migration", 7)]

  assert (await client.get("/briefing", params={"boardId": "missing"}, headers=headers)).status_code == 404


@pytest.mark.anyio
async def test_health_version_and_metrics(client) -> None:
  assert (await client.get("/health")).json() == {"ok": True}
  res = await client.get("/version")
  assert res.json()["version"] == settings.app_version
  assert res.headers["X-Content-Type-Options"] == "nosniff"

  metrics = (await client.get("/metrics")).json()
  assert metrics["requestCount24h"] >= 2
  assert metrics["errorCount24h"] == 0
  assert metrics["webhookDeliveries24h"] == 0
  assert "startedAt" in metrics


def test_placeholder_secrets_are_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setattr(settings, "app_secret", "a-real-secret")
  monkeypatch.setattr(settings, "fernet_key", "Zm9vYmFyYmF6cXV4cXV1eGNvcmdlZ3JhdWx0Z2FycGx5")
  check_secrets()

  monkeypatch.setattr(settings, "app_secret", "dev-secret-change-me")
  with pytest.raises(RuntimeError, match="APP_SECRET"):
    check_secrets()

  monkeypatch.setattr(settings, "app_secret", "a-real-secret")
  monkeypatch.setattr(settings, "fernet_key", "REPLACE_WITH_FERNET_KEY")
  with pytest.raises(RuntimeError, match="FERNET_KEY"):
    check_secrets()
