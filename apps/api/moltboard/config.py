from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://moltboard:moltboard@db:5432/moltboard"
  app_secret: str = "dev-secret-change-me"
  fernet_key: str = "AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA="
  app_version: str = "v2026-10-19"
  build_sha: str = "dev"
  log_level: str = "INFO"

  cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

  # Wall-clock used for "today"/"tomorrow" and briefing greetings.
  timezone: str = "UTC"
  due_default_hour: int = 9
  due_today_hour: int = 17

  stuck_threshold_days: int = 3
  stuck_alerts_per_board: int = 3
  alert_dedupe_hours: int = 24
  due_soon_days: int = 3
  in_progress_column_ids: str = "in-progress,in_progress,doing"
  default_column_id: str | None = None

  agent_author_id: str = "moltbot"

  webhook_timeout_seconds: float = 10.0
  webhook_error_max_chars: int = 500

  cron_secret: str | None = None

  # Creates missing tables on startup; schemas are otherwise managed outside this service.
  auto_create_tables: bool = True

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def in_progress_column_id_set(self) -> set[str]:
    return {c.strip() for c in self.in_progress_column_ids.split(",") if c.strip()}


settings = Settings()
