from __future__ import annotations

import logging
from time import monotonic

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from moltboard.agent.commands import CommandError
from moltboard.agent.task_creator import BoardNotFoundError, NoDestinationColumnError
from moltboard.config import settings
from moltboard.db import init_models
from moltboard.metrics import runtime_metrics
from moltboard.routers.briefing import router as briefing_router
from moltboard.routers.chat import router as chat_router
from moltboard.routers.commands import router as commands_router
from moltboard.routers.cron import router as cron_router
from moltboard.routers.integrations import router as integrations_router
from moltboard.routers.webhooks import router as webhooks_router
from moltboard.security import IntegrationSecretDecryptError
from moltboard.store import DuplicateMessageError

logging.basicConfig(
  level=getattr(logging, settings.log_level.upper(), logging.INFO),
  format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Moltboard API", version="0.1.0")


@app.exception_handler(CommandError)
async def _command_error_handler(_, exc: CommandError) -> JSONResponse:
  return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(IntegrationSecretDecryptError)
async def _integration_secret_error_handler(_, exc: IntegrationSecretDecryptError) -> JSONResponse:
  return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(NoDestinationColumnError)
async def _no_column_handler(_, exc: NoDestinationColumnError) -> JSONResponse:
  return JSONResponse(status_code=409, content={"detail": str(exc), "boardId": exc.board_id})


@app.exception_handler(BoardNotFoundError)
async def _board_not_found_handler(_, exc: BoardNotFoundError) -> JSONResponse:
  return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(DuplicateMessageError)
async def _duplicate_message_handler(_, exc: DuplicateMessageError) -> JSONResponse:
  return JSONResponse(status_code=409, content={"detail": str(exc)})


app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)

app.include_router(chat_router)
app.include_router(commands_router)
app.include_router(briefing_router)
app.include_router(cron_router)
app.include_router(integrations_router)
app.include_router(webhooks_router)


@app.middleware("http")
async def _observe(request: Request, call_next):
  t0 = monotonic()
  response = await call_next(request)
  runtime_metrics.observe_request(response.status_code, (monotonic() - t0) * 1000.0)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  return response


@app.get("/health")
async def healthz() -> dict:
  return {"ok": True}


@app.get("/version")
async def build_info() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


@app.get("/metrics")
async def metrics() -> dict:
  return {"startedAt": runtime_metrics.started_at.isoformat(), **runtime_metrics.snapshot()}


_PLACEHOLDER_SECRETS = {
  "app_secret": {"", "dev-secret-change-me", "replace_with_strong_random_secret"},
  "fernet_key": {"", "AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA=", "replace_with_fernet_key"},
}


def check_secrets() -> None:
  for name, placeholders in _PLACEHOLDER_SECRETS.items():
    value = (getattr(settings, name) or "").strip()
    if value.lower() in {p.lower() for p in placeholders}:
      raise RuntimeError(f"{name.upper()} is not configured (placeholder value)")


@app.on_event("startup")
async def _startup() -> None:
  check_secrets()
  if settings.auto_create_tables:
    await init_models()
  logger.info("moltboard api started version=%s tz=%s", settings.app_version, settings.timezone)
