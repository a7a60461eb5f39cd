"""HTTP API for starting, polling and cancelling form-fill runs.

Routes:
- GET/POST /api/settings, POST /api/settings/reset
- GET/DELETE /api/automation/history
- POST /api/automation/start, GET /api/automation/status, POST /api/automation/cancel

Start returns as soon as the run is scheduled; clients poll status.
"""
from __future__ import annotations

import contextlib
import functools
import json
import logging
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlparse

import uvicorn
from pydantic import BaseModel, ValidationError, field_validator
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from automation import AutomationOrchestrator
from config import AppConfig, SettingsStore
from exceptions import AutomationAlreadyRunningError, ConfigurationError
from history import HistoryRecorder, JsonHistoryStore

logger = logging.getLogger("formfill.server")

Handler = Callable[[Request], Awaitable[JSONResponse]]


class StartRequest(BaseModel):
    """Body of POST /api/automation/start. Missing values fall back to settings."""

    url: str
    value1: Optional[str] = None
    value2: Optional[str] = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        parsed = urlparse(v)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError("url must be an absolute http(s) URL")
        return v


class BadRequest(Exception):
    """Raised by handlers to produce a 400 response."""


def _message(text: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse({"message": text}, status_code=status_code)


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except json.JSONDecodeError as exc:
        raise BadRequest("Request body must be valid JSON") from exc
    if not isinstance(body, dict):
        raise BadRequest("Request body must be a JSON object")
    return body


def _guard(failure_message: str) -> Callable[[Handler], Handler]:
    """Map BadRequest to 400 and anything unexpected to a logged 500."""

    def decorator(handler: Handler) -> Handler:
        @functools.wraps(handler)
        async def wrapped(request: Request) -> JSONResponse:
            try:
                return await handler(request)
            except BadRequest as exc:
                logger.warning(f"{request.method} {request.url.path} rejected: {exc}")
                return _message(str(exc), 400)
            except Exception:
                logger.exception(f"{request.method} {request.url.path} failed")
                return _message(failure_message, 500)

        return wrapped

    return decorator


@_guard("Failed to get settings")
async def get_settings(request: Request) -> JSONResponse:
    store: SettingsStore = request.app.state.settings_store
    return JSONResponse(store.get().model_dump())


@_guard("Failed to save settings")
async def save_settings(request: Request) -> JSONResponse:
    store: SettingsStore = request.app.state.settings_store
    body = await _json_body(request)
    try:
        settings = store.save(body)
    except ConfigurationError as exc:
        raise BadRequest("Invalid settings data") from exc
    return JSONResponse(settings.model_dump())


@_guard("Failed to reset settings")
async def reset_settings(request: Request) -> JSONResponse:
    store: SettingsStore = request.app.state.settings_store
    return JSONResponse(store.reset().model_dump())


@_guard("Failed to get automation history")
async def get_history(request: Request) -> JSONResponse:
    history: HistoryRecorder = request.app.state.history
    return JSONResponse([record.to_dict() for record in history.list()])


@_guard("Failed to clear automation history")
async def clear_history(request: Request) -> JSONResponse:
    history: HistoryRecorder = request.app.state.history
    history.clear()
    return _message("Automation history cleared")


@_guard("Failed to start automation")
async def start_automation(request: Request) -> JSONResponse:
    orchestrator: AutomationOrchestrator = request.app.state.orchestrator
    store: SettingsStore = request.app.state.settings_store

    body = await _json_body(request)
    try:
        payload = StartRequest.model_validate(body)
    except ValidationError as exc:
        raise BadRequest(f"Invalid start request: {exc.errors()[0]['msg']}") from exc

    settings = store.get()
    values = [
        payload.value1 if payload.value1 is not None else settings.value1,
        payload.value2 if payload.value2 is not None else settings.value2,
    ]
    try:
        await orchestrator.start(payload.url, values, settings.to_pipeline_options())
    except AutomationAlreadyRunningError as exc:
        raise BadRequest(exc.message) from exc

    logger.info(f"Automation started for {payload.url}")
    return _message("Automation started")


@_guard("Failed to get automation status")
async def automation_status(request: Request) -> JSONResponse:
    orchestrator: AutomationOrchestrator = request.app.state.orchestrator
    return JSONResponse(orchestrator.get_status().to_dict())


@_guard("Failed to cancel automation")
async def cancel_automation(request: Request) -> JSONResponse:
    orchestrator: AutomationOrchestrator = request.app.state.orchestrator
    await orchestrator.cancel()
    return _message("Automation cancelled")


def create_app(
    orchestrator: AutomationOrchestrator,
    settings_store: SettingsStore,
    history: HistoryRecorder,
) -> Starlette:
    """Build the Starlette app around already-constructed components."""

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        yield
        # Never leave browsers behind on shutdown.
        if orchestrator.is_running:
            logger.info("Shutting down with a run in progress; cancelling it")
            await orchestrator.cancel()

    routes = [
        Route("/api/settings", endpoint=get_settings, methods=["GET"]),
        Route("/api/settings", endpoint=save_settings, methods=["POST"]),
        Route("/api/settings/reset", endpoint=reset_settings, methods=["POST"]),
        Route("/api/automation/history", endpoint=get_history, methods=["GET"]),
        Route("/api/automation/history", endpoint=clear_history, methods=["DELETE"]),
        Route("/api/automation/start", endpoint=start_automation, methods=["POST"]),
        Route("/api/automation/status", endpoint=automation_status, methods=["GET"]),
        Route("/api/automation/cancel", endpoint=cancel_automation, methods=["POST"]),
    ]

    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.orchestrator = orchestrator
    app.state.settings_store = settings_store
    app.state.history = history
    return app


def build_app(config: AppConfig) -> Starlette:
    """Wire file-backed stores and the orchestrator from configuration."""
    history = JsonHistoryStore(config.server.history_file)
    settings_store = SettingsStore(config.server.settings_file, defaults=config.settings)
    orchestrator = AutomationOrchestrator(history=history)
    return create_app(orchestrator, settings_store, history)


async def serve(config: AppConfig) -> None:
    """Run the HTTP API until interrupted."""
    app = build_app(config)
    host, port = config.server.host, config.server.port
    logger.info(f"HTTP server listening on http://{host}:{port}")
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="info"))
    await server.serve()
