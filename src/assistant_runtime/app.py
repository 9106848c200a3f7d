"""Application factory for the FastAPI service."""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .client import ResponsesClient
from .config import Settings, get_settings
from .events import EventDispatcher
from .routers.responses import router as responses_router
from .routers.webhooks import create_webhook_router
from .services.response_status import ResponseStatusStore
from .services.tool_invocations import InMemoryToolInvocationsStore
from .webhooks import WebhookVerifier

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _configure_logging() -> None:
    """Install console and optional ``LOG_FILE`` handlers at ``LOG_LEVEL``."""

    load_dotenv()
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = logging.getLevelNamesMapping().get(level_name, logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    log_file = os.getenv("LOG_FILE")
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATEFMT)
    for handler in handlers:
        handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=handlers, force=True)

    for name in ("assistant_runtime", "uvicorn", "uvicorn.access", "uvicorn.error"):
        logging.getLogger(name).setLevel(level)

    # httpx logs every upstream request at INFO.
    http_level = level if level <= logging.DEBUG else max(level, logging.WARNING)
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(http_level)


def create_app(
    settings: Optional[Settings] = None,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    _configure_logging()

    settings = settings or get_settings()
    responses_client = ResponsesClient.from_settings(settings, client=http_client)
    status_store = ResponseStatusStore(ttl_seconds=settings.response_status_ttl_seconds)
    dispatcher = EventDispatcher()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            try:
                await asyncio.wait_for(responses_client.aclose(), timeout=10.0)
            except asyncio.TimeoutError:
                logger.warning("HTTP client shutdown timed out after 10s")

    app = FastAPI(
        title="Assistant Runtime",
        version="0.1.0",
        description="Responses API relay with webhook verification and tool calling.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.responses_client = responses_client
    app.state.response_status_store = status_store
    app.state.tool_invocations_store = InMemoryToolInvocationsStore()
    app.state.event_dispatcher = dispatcher
    secret = settings.webhooks_signing_secret
    if secret is not None and secret.get_secret_value():
        app.state.webhook_verifier = WebhookVerifier.from_settings(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(responses_router)
    app.include_router(create_webhook_router(settings.webhooks_path))

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str | bool]:
        return {
            "status": "ok",
            "default_model": settings.default_model,
            "webhooks_enabled": settings.webhooks_enabled,
        }

    return app


__all__ = ["create_app"]
