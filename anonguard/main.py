"""AnonGuard FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan — @asynccontextmanager startup/shutdown sequence
  - app = create_app() — module-level instance for uvicorn

Startup sequence:
  1. load_config()              → app.state.config
  2. TokenAuthenticator         → app.state.authenticator
  3. PolicyLoader               → app.state.policy_loader (+ file watcher task)
  4. AccessGate                 → app.state.access_gate
  5. create_http_client()       → app.state.http_client
  6. app.state.ready = True

Shutdown (reverse): ready = False → stop watcher → close HTTP client.
"""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from anonguard.access.decision import AccessGate
from anonguard.access.loader import PolicyLoader
from anonguard.access.middleware import RestrictAnonymousAccessMiddleware
from anonguard.auth.tokens import TokenAuthenticator
from anonguard.config import Config, load_config
from anonguard.health import router as health_router
from anonguard.proxy.engine import create_http_client, router as engine_router
from anonguard.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup and shutdown sequence."""
    logger.info("AnonGuard starting up...")

    # load_config() raises SystemExit on parse error or missing version field,
    # so the process exits before ready=True is ever set.
    config: Config = load_config()
    app.state.config = config

    authenticator = TokenAuthenticator(config.auth.tokens)
    app.state.authenticator = authenticator

    # Hot-reload swaps both the access policy and the authenticator's tokens
    policy_loader = PolicyLoader(authenticator=authenticator)
    policy_loader.load_from_config(config)
    app.state.policy_loader = policy_loader

    watcher_task: asyncio.Task[None] | None = None
    if config.path:
        watcher_task = asyncio.create_task(policy_loader.start_watcher(config.path))
    else:
        logger.debug("Config file watcher disabled (no config file to watch)")

    app.state.access_gate = AccessGate()

    http_client: httpx.AsyncClient = create_http_client()
    app.state.http_client = http_client

    app.state.ready = True
    logger.info(
        "AnonGuard ready",
        platform_host=config.platform.host,
        upstream=config.platform.upstream_url,
    )

    yield

    logger.info("AnonGuard shutting down...")
    app.state.ready = False

    if watcher_task is not None and not watcher_task.done():
        watcher_task.cancel()
        try:
            await watcher_task
        except asyncio.CancelledError:
            pass

    try:
        await http_client.aclose()
    except Exception as exc:
        logger.warning("HTTP proxy client close error (non-fatal)", error=str(exc))

    logger.info("AnonGuard shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the AnonGuard FastAPI application.

    Call this function directly in tests to get an isolated app instance.
    """
    _debug = os.getenv("DEBUG", "false").lower() == "true"

    application = FastAPI(
        title="AnonGuard",
        description="Anonymous-access gateway for web analytics platforms",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if _debug else None,
        redoc_url="/redoc" if _debug else None,
        openapi_url="/openapi.json" if _debug else None,
    )

    # Fail closed until the lifespan has wired the gate's collaborators.
    application.state.ready = False

    application.add_middleware(RestrictAnonymousAccessMiddleware)

    # health_router MUST be included before the catch-all engine_router.
    application.include_router(health_router)
    application.include_router(engine_router)

    @application.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=500, content={"error": "Internal server error"}
        )

    return application


app = create_app()
