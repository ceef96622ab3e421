"""FastAPI application entry point — wires everything together.

Usage:
    python -m schemebot.main

`create_app(components)` serves prebuilt components (tests, embedding);
without them the lifespan connects PostgreSQL and Redis, hydrates the rule
store and review queue, and seeds the default scheme catalogue.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from schemebot.api.routes import ROUTERS
from schemebot.config import settings
from schemebot.container import Components, build_components
from schemebot.errors import (
    ConflictError,
    InfrastructureError,
    InvalidStateError,
    MalformedRuleError,
    NotFoundError,
    SchemeBotError,
    ValidationError,
)
from schemebot.events import start_event_system, stop_event_system, subscribe, unsubscribe
from schemebot.rules.catalog import seed_default_catalog
from schemebot.security.audit import make_audit_subscriber
from schemebot.security.retention import enforce_session_retention

# ── Logging setup ────────────────────────────────────────────────────

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    stream=sys.stdout,
)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = logging.getLogger(__name__)

RETENTION_INTERVAL_SECONDS = 3600

_STATUS_BY_ERROR: tuple[tuple[type[SchemeBotError], int], ...] = (
    (NotFoundError, 404),
    (ConflictError, 409),
    (InvalidStateError, 409),
    (ValidationError, 422),
    (InfrastructureError, 503),
)


async def _retention_loop(components: Components, interval: float) -> None:
    """Sweep expired sessions periodically until cancelled."""
    while True:
        try:
            await enforce_session_retention(components.sessions, components.erasure)
        except InfrastructureError:
            logger.exception("Retention sweep failed; retrying next interval")
        await asyncio.sleep(interval)


@asynccontextmanager
async def _backends(app: FastAPI) -> AsyncGenerator[Components, None]:
    """Yield the app's components, connecting databases when none were given."""
    components: Components | None = app.state.components
    if components is not None:
        yield components
        return

    # Imported here so prebuilt-component apps never touch the DB drivers
    from schemebot.db.engine import async_session_factory, db_lifespan, redis_client

    async with db_lifespan():
        logger.info("Database initialized")
        components = build_components(async_session_factory, redis_client)
        await components.rules.hydrate()
        await seed_default_catalog(components.rules)
        await components.gate.hydrate()
        app.state.components = components
        yield components


# ── FastAPI lifespan ─────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    logger.info("Starting SchemeBot (env=%s)", settings.environment)

    async with _backends(app) as components:
        # 1. Event system
        await start_event_system()

        # 2. Audit trail: every event becomes one record
        audit_subscriber = make_audit_subscriber(components.audit)
        subscribe(audit_subscriber)
        logger.info("Audit trail subscriber registered")

        # 3. Retention sweep
        retention_task: asyncio.Task[None] | None = None
        if app.state.run_retention:
            retention_task = asyncio.create_task(_retention_loop(components, RETENTION_INTERVAL_SECONDS))

        try:
            yield
        finally:
            logger.info("Shutting down SchemeBot...")
            if retention_task is not None:
                retention_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await retention_task
            await stop_event_system()
            unsubscribe(audit_subscriber)

    logger.info("SchemeBot shutdown complete")


# ── Error mapping ────────────────────────────────────────────────────


async def _domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status_code = 500
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = code
            break
    body: dict[str, object] = {"detail": str(exc)}
    if isinstance(exc, MalformedRuleError):
        body["problems"] = exc.problems
    if status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content=body)


# ── FastAPI app ──────────────────────────────────────────────────────


def create_app(components: Components | None = None, run_retention: bool | None = None) -> FastAPI:
    """Build the FastAPI app. Pass `components` to skip database wiring."""
    app = FastAPI(
        title="SchemeBot API",
        description="Welfare scheme eligibility with auditable confidence and human review",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.components = components
    app.state.run_retention = components is None if run_retention is None else run_retention
    app.add_exception_handler(SchemeBotError, _domain_error_handler)
    for router in ROUTERS:
        app.include_router(router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "environment": settings.environment}

    return app


app = create_app()


# ── Entry point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run(
        "schemebot.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
