#!/usr/bin/env python3
"""
gateway.api — Scenario Simulation Gateway (HTTP surface)

Same-origin mediator between the dashboard and the upstream simulation
service. Validates and canonicalizes what-if requests, forwards them,
classifies upstream failures and transforms the upstream result into the
stable client shape.

Endpoints:
    POST /api/scenario   → scenario simulation (any other method → 405)
    GET  /health         → liveness, always 200
    GET  /ready          → readiness diagnostics, always 200

Error envelope:
    {"error": str, "kind": str, "issues"?: [str], "request_id": str}

    400 → ValidationError, ClientInputRejected (upstream 400)
    404 → TargetNotFound (upstream 404)
    413 → request body too large
    429 → per-client rate limit exceeded
    502 → TransportError, UpstreamFault, ShapeError
    500 → unexpected internal error (generic message only)

Configuration is read once by create_app() (see gateway.config).

Run:
    uvicorn --factory gateway.api:create_app
    gunicorn -c gunicorn.conf.py "gateway.api:create_app()"

Requires: fastapi, uvicorn, gunicorn, slowapi, httpx, pydantic
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from gateway.cache import ScenarioCache
from gateway.config import GatewayConfig
from gateway.dispatcher import UpstreamDispatcher
from gateway.security import (
    MAX_BODY_BYTES,
    RequestIdMiddleware,
    RequestSizeLimitMiddleware,
    SecurityHeadersMiddleware,
)
from gateway.service import ScenarioGateway

# ---------------------------------------------------------------------------
# Logging configuration: structured JSON to stdout
# ---------------------------------------------------------------------------

_log_level = logging.DEBUG if os.getenv("ENV", "prod") == "dev" else logging.INFO
logging.basicConfig(
    level=_log_level,
    format="%(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger("isi.gateway.api")

SCENARIO_PATH = "/api/scenario"

_METHOD_NOT_ALLOWED = {"error": "Method not allowed. Use POST."}


def create_app(
    config: GatewayConfig | None = None,
    *,
    dispatcher: UpstreamDispatcher | None = None,
    cache: ScenarioCache | None = None,
) -> FastAPI:
    """Build the gateway app.

    With no config, reads the environment; a missing UPSTREAM_URL raises
    ConfigurationError here, before anything is served.
    """
    if config is None:
        config = GatewayConfig.from_env()

    gateway = ScenarioGateway(config, dispatcher=dispatcher, cache=cache)

    @asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(json.dumps({
            "event": "startup",
            "env": config.env,
            "upstream": config.upstream_host,
            "timeout_seconds": config.timeout_seconds,
            "cache_enabled": gateway.cache.enabled,
            "rate_limit": config.rate_limit,
        }))
        yield
        cleared = gateway.cache.clear()
        logger.info(json.dumps({"event": "shutdown", "cache_entries_dropped": cleared}))

    docs_kwargs: dict[str, Any] = (
        {"docs_url": "/docs", "redoc_url": None}
        if config.is_dev
        else {"docs_url": None, "redoc_url": None, "openapi_url": None}
    )

    app = FastAPI(
        title="ISI Scenario Gateway",
        description="Validating mediator for what-if scenario simulation",
        version="1.0.0",
        lifespan=_lifespan,
        **docs_kwargs,
    )
    app.state.gateway = gateway

    # -----------------------------------------------------------------------
    # Rate limiter: per client address, one instance per app. Not tenant-aware.
    # -----------------------------------------------------------------------

    limiter = Limiter(
        key_func=get_remote_address,
        storage_uri="memory://",
        strategy="fixed-window",
    )
    app.state.limiter = limiter

    # -----------------------------------------------------------------------
    # Middleware (last registered = outermost)
    # Execution order: SecurityHeaders → RequestId → RequestSizeLimit
    # -----------------------------------------------------------------------

    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=not config.is_dev)

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    @app.exception_handler(RateLimitExceeded)
    async def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content={"error": "Rate limit exceeded. Try again later."},
            headers={"Retry-After": "60"},
        )

    @app.exception_handler(Exception)
    async def _global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = getattr(request.state, "request_id", "unknown")
        logger.error(json.dumps({
            "event": "unhandled_exception",
            "exception_type": type(exc).__name__,
            "request_id": request_id,
            "path": request.url.path,
        }))
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error.", "request_id": request_id},
        )

    # -----------------------------------------------------------------------
    # Probes
    # -----------------------------------------------------------------------

    @app.get("/health", include_in_schema=False)
    async def health() -> JSONResponse:
        """Liveness probe. No upstream call, no state reads."""
        return JSONResponse(status_code=200, content={"status": "ok"})

    @app.get("/ready")
    async def ready() -> JSONResponse:
        """Readiness probe — configuration summary and cache stats, always 200.

        Does not call the upstream; upstream health is the upstream's probe.
        """
        return JSONResponse(
            status_code=200,
            content={
                "ready": True,
                "upstream": config.upstream_host,
                "timeout_seconds": config.timeout_seconds,
                "cache": gateway.cache.stats,
                "timestamp": datetime.now(UTC).isoformat(),
            },
        )

    # -----------------------------------------------------------------------
    # POST /api/scenario
    # -----------------------------------------------------------------------

    @app.api_route(
        SCENARIO_PATH,
        methods=["GET", "HEAD", "PUT", "PATCH", "DELETE", "OPTIONS"],
        include_in_schema=False,
    )
    async def scenario_method_not_allowed(request: Request) -> JSONResponse:
        return JSONResponse(
            status_code=405,
            content=_METHOD_NOT_ALLOWED,
            headers={"Allow": "POST"},
        )

    @app.post(SCENARIO_PATH)
    @limiter.limit(config.rate_limit)
    async def scenario(request: Request) -> JSONResponse:
        """What-if scenario simulation. See gateway.service for the pipeline."""
        request_id: str = getattr(request.state, "request_id", "unknown")

        raw_body = await request.body()
        if len(raw_body) > MAX_BODY_BYTES:
            return JSONResponse(
                status_code=413,
                content={"error": "Request body too large", "request_id": request_id},
            )

        result = await gateway.handle(raw_body, request_id=request_id)
        if result.status_code >= 400:
            request.state.error_kind = result.body.get("kind")
        headers = {"X-Scenario-Cache": "hit"} if result.cached else None
        return JSONResponse(status_code=result.status_code, content=result.body, headers=headers)

    return app


# ---------------------------------------------------------------------------
# Entry point (development only)
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    os.environ.setdefault("ENV", "dev")
    uvicorn.run(
        "gateway.api:create_app",
        factory=True,
        host="0.0.0.0",  # noqa: S104
        port=int(os.getenv("PORT", "8080")),
    )
