"""
gateway.security — HTTP middleware for the scenario gateway.

Provides:
    - RequestIdMiddleware: attaches X-Request-ID to every request/response
      and emits one structured access log line
    - SecurityHeadersMiddleware: OWASP-recommended response headers;
      every gateway response is no-store
    - RequestSizeLimitMiddleware: rejects oversized bodies (413) / headers (431)
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("isi.gateway.http")

MAX_BODY_BYTES = 4096       # scenario bodies are a few hundred bytes
MAX_HEADER_BYTES = 16_384

_REQUEST_ID_MAX_CHARS = 64


# ---------------------------------------------------------------------------
# Request-ID middleware
# ---------------------------------------------------------------------------

class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach a request ID to every request and echo it in the response.

    A client-supplied X-Request-ID is reused when it is short and printable;
    otherwise a fresh one is generated.
    """

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        request_id = _sanitize_request_id(request.headers.get("x-request-id"))
        request.state.request_id = request_id
        t0 = time.monotonic()
        response = await call_next(request)
        latency_ms = round((time.monotonic() - t0) * 1000, 1)
        response.headers["X-Request-ID"] = request_id
        _log_request(request, response.status_code, latency_ms, request_id)
        return response


def _sanitize_request_id(value: str | None) -> str:
    if value and len(value) <= _REQUEST_ID_MAX_CHARS and value.isprintable():
        return value
    return uuid.uuid4().hex[:16]


# ---------------------------------------------------------------------------
# Security headers middleware
# ---------------------------------------------------------------------------

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Inject OWASP-recommended security headers into every response.

    HSTS only when enable_hsts (prod, TLS terminated in front of us).
    Simulation results are per-request; nothing is cacheable downstream.
    """

    def __init__(self, app: Any, *, enable_hsts: bool = False) -> None:
        super().__init__(app)
        self.enable_hsts = enable_hsts

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        response.headers["Cross-Origin-Resource-Policy"] = "same-origin"
        response.headers["Cache-Control"] = "no-store"

        if self.enable_hsts:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains; preload"
            )

        return response


# ---------------------------------------------------------------------------
# Request size limit middleware
# ---------------------------------------------------------------------------

class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests with oversized bodies (413) or headers (431).

    Checks the declared Content-Length only; the scenario route re-checks
    the bytes it actually reads.
    """

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        header_size = sum(len(k) + len(v) for k, v in request.headers.raw)
        if header_size > MAX_HEADER_BYTES:
            return Response(
                content='{"error":"Request headers too large"}',
                status_code=431,
                media_type="application/json",
            )

        content_length = request.headers.get("content-length")
        if content_length is not None:
            try:
                too_large = int(content_length) > MAX_BODY_BYTES
            except ValueError:
                too_large = False
            if too_large:
                return Response(
                    content='{"error":"Request body too large"}',
                    status_code=413,
                    media_type="application/json",
                )

        return await call_next(request)


# ---------------------------------------------------------------------------
# Structured request logging
# ---------------------------------------------------------------------------

def _mask_ip(ip: str | None) -> str:
    """Truncate a client address: first two IPv4 octets, IPv6 /64 prefix.

    IPv4-mapped IPv6 addresses (dual-stack listeners) are masked as IPv4.
    """
    if not ip:
        return "unknown"
    if ip.lower().startswith("::ffff:") and "." in ip:
        ip = ip[len("::ffff:"):]
    if ":" in ip:
        parts = ip.split(":")
        return ":".join(parts[:4]) + "::*"
    parts = ip.split(".")
    if len(parts) == 4:
        return f"{parts[0]}.{parts[1]}.*.*"
    return "unknown"


def _log_request(
    request: Request,
    status_code: int,
    latency_ms: float,
    request_id: str,
) -> None:
    log_data = {
        "event": "http_request",
        "method": request.method,
        "path": request.url.path,
        "status": status_code,
        "latency_ms": latency_ms,
        "client_ip": _mask_ip(request.client.host if request.client else None),
        "request_id": request_id,
    }
    # Set by the scenario route for gateway error envelopes.
    kind = getattr(request.state, "error_kind", None)
    if kind:
        log_data["kind"] = kind
    if status_code >= 500:
        logger.error(json.dumps(log_data))
    elif status_code >= 400:
        logger.warning(json.dumps(log_data))
    else:
        logger.info(json.dumps(log_data))
