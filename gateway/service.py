"""
gateway.service — Scenario gateway orchestration.

One request, one linear pass, no shared mutable state except the
explicitly owned response cache:

    parse → validate → (cache) → dispatch → classify | validate_response → transform

Every failure is terminal for its request and rendered as a typed,
client-safe envelope. Internal detail is logged, never returned.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from gateway.cache import ScenarioCache
from gateway.classifier import classify, decode_text
from gateway.config import GatewayConfig
from gateway.constants import LOG_TRUNCATE_CHARS
from gateway.contract import ValidatedRequest, to_upstream_payload
from gateway.dispatcher import UpstreamDispatcher
from gateway.errors import (
    GatewayError,
    ShapeError,
    TransportError,
    UpstreamOutcomeError,
    ValidationError,
)
from gateway.hashing import request_fingerprint
from gateway.response_validation import validate_response
from gateway.transform import transform
from gateway.validation import parse_body, validate

logger = logging.getLogger("isi.gateway.service")


@dataclass(frozen=True, slots=True)
class GatewayResult:
    """Rendered outcome of one request: HTTP status and JSON body."""

    status_code: int
    body: dict[str, Any]
    cached: bool = False


class ScenarioGateway:
    """Validates, forwards, classifies and transforms scenario requests.

    The dispatcher and cache are injected so each gateway instance owns
    its collaborators; nothing here is module-level state.
    """

    def __init__(
        self,
        config: GatewayConfig,
        dispatcher: UpstreamDispatcher | None = None,
        cache: ScenarioCache | None = None,
    ) -> None:
        self.config = config
        self.dispatcher = dispatcher or UpstreamDispatcher(config.upstream_url)
        self.cache = cache or ScenarioCache(
            ttl_seconds=config.cache_ttl_seconds,
            max_entries=config.cache_max_entries,
        )

    async def handle(self, raw_body: bytes, *, request_id: str = "unknown") -> GatewayResult:
        try:
            return await self._handle(raw_body, request_id)
        except GatewayError as exc:
            self._log_failure(exc, request_id, raw_body)
            return GatewayResult(
                status_code=exc.status_code,
                body=exc.to_envelope(request_id),
            )

    async def _handle(self, raw_body: bytes, request_id: str) -> GatewayResult:
        req = validate(parse_body(raw_body))
        payload = to_upstream_payload(req)
        fingerprint = request_fingerprint(payload)

        hit = self.cache.get(fingerprint)
        if hit is not None:
            logger.info(json.dumps({
                "event": "scenario_cache_hit",
                "request_id": request_id,
                "country_code": req.country_code,
            }))
            return GatewayResult(status_code=200, body=hit.model_dump(), cached=True)

        upstream = await self.dispatcher.dispatch(
            payload,
            self.config.timeout_seconds,
            request_id=request_id,
        )

        if not upstream.ok:
            logger.error(json.dumps({
                "event": "scenario_upstream_error",
                "request_id": request_id,
                "upstream_status": upstream.status_code,
                "body": decode_text(upstream.body)[:LOG_TRUNCATE_CHARS],
            }))
            raise classify(upstream.status_code, upstream.body)

        validated = validate_response(upstream.body, req)
        result = transform(req, validated)
        self.cache.put(fingerprint, result)

        self._log_success(req, validated.request_id, result.simulated_composite, request_id)
        return GatewayResult(status_code=200, body=result.model_dump())

    # -----------------------------------------------------------------------
    # Logging: structured JSON, truncated
    # -----------------------------------------------------------------------

    @staticmethod
    def _log_success(
        req: ValidatedRequest,
        upstream_request_id: str | None,
        composite: float,
        request_id: str,
    ) -> None:
        logger.info(json.dumps({
            "event": "scenario_success",
            "request_id": request_id,
            "upstream_request_id": upstream_request_id,
            "country_code": req.country_code,
            "axes_adjusted": len(req.adjustments),
            "composite": composite,
        }))

    @staticmethod
    def _log_failure(exc: GatewayError, request_id: str, raw_body: bytes) -> None:
        record: dict[str, Any] = {
            "request_id": request_id,
            "kind": exc.kind,
            "status": exc.status_code,
            "detail": exc.detail[:LOG_TRUNCATE_CHARS],
        }
        if isinstance(exc, ValidationError):
            record["event"] = "scenario_rejected"
            record["issues"] = exc.issues
            record["body"] = decode_text(raw_body)[:LOG_TRUNCATE_CHARS]
            logger.warning(json.dumps(record))
        elif isinstance(exc, TransportError):
            record["event"] = "scenario_transport_error"
            logger.error(json.dumps(record))
        elif isinstance(exc, ShapeError):
            record["event"] = "scenario_shape_error"
            logger.error(json.dumps(record))
        elif isinstance(exc, UpstreamOutcomeError):
            record["event"] = "scenario_upstream_outcome"
            record["upstream_status"] = exc.upstream_status
            logger.warning(json.dumps(record))
        else:
            record["event"] = "scenario_failed"
            logger.error(json.dumps(record))
