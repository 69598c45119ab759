"""
gateway.errors — Closed error taxonomy for the scenario gateway.

Every failure a request can hit is one of the classes below. Each carries
the client-visible HTTP status and a client-safe message; internal detail
(raw upstream bodies, exception text) is kept on the instance for logging
and never rendered into the envelope.

    ValidationError       400  request shape / range / unknown-key violations
    TransportError        502  UpstreamTimeout, UpstreamUnreachable
    UpstreamFault         502  upstream non-2xx other than 400/404
    ClientInputRejected   400  upstream 400, message surfaced
    TargetNotFound        404  upstream 404
    ShapeError            502  malformed or incomplete upstream 200 body

Every error is terminal for its request. None is fatal to the process.
"""

from __future__ import annotations

from typing import Any

# ---------------------------------------------------------------------------
# Error kinds: ValidationError
# ---------------------------------------------------------------------------

MALFORMED_BODY = "MalformedBody"
MISSING_FIELD = "MissingField"
UNSUPPORTED_CONTRACT = "UnsupportedContract"
INVALID_COUNTRY_CODE = "InvalidCountryCode"
INVALID_TYPE = "InvalidType"
UNKNOWN_AXIS = "UnknownAxis"
DUPLICATE_AXIS = "DuplicateAxis"
OUT_OF_RANGE = "OutOfRange"

# ---------------------------------------------------------------------------
# Error kinds: ShapeError
# ---------------------------------------------------------------------------

NON_JSON = "NonJSON"
MISSING_REQUIRED_FIELD = "MissingRequiredField"
INVALID_AXIS_ENTRY = "InvalidAxisEntry"


class GatewayError(Exception):
    """Base class. Subclasses set status_code and client_message."""

    status_code: int = 500
    client_message: str = "Internal gateway error."

    def __init__(self, detail: str = "", *, kind: str | None = None) -> None:
        self.detail = detail or self.client_message
        self.kind = kind or type(self).__name__
        super().__init__(self.detail)

    @property
    def issues(self) -> list[str]:
        return []

    def to_envelope(self, request_id: str | None = None) -> dict[str, Any]:
        """Client-safe JSON body. Never includes self.detail unless a subclass opts in."""
        body: dict[str, Any] = {"error": self.client_message, "kind": self.kind}
        issues = self.issues
        if issues:
            body["issues"] = issues
        if request_id:
            body["request_id"] = request_id
        return body


# ---------------------------------------------------------------------------
# Client-side validation
# ---------------------------------------------------------------------------

class ValidationError(GatewayError):
    """Raised by the request validator. Carries every violation found.

    ``kind`` is the kind of the first violation; ``issues`` lists all of
    them in the order they were detected.
    """

    status_code = 400
    client_message = "Invalid scenario input."

    def __init__(self, violations: list[tuple[str, str]]) -> None:
        if not violations:
            raise ValueError("ValidationError requires at least one violation.")
        self.violations = list(violations)
        first_kind, first_message = self.violations[0]
        super().__init__(first_message, kind=first_kind)

    @property
    def issues(self) -> list[str]:
        return [message for _, message in self.violations]

    @property
    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.violations]


# ---------------------------------------------------------------------------
# Transport failures
# ---------------------------------------------------------------------------

class TransportError(GatewayError):
    """The upstream could not be reached or did not answer in time."""

    status_code = 502
    client_message = "Cannot reach simulation backend."


class UpstreamTimeout(TransportError):
    client_message = "Cannot reach simulation backend: request timed out."

    def __init__(self, detail: str = "", *, timeout: float | None = None) -> None:
        self.timeout = timeout
        super().__init__(detail, kind="Timeout")


class UpstreamUnreachable(TransportError):
    def __init__(self, detail: str = "") -> None:
        super().__init__(detail, kind="Unreachable")


# ---------------------------------------------------------------------------
# Upstream non-2xx outcomes
# ---------------------------------------------------------------------------

class UpstreamOutcomeError(GatewayError):
    """Base for outcomes produced by the error classifier."""

    def __init__(self, upstream_status: int, detail: str = "") -> None:
        self.upstream_status = upstream_status
        super().__init__(detail)


class ClientInputRejected(UpstreamOutcomeError):
    """Upstream 400. The upstream's human-readable message is surfaced."""

    status_code = 400
    client_message = "Backend rejected scenario input."

    def __init__(self, upstream_status: int, message: str) -> None:
        self.message = message
        super().__init__(upstream_status, message)

    @property
    def issues(self) -> list[str]:
        return [self.message] if self.message else []


class TargetNotFound(UpstreamOutcomeError):
    status_code = 404
    client_message = "Country not available for simulation."


class UpstreamFault(UpstreamOutcomeError):
    """Any other upstream non-2xx. Body is logged, never echoed."""

    status_code = 502
    client_message = "Upstream simulation service error."

    def to_envelope(self, request_id: str | None = None) -> dict[str, Any]:
        body = super().to_envelope(request_id)
        body["upstream_status"] = self.upstream_status
        return body


# ---------------------------------------------------------------------------
# Upstream 200 with an uninterpretable body
# ---------------------------------------------------------------------------

class ShapeError(GatewayError):
    status_code = 502
    client_message = "Upstream response invalid."

    def __init__(self, kind: str, detail: str) -> None:
        super().__init__(detail, kind=kind)


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------

class ConfigurationError(Exception):
    """Raised at startup when required configuration is missing or invalid."""
