"""
gateway.classifier — Upstream error classifier.

Maps a non-2xx upstream answer to exactly one outcome. Never retried.

    | Upstream status   | Outcome              | Client status | Body handling                       |
    |-------------------|----------------------|---------------|-------------------------------------|
    | 400               | ClientInputRejected  | 400           | detail / error / message, else raw  |
    | 404               | TargetNotFound       | 404           | fixed message, body not echoed      |
    | other 4xx / 5xx   | UpstreamFault        | 502           | status recorded, body not echoed    |

Unparseable error bodies degrade to their raw text; classification never
raises a secondary failure.
"""

from __future__ import annotations

import json
from typing import Any

from gateway.constants import MAX_SURFACED_MESSAGE_CHARS
from gateway.errors import (
    ClientInputRejected,
    TargetNotFound,
    UpstreamFault,
    UpstreamOutcomeError,
)

# Checked in this order; the first non-empty string wins.
MESSAGE_FIELDS: tuple[str, ...] = ("detail", "error", "message")


def decode_text(body: bytes) -> str:
    return body.decode("utf-8", errors="replace").strip()


def extract_message(body: bytes) -> str:
    """Best human-readable message in an upstream error body."""
    text = decode_text(body)
    try:
        parsed: Any = json.loads(text)
    except (ValueError, RecursionError):
        return text[:MAX_SURFACED_MESSAGE_CHARS]

    if isinstance(parsed, dict):
        for field in MESSAGE_FIELDS:
            value = parsed.get(field)
            if isinstance(value, str) and value.strip():
                return value.strip()[:MAX_SURFACED_MESSAGE_CHARS]
    return text[:MAX_SURFACED_MESSAGE_CHARS]


def classify(status: int, body: bytes) -> UpstreamOutcomeError:
    """Classify a non-2xx upstream answer.

    Raises ValueError if called with a 2xx status; success bodies belong
    to the response validator.
    """
    if 200 <= status < 300:
        raise ValueError(f"classify() called with success status {status}")

    if status == 400:
        return ClientInputRejected(status, extract_message(body))
    if status == 404:
        return TargetNotFound(status, "Upstream reported the target as not found.")
    return UpstreamFault(status, f"Upstream returned HTTP {status}.")
