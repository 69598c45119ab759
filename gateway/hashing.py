"""
gateway.hashing — Deterministic request fingerprints.

The fingerprint keys the scenario response cache. Hash input is
human-readable text, inspectable for debugging.

Design contract:
    - request_fingerprint() is deterministic for equal upstream payloads.
    - Every value that is sent upstream is part of the hash input.
    - Axis keys and meta keys are in sorted order; floats use repr(),
      which round-trips exactly.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_float(value: float) -> str:
    """Shortest exact text form of a float. ``0.05`` → ``"0.05"``, ``1`` → ``"1.0"``."""
    return repr(float(value))


def request_fingerprint(payload: dict[str, Any]) -> str:
    """SHA-256 hex digest of an upstream payload.

    Args:
        payload: {country_code, adjustments, meta} as produced by
            contract.to_upstream_payload().

    Returns:
        64-character hex digest.
    """
    parts = [f"country={payload['country_code']}"]

    adjustments = payload["adjustments"]
    for key in sorted(adjustments):
        parts.append(f"adj.{key}={canonical_float(adjustments[key])}")

    # meta is opaque; canonical JSON keeps nested ordering stable.
    meta_text = json.dumps(payload.get("meta", {}), sort_keys=True, separators=(",", ":"), default=str)
    parts.append(f"meta={meta_text}")

    hash_input = "\n".join(parts) + "\n"
    return hashlib.sha256(hash_input.encode("utf-8")).hexdigest()
