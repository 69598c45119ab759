"""
gateway.validation — Request validator.

Pure function over its input. Zero I/O. Zero global state.

    validate(raw) -> ValidatedRequest      or raises errors.ValidationError

Rules (one routine, parameterized by the contract version in meta):
    - body must be a JSON object                        → MalformedBody
    - meta, when present, must be an object             → InvalidType
    - meta.contract_version must be a known tag         → UnsupportedContract
    - adjustment container must be present              → MissingField
    - adjustment container must be an object            → InvalidType
    - every key must be one of the six axes (or alias)  → UnknownAxis
    - an axis may appear only once (alias + long form)  → DuplicateAxis
    - every value must be a JSON number                 → InvalidType
    - every value must be finite, in [-0.20, +0.20]     → OutOfRange
    - country code must be present                      → MissingField
    - country code must be exactly two ASCII letters    → InvalidCountryCode

Partial adjustment maps (0–6 axes) are accepted as-is. Missing axes are
not zero-filled here; the upstream payload stays an exact projection.
Unknown keys are a hard rejection, never filtered.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any

from gateway import errors
from gateway.constants import MAX_ADJUSTMENT
from gateway.contract import (
    CONTRACT_VERSION_KEY,
    CONTRACTS,
    ContractSchema,
    ValidatedRequest,
    get_contract,
    resolve_axis_key,
)

# Exactly 2 ASCII letters. str.isalpha() would accept non-ASCII letters.
_COUNTRY_RE = re.compile(r"[A-Za-z]{2}")


def parse_body(raw_body: bytes | str) -> Any:
    """Decode a raw HTTP body as JSON. Raises ValidationError(MalformedBody)."""
    try:
        return json.loads(raw_body)
    except (TypeError, ValueError, RecursionError):
        raise errors.ValidationError([
            (errors.MALFORMED_BODY, "Request body is not valid JSON."),
        ]) from None


def validate(raw: Any) -> ValidatedRequest:
    """Validate and canonicalize a decoded client payload.

    Deterministic: the same input always yields an equal ValidatedRequest.
    All violations are collected; the raised error's kind is the first one.
    """
    if not isinstance(raw, dict):
        raise errors.ValidationError([
            (errors.MALFORMED_BODY, "Request body must be a JSON object."),
        ])

    violations: list[tuple[str, str]] = []

    meta = _validate_meta(raw.get("meta"), violations)
    if violations:
        raise errors.ValidationError(violations)

    contract = _select_contract(meta, violations)
    if contract is None:
        raise errors.ValidationError(violations)

    adjustments = _validate_adjustments(raw, contract, violations)
    country_code = _validate_country_code(raw, contract, violations)

    if violations:
        raise errors.ValidationError(violations)

    return ValidatedRequest(
        country_code=country_code,
        adjustments=adjustments,
        meta=meta,
        contract_version=contract.version,
    )


# ---------------------------------------------------------------------------
# Field validators: each appends to ``violations`` and returns a best effort
# ---------------------------------------------------------------------------

def _validate_meta(meta: Any, violations: list[tuple[str, str]]) -> dict[str, Any]:
    if meta is None:
        return {}
    if not isinstance(meta, dict):
        violations.append((errors.INVALID_TYPE, "meta must be a JSON object."))
        return {}
    # meta is forwarded verbatim; it must survive strict JSON encoding.
    try:
        json.dumps(meta, allow_nan=False)
    except (TypeError, ValueError, RecursionError):
        violations.append((errors.INVALID_TYPE, "meta must contain only finite JSON values."))
        return {}
    return dict(meta)


def _select_contract(
    meta: dict[str, Any],
    violations: list[tuple[str, str]],
) -> ContractSchema | None:
    version = meta.get(CONTRACT_VERSION_KEY)
    if version is not None and not isinstance(version, str):
        violations.append((
            errors.UNSUPPORTED_CONTRACT,
            f"meta.{CONTRACT_VERSION_KEY} must be a string.",
        ))
        return None
    contract = get_contract(version)
    if contract is None:
        violations.append((
            errors.UNSUPPORTED_CONTRACT,
            f"Unsupported contract version '{version}'. "
            f"Supported: {sorted(CONTRACTS)}.",
        ))
    return contract


def _validate_adjustments(
    raw: dict[str, Any],
    contract: ContractSchema,
    violations: list[tuple[str, str]],
) -> dict[str, float]:
    field = contract.adjustments_field
    if field not in raw or raw[field] is None:
        violations.append((errors.MISSING_FIELD, f"Missing required field '{field}'."))
        return {}

    container = raw[field]
    if not isinstance(container, dict):
        violations.append((errors.INVALID_TYPE, f"'{field}' must be a JSON object."))
        return {}

    normalized: dict[str, float] = {}
    for key, value in container.items():
        canonical = resolve_axis_key(key)
        if canonical is None:
            violations.append((errors.UNKNOWN_AXIS, f"Unknown axis key '{key}'."))
            continue
        if canonical in normalized:
            violations.append((
                errors.DUPLICATE_AXIS,
                f"Axis '{canonical}' supplied more than once (via '{key}').",
            ))
            continue

        if isinstance(value, bool) or not isinstance(value, (int, float)):
            violations.append((
                errors.INVALID_TYPE,
                f"Adjustment for '{key}' must be a number.",
            ))
            continue

        try:
            fval = float(value)
        except OverflowError:
            violations.append((
                errors.OUT_OF_RANGE,
                f"Adjustment for '{key}' is too large to represent.",
            ))
            continue
        if math.isnan(fval) or math.isinf(fval) or not (-MAX_ADJUSTMENT <= fval <= MAX_ADJUSTMENT):
            violations.append((
                errors.OUT_OF_RANGE,
                f"Adjustment for '{key}' must be in "
                f"[{-MAX_ADJUSTMENT:.2f}, {MAX_ADJUSTMENT:+.2f}], got {value!r}.",
            ))
            continue

        normalized[canonical] = fval

    return normalized


def _validate_country_code(
    raw: dict[str, Any],
    contract: ContractSchema,
    violations: list[tuple[str, str]],
) -> str:
    field = contract.country_field
    value = raw.get(field)
    if value is None:
        violations.append((errors.MISSING_FIELD, f"Missing required field '{field}'."))
        return ""
    if not isinstance(value, str):
        violations.append((errors.INVALID_COUNTRY_CODE, f"'{field}' must be a string."))
        return ""

    stripped = value.strip()
    if not _COUNTRY_RE.fullmatch(stripped):
        violations.append((
            errors.INVALID_COUNTRY_CODE,
            f"'{field}' must be exactly two ASCII letters, got '{value}'.",
        ))
        return ""
    return stripped.upper()
