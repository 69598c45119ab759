"""
gateway.contract — Scenario contract (single source of truth).

Pure, stateless definitions. Zero I/O.

Defines:
    - the versioned inbound contract (ContractSchema, dispatched on
      meta.contract_version) so validation is written once,
    - the validated request value object and its exact upstream projection,
    - the accepted upstream response shape (pydantic v2),
    - the client-facing response shape (pydantic v2).

Inbound (scenario-v1):
    {"country_code": "SE", "adjustments": {"<axis>": 0.05}, "meta": {...}}

Inbound (scenario-v0, legacy):
    {"country": "SE", "axis_shifts": {"<axis>": 0.05}, "meta": {...}}

Outbound (always):
    {"country_code": "SE", "adjustments": {"<canonical_axis_key>": 0.05}, "meta": {...}}

Upstream response:
    {"composite": float, "rank": int, "classification": str,
     "axes": [{"slug": str, "value": float, "delta": float}], "request_id"?: str}
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gateway.constants import (
    LEGACY_SCENARIO_VERSION,
    SCENARIO_VERSION,
    SHORT_SLUG_TO_CANONICAL,
    VALID_CANONICAL_KEYS,
)


# ---------------------------------------------------------------------------
# Versioned inbound contract
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ContractSchema:
    """Field names for one inbound contract version."""

    version: str
    country_field: str
    adjustments_field: str


CONTRACTS: Mapping[str, ContractSchema] = MappingProxyType({
    SCENARIO_VERSION: ContractSchema(
        version=SCENARIO_VERSION,
        country_field="country_code",
        adjustments_field="adjustments",
    ),
    LEGACY_SCENARIO_VERSION: ContractSchema(
        version=LEGACY_SCENARIO_VERSION,
        country_field="country",
        adjustments_field="axis_shifts",
    ),
})

CONTRACT_VERSION_KEY = "contract_version"
"""Key inside ``meta`` that selects the inbound contract version."""


def get_contract(version: str | None) -> ContractSchema | None:
    """Look up a contract by tag. ``None`` selects the current version."""
    if version is None:
        return CONTRACTS[SCENARIO_VERSION]
    return CONTRACTS.get(version)


def resolve_axis_key(key: str) -> str | None:
    """Map a canonical key or a short UI slug to its canonical key.

    Returns None for anything outside the six axes.
    """
    if key in VALID_CANONICAL_KEYS:
        return key
    return SHORT_SLUG_TO_CANONICAL.get(key)


# ---------------------------------------------------------------------------
# Validated request → upstream payload
# ---------------------------------------------------------------------------

UPSTREAM_PAYLOAD_KEYS: frozenset[str] = frozenset({"country_code", "adjustments", "meta"})


@dataclass(frozen=True)
class ValidatedRequest:
    """Output of the request validator. Owned by exactly one in-flight request.

    ``adjustments`` is a read-only view keyed by canonical axis key.
    ``meta`` is passed through opaquely.
    """

    country_code: str
    adjustments: Mapping[str, float]
    meta: Mapping[str, Any]
    contract_version: str = SCENARIO_VERSION

    def __post_init__(self) -> None:
        object.__setattr__(self, "adjustments", MappingProxyType(dict(self.adjustments)))
        object.__setattr__(self, "meta", MappingProxyType(dict(self.meta)))


def to_upstream_payload(req: ValidatedRequest) -> dict[str, Any]:
    """Exact projection of a validated request. Nothing added, nothing dropped."""
    return {
        "country_code": req.country_code,
        "adjustments": dict(req.adjustments),
        "meta": dict(req.meta),
    }


# ---------------------------------------------------------------------------
# Upstream response shape
# ---------------------------------------------------------------------------

Classification = Literal[
    "highly_concentrated",
    "moderately_concentrated",
    "mildly_concentrated",
    "unconcentrated",
]


def _require_number(value: Any) -> float:
    # JSON numbers only: no bools, no numeric strings.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("must be a number")
    try:
        value = float(value)
    except OverflowError:
        raise ValueError("must be finite") from None
    if math.isnan(value) or math.isinf(value):
        raise ValueError("must be finite")
    return value


class AxisResult(BaseModel):
    """One axis of the upstream result. ``baseline`` is derived, never stored."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    slug: str
    value: float = Field(..., ge=0.0, le=1.0)
    # value lives in [0, 1]; a shift larger than the whole range is garbage.
    delta: float = Field(..., ge=-1.0, le=1.0)

    @field_validator("slug", mode="before")
    @classmethod
    def _slug_is_string(cls, v: Any) -> Any:
        if not isinstance(v, str) or not v:
            raise ValueError("slug must be a non-empty string")
        return v

    @field_validator("value", "delta", mode="before")
    @classmethod
    def _numeric(cls, v: Any) -> float:
        return _require_number(v)

    @property
    def baseline(self) -> float:
        return self.value - self.delta


class ValidatedUpstreamResponse(BaseModel):
    """Upstream 200 body the gateway can fully interpret.

    Partial-but-usable bodies are rejected: every field is required and typed.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    composite: float
    rank: int = Field(..., ge=1)
    classification: Classification
    axes: list[AxisResult]
    request_id: Optional[str] = None

    @field_validator("composite", mode="before")
    @classmethod
    def _composite_numeric(cls, v: Any) -> float:
        return _require_number(v)

    @field_validator("rank", mode="before")
    @classmethod
    def _rank_integer(cls, v: Any) -> int:
        if isinstance(v, bool):
            raise ValueError("rank must be an integer")
        if isinstance(v, float) and v.is_integer():
            return int(v)
        if not isinstance(v, int):
            raise ValueError("rank must be an integer")
        return v

    @field_validator("axes", mode="before")
    @classmethod
    def _axes_is_list(cls, v: Any) -> Any:
        if not isinstance(v, list):
            raise ValueError("axes must be a list")
        return v


# ---------------------------------------------------------------------------
# Client-facing response
# ---------------------------------------------------------------------------

class SimulatedAxis(BaseModel):
    model_config = ConfigDict(frozen=True)

    axis_slug: str
    baseline: float
    simulated: float
    delta: float


class ClientResponse(BaseModel):
    """The only entity handed back across the system boundary."""

    model_config = ConfigDict(frozen=True)

    country: str
    simulated_axes: list[SimulatedAxis]
    simulated_composite: float
    simulated_rank: int
    simulated_classification: str
    baseline_composite: Optional[float]
    baseline_rank: Optional[int] = None
    baseline_classification: Optional[str] = None
    delta_from_baseline: Optional[float]
