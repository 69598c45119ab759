"""
gateway.constants — Single source of truth for scenario gateway constants.

Every module that needs these values MUST import from here.
No hardcoded duplicates anywhere in the codebase.

Nothing in this module is configuration. Deploy-time settings live in
gateway.config and are read once at startup.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Structural constants
# ---------------------------------------------------------------------------

NUM_AXES: int = 6
"""Number of strategic axes scored upstream."""

MAX_ADJUSTMENT: float = 0.20
"""Scenario adjustment bound: every delta must lie in [-MAX_ADJUSTMENT, +MAX_ADJUSTMENT]."""

SCENARIO_VERSION: str = "scenario-v1"
"""Current wire-format version tag. Used when meta.contract_version is absent."""

LEGACY_SCENARIO_VERSION: str = "scenario-v0"
"""Legacy wire format: {country, axis_shifts}."""

# ---------------------------------------------------------------------------
# Axis keys: canonical long form + short UI slugs
# ---------------------------------------------------------------------------

CANONICAL_AXIS_KEYS: tuple[str, ...] = (
    "financial_external_supplier_concentration",
    "energy_external_supplier_concentration",
    "technology_semiconductor_external_supplier_concentration",
    "defense_external_supplier_concentration",
    "critical_inputs_raw_materials_external_supplier_concentration",
    "logistics_freight_external_supplier_concentration",
)
"""Long-form snake_case axis keys — the wire format sent upstream."""

VALID_CANONICAL_KEYS: frozenset[str] = frozenset(CANONICAL_AXIS_KEYS)

SHORT_SLUG_TO_CANONICAL: dict[str, str] = {
    "financial": "financial_external_supplier_concentration",
    "energy": "energy_external_supplier_concentration",
    "technology": "technology_semiconductor_external_supplier_concentration",
    "defense": "defense_external_supplier_concentration",
    "critical_inputs": "critical_inputs_raw_materials_external_supplier_concentration",
    "logistics": "logistics_freight_external_supplier_concentration",
}
"""Short UI slugs accepted as aliases. Resolved before anything leaves the gateway."""

CANONICAL_TO_SHORT_SLUG: dict[str, str] = {v: k for k, v in SHORT_SLUG_TO_CANONICAL.items()}

# ---------------------------------------------------------------------------
# Classification: closed four-value band computed upstream
# ---------------------------------------------------------------------------

VALID_CLASSIFICATIONS: frozenset[str] = frozenset({
    "highly_concentrated",
    "moderately_concentrated",
    "mildly_concentrated",
    "unconcentrated",
})

# ---------------------------------------------------------------------------
# Wire limits
# ---------------------------------------------------------------------------

UPSTREAM_SCENARIO_PATH: str = "/scenario"
"""Path appended to the upstream base URL."""

LOG_TRUNCATE_CHARS: int = 500
"""Payloads and upstream bodies are truncated to this length in logs."""

MAX_SURFACED_MESSAGE_CHARS: int = 500
"""Upper bound on an upstream 400 message echoed to the client."""

DEFAULT_UPSTREAM_TIMEOUT_SECONDS: float = 10.0
