"""
gateway.config — Process-wide configuration, read once at startup.

Environment variables:
    UPSTREAM_URL                — upstream base URL (required; BACKEND_URL accepted)
    UPSTREAM_TIMEOUT_SECONDS    — hard timeout for the upstream call (default: 10)
    SCENARIO_CACHE_TTL_SECONDS  — response cache TTL, 0 disables (default: 0)
    SCENARIO_CACHE_MAX_ENTRIES  — response cache bound (default: 256)
    SCENARIO_RATE_LIMIT         — per-client limit on POST (default: "60/minute")
    ENV                         — "dev" or "prod" (default: "prod")

Missing or invalid values raise ConfigurationError from from_env(). The
app factory calls it before serving, so a bad deploy fails at startup
and never per request. GatewayConfig is frozen.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping
from urllib.parse import urlsplit

from gateway.constants import DEFAULT_UPSTREAM_TIMEOUT_SECONDS
from gateway.errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class GatewayConfig:
    upstream_url: str
    timeout_seconds: float = DEFAULT_UPSTREAM_TIMEOUT_SECONDS
    cache_ttl_seconds: float = 0.0
    cache_max_entries: int = 256
    rate_limit: str = "60/minute"
    env: str = "prod"

    def __post_init__(self) -> None:
        url = (self.upstream_url or "").strip().rstrip("/")
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ConfigurationError(
                f"UPSTREAM_URL must be an absolute http(s) URL, got {self.upstream_url!r}."
            )
        object.__setattr__(self, "upstream_url", url)

        if not self.timeout_seconds > 0:
            raise ConfigurationError(
                f"UPSTREAM_TIMEOUT_SECONDS must be positive, got {self.timeout_seconds!r}."
            )
        if self.cache_ttl_seconds < 0:
            raise ConfigurationError(
                f"SCENARIO_CACHE_TTL_SECONDS must be >= 0, got {self.cache_ttl_seconds!r}."
            )
        if self.cache_max_entries < 1:
            raise ConfigurationError(
                f"SCENARIO_CACHE_MAX_ENTRIES must be >= 1, got {self.cache_max_entries!r}."
            )
        if self.env not in ("dev", "prod"):
            raise ConfigurationError(f"ENV must be 'dev' or 'prod', got {self.env!r}.")

    @property
    def is_dev(self) -> bool:
        return self.env == "dev"

    @property
    def upstream_host(self) -> str:
        """Scheme and host only. Safe to report in diagnostics."""
        parts = urlsplit(self.upstream_url)
        return f"{parts.scheme}://{parts.hostname}" + (f":{parts.port}" if parts.port else "")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> GatewayConfig:
        env = os.environ if environ is None else environ

        upstream = (env.get("UPSTREAM_URL") or env.get("BACKEND_URL") or "").strip()
        if not upstream:
            raise ConfigurationError(
                "UPSTREAM_URL is not set. The gateway cannot start without an upstream."
            )

        return cls(
            upstream_url=upstream,
            timeout_seconds=_float(env, "UPSTREAM_TIMEOUT_SECONDS", DEFAULT_UPSTREAM_TIMEOUT_SECONDS),
            cache_ttl_seconds=_float(env, "SCENARIO_CACHE_TTL_SECONDS", 0.0),
            cache_max_entries=_int(env, "SCENARIO_CACHE_MAX_ENTRIES", 256),
            rate_limit=(env.get("SCENARIO_RATE_LIMIT") or "60/minute").strip(),
            env=(env.get("ENV") or "prod").strip().lower(),
        )


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}.") from None


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}.") from None
