"""
tests/conftest.py — Shared fixtures for gateway tests.

The upstream simulation service is simulated with httpx.MockTransport;
nothing here opens a socket.
"""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from gateway.api import create_app
from gateway.config import GatewayConfig
from gateway.dispatcher import UpstreamDispatcher

UPSTREAM_URL = "http://upstream.test"

K_FIN = "financial_external_supplier_concentration"
K_ENE = "energy_external_supplier_concentration"
K_TEC = "technology_semiconductor_external_supplier_concentration"
K_DEF = "defense_external_supplier_concentration"
K_CRI = "critical_inputs_raw_materials_external_supplier_concentration"
K_LOG = "logistics_freight_external_supplier_concentration"


def upstream_body(**overrides: Any) -> dict[str, Any]:
    """A well-formed upstream 200 body for SE with one adjusted axis."""
    body: dict[str, Any] = {
        "composite": 0.42,
        "rank": 3,
        "classification": "moderately_concentrated",
        "axes": [{"slug": "energy", "value": 0.30, "delta": 0.05}],
        "request_id": "up-123",
    }
    body.update(overrides)
    return body


class RecordingUpstream:
    """MockTransport handler that records requests and replays a fixed answer."""

    def __init__(
        self,
        status_code: int = 200,
        body: Any = None,
        *,
        content: bytes | None = None,
    ) -> None:
        self.status_code = status_code
        self.body = upstream_body() if body is None and content is None else body
        self.content = content
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.content is not None:
            return httpx.Response(self.status_code, content=self.content)
        return httpx.Response(self.status_code, json=self.body)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def last_payload(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)


@pytest.fixture()
def config() -> GatewayConfig:
    return GatewayConfig(upstream_url=UPSTREAM_URL, timeout_seconds=2.0, env="dev")


@pytest.fixture()
def make_client(config: GatewayConfig) -> Callable[..., TestClient]:
    """Build a TestClient whose gateway talks to the given handler."""

    def _make(handler: Callable[..., Any], cfg: GatewayConfig | None = None) -> TestClient:
        cfg = cfg or config
        dispatcher = UpstreamDispatcher(cfg.upstream_url, transport=httpx.MockTransport(handler))
        return TestClient(create_app(cfg, dispatcher=dispatcher))

    return _make
