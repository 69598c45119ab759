"""
tests/test_gateway_api.py — End-to-end tests for POST /api/scenario.

The upstream is an httpx.MockTransport injected into the dispatcher.

Covers:
    - reference scenario (SE, energy +0.05)
    - status mapping determinism (400 / 404 / other → 502 / transport → 502 / bad 200 → 502)
    - timeout scenario (1 ms against a slow upstream)
    - exact upstream payload, at most one upstream call per request
    - error envelope shape, no leakage of upstream internals
    - 405 for non-POST, 413, 429, probes, security headers, explicit cache
"""

from __future__ import annotations

import asyncio
import json
import time

import httpx
import pytest

from conftest import K_DEF, K_ENE, UPSTREAM_URL, RecordingUpstream, upstream_body
from gateway.config import GatewayConfig

SCENARIO = "/api/scenario"

REFERENCE_REQUEST = {"country_code": "SE", "adjustments": {"energy": 0.05}}

HUGE_INT = b"1" + b"0" * 400


# ---------------------------------------------------------------------------
# Success path
# ---------------------------------------------------------------------------

class TestReferenceScenario:
    def test_end_to_end(self, make_client):
        upstream = RecordingUpstream()
        client = make_client(upstream)
        r = client.post(SCENARIO, json=REFERENCE_REQUEST)
        assert r.status_code == 200
        body = r.json()
        assert body["country"] == "SE"
        assert len(body["simulated_axes"]) == 1
        axis = body["simulated_axes"][0]
        assert axis["axis_slug"] == "energy"
        assert axis["baseline"] == pytest.approx(0.25)
        assert axis["simulated"] == pytest.approx(0.30)
        assert axis["delta"] == pytest.approx(0.05)
        assert body["simulated_composite"] == 0.42
        assert body["simulated_rank"] == 3
        assert body["simulated_classification"] == "moderately_concentrated"
        assert body["baseline_composite"] == pytest.approx(0.25)
        assert body["baseline_rank"] is None
        assert body["baseline_classification"] is None
        assert body["delta_from_baseline"] == pytest.approx(0.17)

    def test_upstream_payload_is_exact_projection(self, make_client):
        upstream = RecordingUpstream()
        client = make_client(upstream)
        client.post(SCENARIO, json={
            "country_code": "se",
            "adjustments": {"energy": 0.05},
            "meta": {"preset": "energy_shock"},
            "debug": "not forwarded",
        })
        assert upstream.last_payload() == {
            "country_code": "SE",
            "adjustments": {K_ENE: 0.05},
            "meta": {"preset": "energy_shock"},
        }

    def test_legacy_contract_forwarded_in_current_shape(self, make_client):
        upstream = RecordingUpstream(body=upstream_body(
            axes=[{"slug": "defense", "value": 0.4, "delta": 0.1}],
        ))
        client = make_client(upstream)
        r = client.post(SCENARIO, json={
            "country": "SE",
            "axis_shifts": {"defense": 0.1},
            "meta": {"contract_version": "scenario-v0"},
        })
        assert r.status_code == 200
        payload = upstream.last_payload()
        assert set(payload) == {"country_code", "adjustments", "meta"}
        assert payload["adjustments"] == {K_DEF: 0.1}

    def test_exactly_one_upstream_call(self, make_client):
        upstream = RecordingUpstream()
        client = make_client(upstream)
        client.post(SCENARIO, json=REFERENCE_REQUEST)
        assert upstream.calls == 1

    def test_request_id_echoed_and_forwarded(self, make_client):
        upstream = RecordingUpstream()
        client = make_client(upstream)
        r = client.post(SCENARIO, json=REFERENCE_REQUEST, headers={"X-Request-ID": "trace-1"})
        assert r.headers["x-request-id"] == "trace-1"
        assert upstream.requests[0].headers["x-request-id"] == "trace-1"


# ---------------------------------------------------------------------------
# Request validation → 400, upstream never called
# ---------------------------------------------------------------------------

class TestValidationErrors:
    @pytest.mark.parametrize("content,kind", [
        (b"not json at all", "MalformedBody"),
        (b"[1, 2, 3]", "MalformedBody"),
        (b'{"adjustments": {}}', "MissingField"),
        (b'{"country_code": "SE"}', "MissingField"),
        (b'{"country_code": "SE", "adjustments": {"bogus": 0.1}}', "UnknownAxis"),
        (b'{"country_code": "SE", "adjustments": {"energy": 0.21}}', "OutOfRange"),
        (b'{"country_code": "SWE", "adjustments": {}}', "InvalidCountryCode"),
        (b"[" * 3000, "MalformedBody"),
        (b'{"country_code": "SE", "adjustments": {"energy": ' + HUGE_INT + b"}}", "OutOfRange"),
    ])
    def test_rejected_before_dispatch(self, make_client, content, kind):
        upstream = RecordingUpstream()
        client = make_client(upstream)
        r = client.post(SCENARIO, content=content, headers={"Content-Type": "application/json"})
        assert r.status_code == 400
        body = r.json()
        assert body["kind"] == kind
        assert isinstance(body["error"], str)
        assert upstream.calls == 0

    def test_issues_listed(self, make_client):
        client = make_client(RecordingUpstream())
        r = client.post(SCENARIO, json={"adjustments": {"bogus": 0.1, "energy": 0.5}})
        body = r.json()
        assert r.status_code == 400
        assert len(body["issues"]) == 3
        assert all(isinstance(i, str) for i in body["issues"])

    def test_boundary_value_forwarded(self, make_client):
        upstream = RecordingUpstream()
        client = make_client(upstream)
        r = client.post(SCENARIO, json={"country_code": "SE", "adjustments": {"energy": 0.20}})
        assert r.status_code == 200
        assert upstream.last_payload()["adjustments"] == {K_ENE: 0.20}


# ---------------------------------------------------------------------------
# Upstream status mapping
# ---------------------------------------------------------------------------

class TestUpstreamStatusMapping:
    def test_400_passed_through_with_message(self, make_client):
        upstream = RecordingUpstream(status_code=400, body={
            "error": "INVALID_SCENARIO_INPUT",
            "message": "Country 'US' is not in EU-27 scope.",
        })
        r = make_client(upstream).post(SCENARIO, json={"country_code": "US", "adjustments": {}})
        assert r.status_code == 400
        body = r.json()
        assert body["kind"] == "ClientInputRejected"
        assert body["issues"] == ["INVALID_SCENARIO_INPUT"]

    def test_400_plain_text_body(self, make_client):
        upstream = RecordingUpstream(status_code=400, content=b"bad country")
        r = make_client(upstream).post(SCENARIO, json=REFERENCE_REQUEST)
        assert r.status_code == 400
        assert r.json()["issues"] == ["bad country"]

    def test_404(self, make_client):
        upstream = RecordingUpstream(status_code=404, body={"detail": "Not Found /srv/isi"})
        r = make_client(upstream).post(SCENARIO, json=REFERENCE_REQUEST)
        assert r.status_code == 404
        assert r.json()["kind"] == "TargetNotFound"
        assert "/srv/isi" not in r.text

    @pytest.mark.parametrize("status", [401, 403, 409, 422, 429, 500, 502, 503])
    def test_other_statuses_are_502(self, make_client, status):
        upstream = RecordingUpstream(status_code=status, content=b"Traceback: secret detail")
        r = make_client(upstream).post(SCENARIO, json=REFERENCE_REQUEST)
        assert r.status_code == 502
        body = r.json()
        assert body["kind"] == "UpstreamFault"
        assert body["upstream_status"] == status
        assert "secret" not in r.text
        assert upstream.calls == 1

    def test_unreachable_is_502(self, make_client):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        r = make_client(handler).post(SCENARIO, json=REFERENCE_REQUEST)
        assert r.status_code == 502
        assert r.json()["kind"] == "Unreachable"
        assert "refused" not in r.text

    @pytest.mark.parametrize("content", [
        b"<html>oops</html>",
        json.dumps({"composite": 0.4, "rank": 3, "classification": "moderately_concentrated"}).encode(),
        json.dumps(upstream_body(axes=[{"slug": "energy", "value": 0.3}])).encode(),
        json.dumps(upstream_body(classification="catastrophic")).encode(),
    ])
    def test_malformed_200_is_502(self, make_client, content):
        upstream = RecordingUpstream(status_code=200, content=content)
        r = make_client(upstream).post(SCENARIO, json=REFERENCE_REQUEST)
        assert r.status_code == 502
        assert r.json()["error"] == "Upstream response invalid."

    @pytest.mark.parametrize("content,kind", [
        (b"[" * 3000, "NonJSON"),
        (
            b'{"composite": ' + HUGE_INT
            + b', "rank": 3, "classification": "moderately_concentrated", "axes": []}',
            "MissingRequiredField",
        ),
        (
            json.dumps(upstream_body(axes=[
                {"slug": "energy", "value": 0.3, "delta": -1.7e308},
                {"slug": "defense", "value": 0.3, "delta": -1.7e308},
            ])).encode(),
            "InvalidAxisEntry",
        ),
    ])
    def test_unrepresentable_200_is_502_with_kind(self, make_client, content, kind):
        upstream = RecordingUpstream(status_code=200, content=content)
        r = make_client(upstream).post(SCENARIO, json=REFERENCE_REQUEST)
        assert r.status_code == 502
        assert r.json()["kind"] == kind

    def test_deeply_nested_400_body_passed_through_as_text(self, make_client):
        upstream = RecordingUpstream(status_code=400, content=b"[" * 3000)
        r = make_client(upstream).post(SCENARIO, json=REFERENCE_REQUEST)
        assert r.status_code == 400
        body = r.json()
        assert body["kind"] == "ClientInputRejected"
        assert body["issues"] == ["[" * 500]

    def test_adjusted_axis_missing_from_200_is_502(self, make_client):
        upstream = RecordingUpstream()
        r = make_client(upstream).post(SCENARIO, json={
            "country_code": "SE",
            "adjustments": {"energy": 0.05, "defense": 0.1},
        })
        assert r.status_code == 502
        assert r.json()["kind"] == "InvalidAxisEntry"


# ---------------------------------------------------------------------------
# Timeout
# ---------------------------------------------------------------------------

class TestTimeout:
    def test_slow_upstream_returns_502_timeout(self, make_client):
        async def slow(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(2)
            return httpx.Response(200, json=upstream_body())

        cfg = GatewayConfig(upstream_url=UPSTREAM_URL, timeout_seconds=0.001)
        client = make_client(slow, cfg)
        t0 = time.monotonic()
        r = client.post(SCENARIO, json=REFERENCE_REQUEST)
        elapsed = time.monotonic() - t0
        assert r.status_code == 502
        assert r.json()["kind"] == "Timeout"
        assert "timed out" in r.json()["error"]
        assert elapsed < 1.0


# ---------------------------------------------------------------------------
# HTTP surface
# ---------------------------------------------------------------------------

class TestHttpSurface:
    @pytest.mark.parametrize("method", ["GET", "PUT", "PATCH", "DELETE"])
    def test_method_not_allowed(self, make_client, method):
        upstream = RecordingUpstream()
        r = make_client(upstream).request(method, SCENARIO)
        assert r.status_code == 405
        assert r.json() == {"error": "Method not allowed. Use POST."}
        assert r.headers["allow"] == "POST"
        assert upstream.calls == 0

    def test_body_too_large(self, make_client):
        upstream = RecordingUpstream()
        big = {"country_code": "SE", "adjustments": {}, "meta": {"pad": "x" * 5000}}
        r = make_client(upstream).post(SCENARIO, json=big)
        assert r.status_code == 413
        assert upstream.calls == 0

    def test_security_headers(self, make_client):
        r = make_client(RecordingUpstream()).post(SCENARIO, json=REFERENCE_REQUEST)
        assert r.headers["cache-control"] == "no-store"
        assert r.headers["x-content-type-options"] == "nosniff"
        assert r.headers["x-frame-options"] == "DENY"

    def test_health(self, make_client):
        upstream = RecordingUpstream()
        r = make_client(upstream).get("/health")
        assert r.status_code == 200
        assert r.json() == {"status": "ok"}
        assert upstream.calls == 0

    def test_ready_reports_host_only(self, make_client):
        cfg = GatewayConfig(upstream_url="https://user:pw@up.example.org/private/path")
        r = make_client(RecordingUpstream(), cfg).get("/ready")
        assert r.status_code == 200
        body = r.json()
        assert body["upstream"] == "https://up.example.org"
        assert "pw" not in r.text
        assert body["cache"]["enabled"] is False

    def test_rate_limit(self, make_client):
        cfg = GatewayConfig(upstream_url=UPSTREAM_URL, rate_limit="2/minute")
        upstream = RecordingUpstream()
        client = make_client(upstream, cfg)
        assert client.post(SCENARIO, json=REFERENCE_REQUEST).status_code == 200
        assert client.post(SCENARIO, json=REFERENCE_REQUEST).status_code == 200
        r = client.post(SCENARIO, json=REFERENCE_REQUEST)
        assert r.status_code == 429
        assert upstream.calls == 2


# ---------------------------------------------------------------------------
# Explicit cache
# ---------------------------------------------------------------------------

class TestCache:
    def test_disabled_by_default(self, make_client):
        upstream = RecordingUpstream()
        client = make_client(upstream)
        client.post(SCENARIO, json=REFERENCE_REQUEST)
        client.post(SCENARIO, json=REFERENCE_REQUEST)
        assert upstream.calls == 2

    def test_identical_request_served_from_cache(self, make_client):
        cfg = GatewayConfig(upstream_url=UPSTREAM_URL, cache_ttl_seconds=60)
        upstream = RecordingUpstream()
        client = make_client(upstream, cfg)
        first = client.post(SCENARIO, json=REFERENCE_REQUEST)
        second = client.post(SCENARIO, json={"country_code": "se", "adjustments": {K_ENE: 0.05}})
        assert upstream.calls == 1
        assert second.json() == first.json()
        assert second.headers["x-scenario-cache"] == "hit"

    def test_different_requests_not_shared(self, make_client):
        cfg = GatewayConfig(upstream_url=UPSTREAM_URL, cache_ttl_seconds=60)
        upstream = RecordingUpstream()
        client = make_client(upstream, cfg)
        client.post(SCENARIO, json=REFERENCE_REQUEST)
        client.post(SCENARIO, json={"country_code": "SE", "adjustments": {"energy": 0.06}})
        assert upstream.calls == 2

    def test_errors_never_cached(self, make_client):
        cfg = GatewayConfig(upstream_url=UPSTREAM_URL, cache_ttl_seconds=60)
        upstream = RecordingUpstream(status_code=503, content=b"down")
        client = make_client(upstream, cfg)
        client.post(SCENARIO, json=REFERENCE_REQUEST)
        client.post(SCENARIO, json=REFERENCE_REQUEST)
        assert upstream.calls == 2
