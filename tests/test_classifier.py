"""
tests/test_classifier.py — Upstream error classification.
"""

from __future__ import annotations

import json

import pytest

from gateway.classifier import classify, extract_message
from gateway.errors import ClientInputRejected, TargetNotFound, UpstreamFault


class TestStatusMapping:
    def test_400_is_client_input_rejected(self):
        outcome = classify(400, b'{"detail": "Country not in scope."}')
        assert isinstance(outcome, ClientInputRejected)
        assert outcome.status_code == 400

    def test_404_is_target_not_found(self):
        outcome = classify(404, b'{"detail": "secret internal path /srv/x"}')
        assert isinstance(outcome, TargetNotFound)
        assert outcome.status_code == 404
        assert "secret" not in json.dumps(outcome.to_envelope("rid"))

    @pytest.mark.parametrize("status", [401, 403, 405, 409, 422, 429, 500, 502, 503, 504])
    def test_other_errors_are_upstream_fault(self, status):
        outcome = classify(status, b"Traceback (most recent call last): ...")
        assert isinstance(outcome, UpstreamFault)
        assert outcome.status_code == 502
        assert outcome.upstream_status == status

    def test_fault_body_never_echoed(self):
        outcome = classify(500, b'{"detail": "KeyError: axis_1_financial at line 42"}')
        envelope = outcome.to_envelope("rid")
        assert "KeyError" not in json.dumps(envelope)
        assert envelope["upstream_status"] == 500

    @pytest.mark.parametrize("status", [200, 201, 204])
    def test_success_status_rejected(self, status):
        with pytest.raises(ValueError):
            classify(status, b"{}")

    def test_deeply_nested_400_body(self):
        outcome = classify(400, b"[" * 100_000)
        assert isinstance(outcome, ClientInputRejected)
        assert outcome.issues == ["[" * 500]

    def test_deterministic(self):
        assert type(classify(503, b"x")) is type(classify(503, b"y"))


class TestMessageExtraction:
    def test_detail_first(self):
        body = json.dumps({"message": "m", "error": "e", "detail": "d"}).encode()
        assert extract_message(body) == "d"

    def test_error_before_message(self):
        body = json.dumps({"message": "m", "error": "e"}).encode()
        assert extract_message(body) == "e"

    def test_message_last(self):
        assert extract_message(json.dumps({"message": "m"}).encode()) == "m"

    def test_non_string_detail_skipped(self):
        body = json.dumps({"detail": [{"loc": ["x"]}], "message": "readable"}).encode()
        assert extract_message(body) == "readable"

    def test_json_without_message_fields_returns_raw(self):
        body = b'{"code": 17}'
        assert extract_message(body) == '{"code": 17}'

    def test_non_json_returns_raw_text(self):
        assert extract_message(b"Bad Request: country") == "Bad Request: country"

    def test_invalid_utf8_degrades(self):
        assert "bad" in extract_message(b"bad \xff input")

    def test_empty_body(self):
        assert extract_message(b"") == ""

    def test_long_message_truncated(self):
        assert len(extract_message(b"x" * 5000)) == 500

    def test_deeply_nested_returns_raw_text(self):
        assert extract_message(b"[" * 100_000) == "[" * 500

    def test_surfaced_in_envelope(self):
        outcome = classify(400, b'{"error": "INVALID_SCENARIO_INPUT", "message": "m"}')
        envelope = outcome.to_envelope("rid")
        assert envelope["issues"] == ["INVALID_SCENARIO_INPUT"]
        assert envelope["kind"] == "ClientInputRejected"
