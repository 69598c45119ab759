"""
gateway.dispatcher — Upstream dispatcher.

Owns the single outbound call per client request:

    dispatch(payload, timeout) -> RawUpstreamResponse
        raises UpstreamTimeout      on expiry of the hard timeout
        raises UpstreamUnreachable  on DNS / connect / protocol failure

Non-2xx responses are returned, not raised; they are valid responses for
the error classifier. There are no retries and no backoff: the upstream
is treated as non-idempotent, so at most one upstream side effect may
result from one client request.

The httpx client is created per call and closed on exit, including on
cancellation, so no connection outlives its request.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from gateway.constants import LOG_TRUNCATE_CHARS, UPSTREAM_SCENARIO_PATH
from gateway.errors import UpstreamTimeout, UpstreamUnreachable

logger = logging.getLogger("isi.gateway.dispatcher")


@dataclass(frozen=True, slots=True)
class RawUpstreamResponse:
    """Status and undecoded body of one upstream answer."""

    status_code: int
    body: bytes
    content_type: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class UpstreamDispatcher:
    """Sends scenario payloads to the upstream simulation service.

    Usage::

        dispatcher = UpstreamDispatcher("https://isi-backend.example.org")
        raw = await dispatcher.dispatch(payload, timeout=10.0)

    ``transport`` is an optional httpx transport (``httpx.MockTransport``
    in tests). It is shared across calls and must be stateless.
    """

    def __init__(
        self,
        base_url: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.target_url = f"{self.base_url}{UPSTREAM_SCENARIO_PATH}"
        self._transport = transport

    async def dispatch(
        self,
        payload: dict[str, Any],
        timeout: float,
        *,
        request_id: str | None = None,
    ) -> RawUpstreamResponse:
        """Issue exactly one POST to the upstream and return its raw answer."""
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout!r}")

        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if request_id:
            headers["X-Request-ID"] = request_id

        content = json.dumps(payload, separators=(",", ":"), allow_nan=False)

        logger.info(json.dumps({
            "event": "scenario_forward",
            "request_id": request_id,
            "target": self.target_url,
            "payload": content[:LOG_TRUNCATE_CHARS],
        }))

        try:
            # httpx enforces per-phase timeouts; wait_for bounds the whole call
            # and cancels it, which unwinds the client context and closes it.
            return await asyncio.wait_for(
                self._post(content, headers, timeout),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise UpstreamTimeout(
                f"Upstream did not answer within {timeout}s ({type(exc).__name__}).",
                timeout=timeout,
            ) from exc
        except httpx.RequestError as exc:
            raise UpstreamUnreachable(
                f"{type(exc).__name__}: {exc}",
            ) from exc

    async def _post(
        self,
        content: str,
        headers: dict[str, str],
        timeout: float,
    ) -> RawUpstreamResponse:
        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=httpx.Timeout(timeout),
            follow_redirects=False,
        ) as client:
            response = await client.post(self.target_url, content=content, headers=headers)
            return RawUpstreamResponse(
                status_code=response.status_code,
                body=response.content,
                content_type=response.headers.get("content-type", ""),
            )
