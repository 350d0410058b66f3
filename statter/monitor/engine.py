"""Probe engine: runs one HTTP probe for one service definition.

Every probe produces a ProbeOutcome. Transport problems (DNS, refused
connections, timeouts, bad URLs) are returned as a TransportFailure value,
never raised, so one broken service cannot disturb the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

import httpx

from statter.config import settings
from statter.services.registry import ServiceDefinition

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = settings.probe_timeout


# ── Models ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Success:
    """The service answered; any HTTP status counts as an answer."""

    status_code: int


@dataclass(frozen=True)
class TransportFailure:
    """The request never produced a status code."""

    message: str


Outcome = Success | TransportFailure


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of a single probe execution."""

    service: str
    url: str
    result: Outcome
    latency_ms: float = 0.0
    completed_at: datetime = field(default_factory=_utcnow)

    @property
    def status_code(self) -> int:
        """HTTP status, or 0 when the request never completed."""
        if isinstance(self.result, Success):
            return self.result.status_code
        return 0

    @property
    def error(self) -> str | None:
        if isinstance(self.result, TransportFailure):
            return self.result.message
        return None

    @property
    def failed(self) -> bool:
        return not is_success_status(self.status_code)


def is_success_status(status_code: int) -> bool:
    return 200 <= status_code < 300


# ── Executor ─────────────────────────────────────────────────────────────────


def build_headers(definition: ServiceDefinition) -> httpx.Headers:
    """Apply headers in declaration order; a repeated name keeps the last value."""
    headers = httpx.Headers()
    for h in definition.headers:
        headers[h.name] = h.value
    return headers


async def execute_probe(
    definition: ServiceDefinition,
    client: httpx.AsyncClient | None = None,
    timeout: float = PROBE_TIMEOUT,
) -> ProbeOutcome:
    """Probe a service once and return its outcome. Never raises."""
    t0 = time.perf_counter()

    def _done(result: Outcome) -> ProbeOutcome:
        latency = (time.perf_counter() - t0) * 1000
        return ProbeOutcome(
            service=definition.name, url=definition.url,
            result=result, latency_ms=round(latency, 1),
        )

    try:
        request = _send(definition, client, timeout)
        resp = await asyncio.wait_for(request, timeout=timeout)
        return _done(Success(resp.status_code))
    except (asyncio.TimeoutError, httpx.TimeoutException):
        return _done(TransportFailure(f"Request timed out after {timeout:g}s"))
    except httpx.ConnectError as e:
        return _done(TransportFailure(f"Connection error: {e}"))
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.debug("Unexpected error probing %s", definition.name, exc_info=True)
        return _done(TransportFailure(f"{type(e).__name__}: {e}"))


async def _send(
    definition: ServiceDefinition,
    client: httpx.AsyncClient | None,
    timeout: float,
) -> httpx.Response:
    kwargs = {
        "headers": build_headers(definition),
        "content": definition.body.encode() if definition.body else None,
    }
    if client is not None:
        return await client.request(
            definition.method, definition.url, timeout=timeout, follow_redirects=True, **kwargs,
        )

    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as own_client:
        return await own_client.request(definition.method, definition.url, **kwargs)
