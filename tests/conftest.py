"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable, Generator
from pathlib import Path

import httpx
import pytest

from statter.monitor.engine import ProbeOutcome, execute_probe
from statter.monitor.store import ResultStore
from statter.services.registry import ServiceDefinition


@pytest.fixture
def store(tmp_path: Path) -> Generator[ResultStore, None, None]:
    """ResultStore backed by a temp SQLite file."""
    s = ResultStore(db_path=tmp_path / "test_statter.db")
    yield s
    s.close()


@pytest.fixture
def service() -> Callable[..., ServiceDefinition]:
    """Factory for service definitions with a short interval."""

    def _make(name: str = "ping", interval: float = 0.5, **kw) -> ServiceDefinition:
        kw.setdefault("url", f"http://{name}.test/health")
        return ServiceDefinition(name=name, interval=interval, **kw)

    return _make


@pytest.fixture
def mock_probe() -> Callable:
    """Build a probe that runs the real executor against an in-process transport."""

    def _build(handler: Callable[[httpx.Request], httpx.Response]):
        async def _probe(definition: ServiceDefinition) -> ProbeOutcome:
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                return await execute_probe(definition, client=client, timeout=2.0)

        return _probe

    return _build
