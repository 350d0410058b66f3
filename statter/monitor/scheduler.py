"""Probe scheduler: one independent timer per service.

Each timer fires at its own service's interval and hands the probe off to a
separate task, so a slow or failing service never delays another service's
ticks. Results are appended to the ResultStore from a worker thread.

Overlap: dispatch is fire-and-forget. If a probe is still in flight when
the next tick for the same service fires, both run concurrently.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import math
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from statter.config import settings
from statter.monitor.engine import PROBE_TIMEOUT, ProbeOutcome, execute_probe
from statter.monitor.store import ResponseRecord, ResultStore
from statter.services.registry import ServiceDefinition

logger = logging.getLogger(__name__)

Probe = Callable[[ServiceDefinition], Awaitable[ProbeOutcome]]


class ServiceState(str, Enum):
    IDLE = "idle"
    WAITING = "waiting"
    DISPATCHING = "dispatching"
    STOPPED = "stopped"


@dataclass(frozen=True)
class DispatchEvent:
    """What happened to one dispatched probe.

    ``stage`` names the step that failed (``"probe"`` or ``"store"``) and is
    ``None`` when the outcome was recorded.
    """

    service: str
    tick: int
    outcome: ProbeOutcome | None = None
    record_id: int | None = None
    error: str | None = None
    stage: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def recorded(self) -> bool:
        return self.record_id is not None


Sink = Callable[[DispatchEvent], Any]


def log_event(event: DispatchEvent) -> None:
    """Default sink, one log line per dispatch."""
    if event.stage is not None:
        logger.error("%s: %s failed: %s", event.service, event.stage, event.error)
        return
    outcome = event.outcome
    if outcome is None:
        return
    if outcome.error is not None:
        logger.warning("%s %s: %s", event.service, outcome.url, outcome.error)
    else:
        logger.info("%s %s: %s (%.0fms)", event.service, outcome.url, outcome.status_code, outcome.latency_ms)


class _ServiceSlot:
    """Per-service bookkeeping, touched only from the event loop."""

    def __init__(self, service: ServiceDefinition) -> None:
        self.service = service
        self.state = ServiceState.IDLE
        self.dispatched = 0
        self.completed = 0
        self.in_flight = 0
        self.last_event: DispatchEvent | None = None

    def to_dict(self) -> dict[str, Any]:
        last = self.last_event
        return {
            "name": self.service.name,
            "state": self.state.value,
            "interval": self.service.interval,
            "dispatched": self.dispatched,
            "completed": self.completed,
            "in_flight": self.in_flight,
            "last_dispatch_at": last.timestamp.isoformat() if last else None,
            "last_error": last.error if last else None,
        }


class ProbeScheduler:
    """Schedules and dispatches probes for all configured services."""

    def __init__(
        self,
        services: Sequence[ServiceDefinition],
        store: ResultStore,
        probe: Probe | None = None,
        sinks: Iterable[Sink] | None = None,
        drain_timeout: float | None = None,
    ) -> None:
        self.store = store
        self.probe: Probe = probe or functools.partial(execute_probe, timeout=PROBE_TIMEOUT)
        self.sinks: list[Sink] = list(sinks) if sinks is not None else [log_event]
        self.drain_timeout = settings.drain_timeout if drain_timeout is None else drain_timeout
        for s in services:
            if not (s.interval > 0 and math.isfinite(s.interval)):
                raise ValueError(f"Service '{s.name}' needs a positive finite interval, got {s.interval}")
        self._slots = {s.name: _ServiceSlot(s) for s in services}
        self._timers: list[asyncio.Task[None]] = []
        self._in_flight: set[asyncio.Task[None]] = set()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Arm one timer per service."""
        if self._running:
            return
        self._running = True

        if not self._slots:
            logger.info("No services configured, scheduler idle")
            return

        for slot in self._slots.values():
            slot.state = ServiceState.WAITING
            task = asyncio.create_task(
                self._tick_loop(slot),
                name=f"timer-{slot.service.name}",
            )
            self._timers.append(task)

        logger.info("Probe scheduler started: %d services", len(self._slots))

    async def stop(self) -> None:
        """Stop all timers, then let in-flight probes finish (up to drain_timeout)."""
        self._running = False
        for task in self._timers:
            task.cancel()
        if self._timers:
            await asyncio.gather(*self._timers, return_exceptions=True)
        self._timers.clear()

        pending = set(self._in_flight)
        if pending:
            logger.info("Waiting for %d in-flight probes", len(pending))
            _, pending = await asyncio.wait(pending, timeout=self.drain_timeout)
        if pending:
            logger.warning("Cancelling %d probes still running after %.1fs", len(pending), self.drain_timeout)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        for slot in self._slots.values():
            slot.state = ServiceState.STOPPED
        logger.info("Probe scheduler stopped")

    def state(self, name: str) -> ServiceState:
        return self._slots[name].state

    def dispatch_count(self, name: str) -> int:
        return self._slots[name].dispatched

    def in_flight(self, name: str | None = None) -> int:
        if name is None:
            return len(self._in_flight)
        return self._slots[name].in_flight

    def status(self) -> dict[str, Any]:
        """Diagnostics for every service, in configuration order."""
        return {
            "running": self._running,
            "in_flight": len(self._in_flight),
            "services": [slot.to_dict() for slot in self._slots.values()],
        }

    async def _tick_loop(self, slot: _ServiceSlot) -> None:
        """Fire ticks for one service against absolute deadlines."""
        loop = asyncio.get_running_loop()
        interval = slot.service.interval
        next_tick = loop.time() + interval

        while self._running:
            try:
                await asyncio.sleep(max(0.0, next_tick - loop.time()))
            except asyncio.CancelledError:
                break
            if not self._running:
                break

            self._dispatch(slot)

            next_tick += interval
            now = loop.time()
            if next_tick <= now:
                # Fell behind (overloaded loop): drop missed ticks, keep the phase.
                skipped = int((now - next_tick) // interval) + 1
                next_tick += skipped * interval
                logger.debug("%s: skipped %d ticks", slot.service.name, skipped)

    def _dispatch(self, slot: _ServiceSlot) -> None:
        slot.dispatched += 1
        slot.in_flight += 1
        slot.state = ServiceState.DISPATCHING
        task = asyncio.create_task(
            self._run_probe(slot, slot.dispatched),
            name=f"probe-{slot.service.name}-{slot.dispatched}",
        )
        self._in_flight.add(task)
        task.add_done_callback(functools.partial(self._finished, slot))

    def _finished(self, slot: _ServiceSlot, task: asyncio.Task[None]) -> None:
        self._in_flight.discard(task)
        slot.in_flight -= 1
        slot.completed += 1
        if slot.state is ServiceState.DISPATCHING and slot.in_flight == 0:
            slot.state = ServiceState.WAITING

    async def _run_probe(self, slot: _ServiceSlot, tick: int) -> None:
        service = slot.service
        try:
            outcome = await self.probe(service)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._emit(slot, DispatchEvent(
                service=service.name, tick=tick,
                error=f"{type(e).__name__}: {e}", stage="probe",
            ))
            return

        record = ResponseRecord.from_outcome(outcome)
        loop = asyncio.get_running_loop()
        try:
            record_id = await loop.run_in_executor(None, self.store.append, record)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._emit(slot, DispatchEvent(
                service=service.name, tick=tick, outcome=outcome,
                error=f"{type(e).__name__}: {e}", stage="store",
            ))
            return

        self._emit(slot, DispatchEvent(
            service=service.name, tick=tick, outcome=outcome, record_id=record_id,
        ))

    def _emit(self, slot: _ServiceSlot, event: DispatchEvent) -> None:
        slot.last_event = event
        for sink in self.sinks:
            try:
                sink(event)
            except Exception:
                logger.exception("Dispatch sink error")
