"""Query service: read-only views over the result store."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from statter.monitor.store import DEFAULT_LIMIT, ResponseRecord, ResultStore
from statter.services.registry import ServiceDefinition


@dataclass(frozen=True)
class ServiceSummary:
    """A configured service joined with aggregates over its records."""

    name: str
    label: str
    description: str
    status_code: int | None
    total: int
    total_failed: int
    last_failed_at: datetime | None

    @property
    def uptime(self) -> float | None:
        """Percentage of successful probes, or None before the first probe."""
        if not self.total:
            return None
        return round((self.total - self.total_failed) / self.total * 100, 2)


class QueryService:
    """Answers service and response listings.

    Every call re-aggregates from the store; store errors propagate.
    """

    def __init__(self, services: Sequence[ServiceDefinition], store: ResultStore) -> None:
        self.services = services
        self.store = store

    def list_services(self, name: str | None = None) -> list[ServiceSummary]:
        summaries = []
        for service in self.services:
            if name and service.name != name:
                continue
            stats = self.store.summarize(service.name)
            summaries.append(ServiceSummary(
                name=service.name,
                label=service.label,
                description=service.description,
                status_code=stats.status_code,
                total=stats.total,
                total_failed=stats.total_failed,
                last_failed_at=stats.last_failed_at,
            ))
        return summaries

    def list_responses(
        self, name: str | None = None, limit: int = DEFAULT_LIMIT,
    ) -> list[ResponseRecord]:
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")
        return self.store.list_records(name or None, limit)
