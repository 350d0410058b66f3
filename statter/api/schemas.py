"""Pydantic models for read API responses."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from statter.monitor.query import ServiceSummary
from statter.monitor.store import ResponseRecord


class ServiceOut(BaseModel):
    name: str
    label: str
    description: str
    statusCode: int | None
    totalRequests: int
    totalFailedRequests: int
    lastFailedRequestDate: datetime | None
    uptime: float | None

    @classmethod
    def from_summary(cls, s: ServiceSummary) -> "ServiceOut":
        return cls(
            name=s.name,
            label=s.label,
            description=s.description,
            statusCode=s.status_code,
            totalRequests=s.total,
            totalFailedRequests=s.total_failed,
            lastFailedRequestDate=s.last_failed_at,
            uptime=s.uptime,
        )


class ResponseOut(BaseModel):
    id: int
    name: str
    url: str
    statusCode: int
    error: str | None
    created: datetime

    @classmethod
    def from_record(cls, r: ResponseRecord) -> "ResponseOut":
        return cls(
            id=r.id,
            name=r.name,
            url=r.url,
            statusCode=r.status_code,
            error=r.error,
            created=r.created,
        )
