"""Read-only API routes over the monitoring history.

Endpoints:
  GET /api/services  configured services with summary (?name=)
  GET /api/responses  recent responses, newest first (?name=&limit=)
  GET /api/monitor/status  scheduler diagnostics
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request

from statter.api.schemas import ResponseOut, ServiceOut
from statter.monitor.store import DEFAULT_LIMIT, PersistenceError

logger = logging.getLogger(__name__)

monitor_router = APIRouter()

MAX_LIMIT = 1000


@monitor_router.get("/services", response_model=list[ServiceOut])
def list_services(request: Request, name: str | None = None) -> list[ServiceOut]:
    """List configured services with their latest status and failure counts."""
    query = request.app.state.query
    try:
        summaries = query.list_services(name)
    except PersistenceError as e:
        logger.error("Service listing failed: %s", e)
        raise HTTPException(status_code=503, detail=str(e))
    return [ServiceOut.from_summary(s) for s in summaries]


@monitor_router.get("/responses", response_model=list[ResponseOut])
def list_responses(
    request: Request,
    name: str | None = None,
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
) -> list[ResponseOut]:
    """List recorded responses, most recent first."""
    query = request.app.state.query
    try:
        records = query.list_responses(name, limit)
    except PersistenceError as e:
        logger.error("Response listing failed: %s", e)
        raise HTTPException(status_code=503, detail=str(e))
    return [ResponseOut.from_record(r) for r in records]


@monitor_router.get("/monitor/status")
def monitor_status(request: Request) -> dict[str, Any]:
    """Per-service scheduler state, dispatch and in-flight counts."""
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        return {"running": False, "in_flight": 0, "services": []}
    return scheduler.status()
