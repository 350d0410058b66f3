"""Monitoring subsystem: probe engine, SQLite storage, scheduler, queries."""

from .engine import ProbeOutcome, Success, TransportFailure, execute_probe
from .query import QueryService, ServiceSummary
from .scheduler import DispatchEvent, ProbeScheduler, ServiceState
from .store import PersistenceError, ResponseRecord, ResultStore, ServiceStats
