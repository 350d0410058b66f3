"""Service registry: loads statter.yaml and provides typed service definitions.

Single source of truth for what gets monitored.
The scheduler, query service, and API all consume this.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from statter.config import settings

logger = logging.getLogger(__name__)

REGISTRY_PATH = Path(settings.config_file)


class ConfigurationError(Exception):
    """Raised when the services file is missing or invalid."""


# ── Data models ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Header:
    """A single request header. Order and duplicates are preserved."""

    name: str
    value: str


@dataclass(frozen=True)
class ServiceDefinition:
    """Definition of a single monitored service."""

    name: str
    url: str
    label: str = ""
    description: str = ""
    method: str = "GET"
    body: str = ""
    headers: tuple[Header, ...] = field(default_factory=tuple)
    interval: float = 0.0  # seconds; 0 = use the registry default


# ── Registry ─────────────────────────────────────────────────────────────────


class ServiceRegistry:
    """Loads and caches service definitions from statter.yaml."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or REGISTRY_PATH
        self._services: list[ServiceDefinition] = []
        self._loaded = False
        self.default_interval: float = settings.default_interval
        self.database_file: str = settings.database_file
        self.port: int = settings.api_port

    def load(self, force: bool = False) -> list[ServiceDefinition]:
        """Parse the services file and return the definitions in file order.

        Raises ``ConfigurationError`` on any problem; monitoring never starts
        from a partially valid file.
        """
        if self._loaded and not force:
            return self._services

        if not self._path.exists():
            raise ConfigurationError(f"Config file not found: {self._path}")

        try:
            raw = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse {self._path}: {e}") from e

        if not isinstance(raw, dict):
            raise ConfigurationError(f"Expected a mapping at the top of {self._path}")

        default_interval = _parse_interval(raw.get("interval"), settings.default_interval, "interval")
        if default_interval == 0:
            default_interval = settings.default_interval

        services: list[ServiceDefinition] = []
        seen: set[str] = set()
        for entry in raw.get("services") or []:
            service = _parse_service(entry, default_interval)
            if service.name in seen:
                raise ConfigurationError(f"Duplicate service name: {service.name}")
            seen.add(service.name)
            services.append(service)

        if not services:
            raise ConfigurationError("No services to monitor.")

        self.default_interval = default_interval
        self.database_file = str(raw.get("database_file") or settings.database_file)
        self.port = _parse_port(raw.get("port"))
        self._services = services
        self._loaded = True
        logger.info("Loaded %d services from %s", len(services), self._path)
        return self._services

    @property
    def services(self) -> list[ServiceDefinition]:
        return self.load()


# ── Parsers ──────────────────────────────────────────────────────────────────


def _parse_interval(value: Any, default: float, where: str) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid {where}: {value!r}")
    try:
        interval = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid {where}: {value!r}") from e
    if not math.isfinite(interval):
        raise ConfigurationError(f"Invalid {where}: must be a finite number ({value!r})")
    if interval < 0:
        raise ConfigurationError(f"Invalid {where}: must not be negative ({value!r})")
    return interval


def _parse_port(value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid port: {value!r}")
    if not value:
        return settings.api_port
    try:
        port = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid port: {value!r}") from e
    if not 0 < port < 65536:
        raise ConfigurationError(f"Invalid port: {value!r}")
    return port


def _parse_service(raw: Any, default_interval: float) -> ServiceDefinition:
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Malformed service entry: {raw!r}")

    name = str(raw.get("name") or "").strip()
    if not name:
        raise ConfigurationError(f"Service entry without a name: {raw!r}")
    url = str(raw.get("url") or "").strip()
    if not url:
        raise ConfigurationError(f"Service '{name}' has no url")

    headers = []
    for h in raw.get("headers") or []:
        if not isinstance(h, dict) or not h.get("name"):
            raise ConfigurationError(f"Service '{name}' has a malformed header: {h!r}")
        headers.append(Header(name=str(h["name"]), value=str(h.get("value", ""))))

    interval = _parse_interval(raw.get("interval"), default_interval, f"interval for '{name}'")

    return ServiceDefinition(
        name=name,
        url=url,
        label=str(raw.get("label") or name),
        description=str(raw.get("description") or ""),
        method=str(raw.get("method") or "GET").upper(),
        body=str(raw.get("body") or ""),
        headers=tuple(headers),
        interval=interval or default_interval,
    )

