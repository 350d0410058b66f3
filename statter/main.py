"""Entry point for statter: `statter` console script."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

import uvicorn
from rich.console import Console
from rich.panel import Panel

from statter.api.server import create_app
from statter.config import settings
from statter.monitor.scheduler import ProbeScheduler
from statter.monitor.store import PersistenceError, ResultStore
from statter.services.registry import ConfigurationError, ServiceRegistry

console = Console()


def _load_registry(config: str) -> ServiceRegistry:
    registry = ServiceRegistry(path=Path(config))
    try:
        registry.load()
    except ConfigurationError as e:
        console.print(f"[bold red]Unable to load configuration:[/bold red] {e}")
        sys.exit(1)
    return registry


def _banner(registry: ServiceRegistry, mode: str) -> None:
    lines = [f"  {s.name:<20} every {s.interval:g}s  {s.method} {s.url}" for s in registry.services]
    console.print(
        Panel.fit(
            f"[bold]Statter[/bold]: {mode}\n"
            f"Database: {registry.database_file}\n"
            f"Services:\n" + "\n".join(lines),
            title="statter",
            border_style="green",
        )
    )


async def _monitor(registry: ServiceRegistry) -> None:
    """Probe until SIGINT / SIGTERM, then drain in-flight probes."""
    store = ResultStore(registry.database_file)
    scheduler = ProbeScheduler(registry.services, store)
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass  # Windows: Ctrl+C still raises KeyboardInterrupt

    await scheduler.start()
    try:
        await stop.wait()
    finally:
        await scheduler.stop()
        store.close()


def run_monitor(config: str) -> None:
    """Run the monitoring engine without the API."""
    registry = _load_registry(config)
    _banner(registry, "monitoring mode")
    try:
        asyncio.run(_monitor(registry))
    except PersistenceError as e:
        console.print(f"[bold red]Unable to open database:[/bold red] {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        pass


def run_server(config: str, host: str, port: int | None) -> None:
    """Run the monitoring engine and serve the read API."""
    registry = _load_registry(config)
    port = port or registry.port
    _banner(registry, f"serving on {host}:{port}")
    uvicorn.run(
        create_app(Path(config)),
        host=host,
        port=port,
        log_level=settings.log_level.lower(),
    )


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    parser = argparse.ArgumentParser(description="Statter HTTP service monitor")
    sub = parser.add_subparsers(dest="command")

    monitor_parser = sub.add_parser("monitor", help="Probe services without serving the API")
    monitor_parser.add_argument("--config", default=settings.config_file, help="Services YAML file")

    serve_parser = sub.add_parser("serve", help="Probe services and serve the API")
    serve_parser.add_argument("--config", default=settings.config_file, help="Services YAML file")
    serve_parser.add_argument("--host", default=settings.api_host)
    serve_parser.add_argument("--port", type=int, default=None, help="Overrides the file's port")

    args = parser.parse_args()

    if args.command == "monitor":
        run_monitor(args.config)
    elif args.command == "serve":
        run_server(args.config, args.host, args.port)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
