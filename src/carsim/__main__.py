"""Command-line entry point: ``python -m carsim``."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any

from aiohttp import web

from carsim import __version__
from carsim.config import SimulatorConfig
from carsim.exceptions import CarSimConfigError, StateStoreUnavailableError
from carsim.server import create_app
from carsim.simulator import CarSimulator

_LOG = logging.getLogger("carsim")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="carsim",
        description="Run the car telemetry simulator and its websocket server.",
    )
    parser.add_argument("--host", help="Bind address (env CARSIM_HOST)")
    parser.add_argument("--port", type=int, help="Bind port (env PORT / CARSIM_PORT)")
    parser.add_argument("--tick-interval", type=float, help="Seconds between ticks (default 0.1)")
    parser.add_argument("--state-file", help="Persist the record to this JSON file instead of memory")
    parser.add_argument("--mqtt-host", help="Mirror the channel on this MQTT broker")
    parser.add_argument("--mqtt-port", type=int, help="MQTT broker port (default 1883)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for field_name in ("host", "port", "tick_interval", "state_file", "mqtt_host", "mqtt_port"):
        value = getattr(args, field_name)
        if value is not None:
            overrides[field_name] = value
    if args.mqtt_host:
        overrides["mqtt_enabled"] = True
    return overrides


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = SimulatorConfig.from_env(**_overrides(args))
    except CarSimConfigError as exc:
        _LOG.error("Invalid configuration: %s", exc)
        return 2

    app = create_app(CarSimulator(config))
    _LOG.info("Server running on %s:%s", config.host, config.port)
    try:
        web.run_app(app, host=config.host, port=config.port, print=None)
    except StateStoreUnavailableError as exc:
        _LOG.error("Unable to start server: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
