"""
Edge daemon and command line entrypoint for the CT meter poller.

Subcommands:

- ``run``: load :class:`~ctmeter.src.config.MeterSettings` from the
  environment, start a :class:`~ctmeter.src.device.MeterDevice` and poll
  until SIGTERM/SIGINT.  Telemetry goes to the host platform over HTTP when
  ``TELEMETRY_URL`` is set, otherwise it is only logged.  A
  :class:`~ctmeter.src.health.HealthWriter` tracks availability.
- ``discover HOST``: probe a meter for a working identity combination and
  print the result as JSON.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-17: Add discover subcommand (STORY-014)
- 2026-10-16: Initial creation, adapted from the Modbus edge daemon (STORY-012)

TODO:
- None
"""

from __future__ import annotations

import argparse
import asyncio
import hashlib
import json
import logging
import signal
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from ctmeter.src.device import MeterDevice
from ctmeter.src.discovery import discover
from ctmeter.src.errors import DiscoveryError
from ctmeter.src.health import HealthWriter
from ctmeter.src.sinks import HttpTelemetrySink, LoggingTelemetrySink

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ctmeter.src.config import MeterSettings
    from ctmeter.src.sinks import TelemetrySink

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structured JSON logging for the daemon.

    Sets up the root logger with a JSON-formatted handler writing to stderr.
    """

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def _masked_token(value: str | None) -> str:
    """Return a short non-reversible token fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


# ---------------------------------------------------------------------------
# Startup config logging
# ---------------------------------------------------------------------------


def log_config_summary(settings: MeterSettings) -> None:
    """Log a config summary at startup, excluding secrets.

    Logs connection, identity and cadence settings but only a fingerprint
    of telemetry_token.

    Args:
        settings: A MeterSettings instance.
    """
    logger.info(
        "Meter daemon starting with config: "
        "meter_host=%s, meter_port=%s, device_type=%s, ct_type=%s, "
        "battery_mac=%s, ct_mac=%s, poll_interval_s=%s, timeout_ms=%s, "
        "retries=%s, debug=%s, device_id=%s, telemetry_url=%s, "
        "health_path=%s, telemetry_token_masked=%s",
        settings.meter_host,
        settings.meter_port,
        settings.device_type,
        settings.ct_type,
        settings.battery_mac,
        settings.ct_mac,
        settings.poll_interval_s,
        settings.timeout_ms,
        settings.retries,
        settings.debug,
        settings.device_id,
        settings.telemetry_url,
        settings.health_path,
        _masked_token(settings.telemetry_token),
    )


def build_telemetry_sink(settings: MeterSettings) -> TelemetrySink:
    """Pick the telemetry sink for the configured host platform."""
    if settings.telemetry_url:
        return HttpTelemetrySink(
            settings.telemetry_url,
            settings.device_id,
            token=settings.telemetry_token,
        )
    return LoggingTelemetrySink(settings.device_id)


# ---------------------------------------------------------------------------
# Daemon
# ---------------------------------------------------------------------------


async def run_device(
    *,
    device: MeterDevice,
    shutdown_event: asyncio.Event,
) -> None:
    """Poll with *device* until *shutdown_event* is set, then stop it.

    Args:
        device: The polling engine to run.
        shutdown_event: Event to signal graceful shutdown.
    """
    await device.start()
    logger.info("Polling started (interval=%ss)", device.settings.poll_interval_seconds)
    try:
        await shutdown_event.wait()
    finally:
        await device.stop()
        logger.info("Shutdown complete")


async def async_main() -> None:
    """Async entrypoint: load config, build components, poll until signalled.

    Sets up SIGTERM/SIGINT handlers to trigger graceful shutdown.
    """
    from ctmeter.src.config import MeterSettings

    settings = MeterSettings()
    configure_logging(logging.DEBUG if settings.debug else logging.INFO)
    log_config_summary(settings)

    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: _handle_signal(shutdown_event),
        )

    health = HealthWriter(settings.health_path)
    device = MeterDevice(
        settings.to_device_settings(),
        telemetry_sink=build_telemetry_sink(settings),
        availability_sink=health,
        health=health,
    )

    await run_device(device=device, shutdown_event=shutdown_event)


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event.

    Args:
        shutdown_event: The event to set for graceful shutdown.
    """
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


async def run_discover(host: str, port: int) -> int:
    """Run discovery against *host* and print the result as JSON.

    Returns:
        Process exit status: 0 on success, 1 if no combination answered.
    """
    try:
        result = await discover(host, port=port)
    except DiscoveryError as exc:
        print(json.dumps({"error": str(exc)}))
        return 1

    print(
        json.dumps(
            {
                "name": result.name,
                "host": result.host,
                "device_type": result.device_type,
                "ct_type": result.ct_type,
                "record": result.record.model_dump(),
            },
            indent=2,
        )
    )
    return 0


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ctmeter",
        description="Poll a CT meter over its local UDP protocol.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Run the polling daemon (configured via env vars)")

    disc = sub.add_parser("discover", help="Find a working identity for a meter")
    disc.add_argument("host", help="Meter IP address or hostname")
    disc.add_argument("--port", type=int, default=12345, help="Meter UDP port")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Synchronous entrypoint for the ``ctmeter`` command."""
    args = _build_parser().parse_args(argv)

    if args.command == "discover":
        configure_logging()
        return asyncio.run(run_discover(args.host, args.port))

    asyncio.run(async_main())
    return 0


if __name__ == "__main__":
    sys.exit(main())
