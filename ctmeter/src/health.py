"""
Health file writer for the meter daemon.

Writes a JSON health file at a configurable path with four fields:
- available: Whether the meter is currently considered reachable.
- unavailable_reason: Reason given when it was marked unreachable, else null.
- consecutive_failures: Failed poll cycles since the last success.
- last_poll_ts: ISO timestamp of the most recent poll cycle.

The file is overwritten on every state change, providing a simple
liveness signal that Docker HEALTHCHECK or monitoring can inspect.
HealthWriter also implements the availability sink interface, so the
daemon wires it straight into the polling engine.

CHANGELOG:
- 2026-10-16: Track availability and failure count
- 2026-10-15: Initial creation (STORY-011)

TODO:
- None
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path


class HealthWriter:
    """Writes meter health status to a JSON file.

    Each mutating method updates the in-memory state and immediately
    rewrites the health file so it always reflects the latest status.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._available: bool = True
        self._unavailable_reason: str | None = None
        self._consecutive_failures: int = 0
        self._last_poll_ts: str | None = None

    def record_poll(self, consecutive_failures: int) -> None:
        """Record a poll cycle and write health file.

        Args:
            consecutive_failures: Failure count after the cycle.
        """
        self._last_poll_ts = datetime.now(tz=UTC).isoformat()
        self._consecutive_failures = consecutive_failures
        self._write()

    async def set_available(self) -> None:
        """Mark the meter reachable and write health file."""
        self._available = True
        self._unavailable_reason = None
        self._write()

    async def set_unavailable(self, reason: str) -> None:
        """Mark the meter unreachable and write health file."""
        self._available = False
        self._unavailable_reason = reason
        self._write()

    def _write(self) -> None:
        """Write the health JSON file with current state."""
        data = {
            "available": self._available,
            "unavailable_reason": self._unavailable_reason,
            "consecutive_failures": self._consecutive_failures,
            "last_poll_ts": self._last_poll_ts,
        }
        self.path.write_text(json.dumps(data))
