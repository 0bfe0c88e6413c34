"""
Per-device polling engine for a CT meter.

A :class:`MeterDevice` owns one poll timer, the cached request frame and the
:class:`~ctmeter.src.models.PollState` of a single meter.  It is either
idle (no timer task) or polling.  Designed to be robust:

- The first poll cycle fires as soon as polling starts, then every
  ``poll_interval_seconds``.
- Poll cycles never overlap.  A restarted timer waits for the previous
  timer's in-flight cycle before firing; a tick that elapsed during a slow
  cycle fires right after it.
- Stopping never aborts an in-flight cycle; it only prevents new ones.
- Transient failures below :data:`FAILURE_THRESHOLD` leave availability
  untouched.  Reaching the threshold marks the meter unavailable once per
  outage; the next success marks it available again.
- A poll cycle never raises.

CHANGELOG:
- 2026-10-18: Settings changes never restart a stopped device
- 2026-10-17: Serialize restarted timers behind the in-flight cycle
- 2026-10-15: Initial creation, replaces the Modbus poller (STORY-008)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from ctmeter.src.client import fetch_telemetry
from ctmeter.src.codec import encode_request
from ctmeter.src.config import FRAME_KEYS, TIMER_KEYS
from ctmeter.src.errors import InvalidIdentity, MeterError
from ctmeter.src.models import PollState

if TYPE_CHECKING:
    from ctmeter.src.config import ConnectionConfig, DeviceSettings
    from ctmeter.src.health import HealthWriter
    from ctmeter.src.models import TelemetryRecord
    from ctmeter.src.sinks import AvailabilitySink, TelemetrySink
    from ctmeter.src.transport import Transport

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

FAILURE_THRESHOLD: int = 5
"""Consecutive failed poll cycles before the meter is marked unavailable."""

UNAVAILABLE_REASON: str = "No response from meter"
"""Reason reported to the availability sink."""


class MeterDevice:
    """Polling state machine for one meter.

    Args:
        settings: Initial device settings.
        telemetry_sink: Receives each decoded record.
        availability_sink: Told when the meter becomes (un)available.
        transport: Transport for requests.  Defaults to UDP.
        health: Optional health writer updated after every cycle.
        log: Diagnostic logger.  Defaults to this module's logger.
    """

    def __init__(
        self,
        settings: DeviceSettings,
        *,
        telemetry_sink: TelemetrySink,
        availability_sink: AvailabilitySink,
        transport: Transport | None = None,
        health: HealthWriter | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self._settings = settings
        self._config: ConnectionConfig = settings.connection()
        self._telemetry_sink = telemetry_sink
        self._availability_sink = availability_sink
        self._transport = transport
        self._health = health
        self._log = log or logger

        self.state = PollState()
        self._frame: bytes | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def settings(self) -> DeviceSettings:
        """Current device settings."""
        return self._settings

    @property
    def frame(self) -> bytes | None:
        """Cached request frame, or None if it could not be built."""
        return self._frame

    @property
    def is_polling(self) -> bool:
        """True while a poll timer is installed."""
        return self._poll_task is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Build the request frame and start polling."""
        self._rebuild_frame()
        self._start_polling()

    async def on_settings(
        self,
        new_settings: DeviceSettings,
        changed_keys: Iterable[str],
    ) -> None:
        """Apply new settings from the host platform.

        Identity and host changes rebuild the cached frame.  Cadence and
        transport tuning changes (interval, timeout, retries, debug)
        restart the timer, which fires a cycle immediately.  A stopped
        device stays stopped.

        Args:
            new_settings: The full new settings.
            changed_keys: Names of the settings that changed.
        """
        changed = set(changed_keys)
        self._settings = new_settings
        self._config = new_settings.connection()

        if changed & FRAME_KEYS:
            self._rebuild_frame()
        if changed & TIMER_KEYS and self.is_polling:
            self._start_polling()

    async def stop(self) -> None:
        """Stop polling and wait for an in-flight cycle to finish."""
        task = self._stop_polling()
        if task is not None and not task.done():
            await asyncio.wait([task])

    # ------------------------------------------------------------------
    # Poll cycle
    # ------------------------------------------------------------------

    async def poll_once(self) -> None:
        """Run one poll cycle.  Never raises."""
        if self._frame is None:
            self._rebuild_frame()
            if self._frame is None:
                return

        config = self._config
        try:
            record = await fetch_telemetry(
                config,
                self._frame,
                transport=self._transport,
                log=self._log,
            )
        except MeterError as exc:
            await self._handle_failure(config, exc)
        except Exception as exc:
            self._log.error(
                "Unexpected error polling %s:%d", config.host, config.port, exc_info=True
            )
            await self._handle_failure(config, exc)
        else:
            await self._handle_success(record)

        if self._health is not None:
            try:
                self._health.record_poll(self.state.consecutive_failures)
            except Exception:
                self._log.warning("Failed to write health file", exc_info=True)

    async def _handle_failure(self, config: ConnectionConfig, exc: Exception) -> None:
        self.state.consecutive_failures += 1
        if config.debug:
            self._log.info("Polling error: %s", exc)

        if self.state.consecutive_failures < FAILURE_THRESHOLD or not self.state.available:
            return

        self.state.available = False
        self._log.warning(
            "Meter %s:%d unavailable after %d consecutive failures (last error: %s)",
            config.host,
            config.port,
            self.state.consecutive_failures,
            exc,
        )
        await self._notify(self._availability_sink.set_unavailable, UNAVAILABLE_REASON)

    async def _handle_success(self, record: TelemetryRecord) -> None:
        if not self.state.available:
            self._log.info("Meter %s:%d available again", self._config.host, self._config.port)
        self.state.consecutive_failures = 0
        self.state.available = True
        self.state.last_poll_time = datetime.now(tz=UTC)

        await self._notify(self._availability_sink.set_available)
        await self._notify(self._telemetry_sink.publish_telemetry, record)

    async def _notify(self, method: Callable[..., Awaitable[Any]], *args: Any) -> None:
        """Call a host sink method, logging instead of raising on failure."""
        try:
            await method(*args)
        except Exception:
            name = getattr(method, "__qualname__", repr(method))
            self._log.error("Host sink call %s failed", name, exc_info=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _rebuild_frame(self) -> None:
        try:
            self._frame = encode_request(self._settings.identity())
        except InvalidIdentity as exc:
            self._log.error("Failed to build payload: %s", exc)
            self._frame = None

    def _start_polling(self) -> None:
        previous = self._stop_polling()
        stop_event = asyncio.Event()
        self._stop_event = stop_event
        self._poll_task = asyncio.create_task(
            self._poll_loop(
                interval_s=self._config.poll_interval_seconds,
                stop_event=stop_event,
                previous=previous,
            )
        )

    def _stop_polling(self) -> asyncio.Task[None] | None:
        """Signal the current timer to stop and hand back its task."""
        task = self._poll_task
        if self._stop_event is not None:
            self._stop_event.set()
        self._poll_task = None
        self._stop_event = None
        return task

    async def _poll_loop(
        self,
        *,
        interval_s: float,
        stop_event: asyncio.Event,
        previous: asyncio.Task[None] | None = None,
    ) -> None:
        """Fire one cycle immediately, then one per interval until stopped."""
        if previous is not None and not previous.done():
            await asyncio.wait([previous])

        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while not stop_event.is_set():
            await self.poll_once()

            next_tick += interval_s
            delay = next_tick - loop.time()
            if delay <= 0:
                # Tick elapsed during a slow cycle: fire now, re-anchor the schedule.
                next_tick = loop.time()
                continue
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=delay)
