"""
Host sink interfaces and the implementations shipped with the daemon.

The polling engine talks to the host platform through two narrow
interfaces, injected separately:

- :class:`TelemetrySink` receives each successfully decoded record.
- :class:`AvailabilitySink` is told when the meter becomes reachable or
  unreachable.

All sink methods are idempotent and their results are ignored.  Sinks must
not raise into the poll cycle; the implementations here log and swallow
their own failures.

Implementations:

- :class:`LoggingTelemetrySink`: logs the normalized sample.
- :class:`HttpTelemetrySink`: POSTs the normalized sample as JSON to the
  host platform's ``/v1/telemetry`` endpoint.

The health snapshot writer in :mod:`ctmeter.src.health` is the
availability sink used by the daemon.

CHANGELOG:
- 2026-10-16: Add HttpTelemetrySink (STORY-013)
- 2026-10-15: Initial creation (STORY-010)

TODO:
- None
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

import httpx

from ctmeter.src.normalizer import normalize

if TYPE_CHECKING:
    from ctmeter.src.models import TelemetryRecord

logger = logging.getLogger(__name__)

HTTP_TIMEOUT_S: float = 5.0
"""Timeout for one telemetry POST."""


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------


class TelemetrySink(Protocol):
    async def publish_telemetry(self, record: TelemetryRecord) -> None:
        """Publish a freshly decoded record."""


class AvailabilitySink(Protocol):
    async def set_available(self) -> None:
        """Mark the device reachable."""

    async def set_unavailable(self, reason: str) -> None:
        """Mark the device unreachable with a human-readable reason."""


# ---------------------------------------------------------------------------
# Implementations
# ---------------------------------------------------------------------------


class LoggingTelemetrySink:
    """Telemetry sink that only logs the normalized sample."""

    def __init__(self, device_id: str) -> None:
        self._device_id = device_id

    async def publish_telemetry(self, record: TelemetryRecord) -> None:
        sample = normalize(record)
        logger.info(
            "Telemetry device=%s power=%s W l1=%s l2=%s l3=%s rssi=%s",
            self._device_id,
            sample.power_w,
            sample.phase_l1_w,
            sample.phase_l2_w,
            sample.phase_l3_w,
            sample.signal_strength_dbm,
        )


class HttpTelemetrySink:
    """Telemetry sink that POSTs normalized samples to the host platform.

    Each record is normalized to a :class:`~ctmeter.src.models.MeterSample`
    and sent as ``{"device_id": ..., "ts": ..., <sample fields>}`` to
    ``{base_url}/v1/telemetry``.  A bearer token is attached when given.

    Network errors and non-2xx responses are logged and dropped; the next
    poll cycle publishes a fresh snapshot anyway.

    Args:
        base_url: Base URL of the host platform (no trailing slash).
        device_id: Identifier embedded in each payload.
        token: Optional bearer token.
    """

    def __init__(
        self,
        base_url: str,
        device_id: str,
        token: str | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._device_id = device_id
        self._token = token

    async def publish_telemetry(self, record: TelemetryRecord) -> None:
        sample = normalize(record)
        payload = {
            "device_id": self._device_id,
            "ts": datetime.now(tz=UTC).isoformat(),
            **sample.model_dump(),
        }
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}

        try:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_S) as client:
                response = await client.post(
                    f"{self._base_url}/v1/telemetry",
                    json=payload,
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            logger.warning("Telemetry publish failed (network error): %s", exc)
            return

        if response.is_success:
            logger.debug("Published telemetry for device=%s", self._device_id)
            return

        logger.warning(
            "Telemetry publish failed (HTTP %d) for device=%s",
            response.status_code,
            self._device_id,
        )
