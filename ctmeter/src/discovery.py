"""
Pairing helper: find an identity combination a meter answers to.

A meter only replies to requests whose device/CT types it recognises.  When
pairing, only the meter's address is known, so a short list of common
battery/CT type combinations is tried in order with placeholder MACs until
one gets a reply.  The winning types plus the first reply are handed to
the device-creation step, which must still collect the real MACs.

CHANGELOG:
- 2026-10-17: Add device_id / to_device_settings for device creation
- 2026-10-16: Initial creation (STORY-014)

TODO:
- None
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ctmeter.src.client import request_telemetry
from ctmeter.src.config import ConnectionConfig, DeviceSettings
from ctmeter.src.errors import DiscoveryError, MalformedResponse, TransportError
from ctmeter.src.models import DeviceIdentity, TelemetryRecord
from ctmeter.src.transport import DEFAULT_PORT

if TYPE_CHECKING:
    from ctmeter.src.transport import Transport

logger = logging.getLogger(__name__)

PLACEHOLDER_MAC: str = "000000000000"
"""MAC sent for both battery and CT while probing."""

DISCOVERY_TIMEOUT_MS: int = 2000

DISCOVERY_COMBINATIONS: tuple[tuple[str, str], ...] = (
    ("HMG50", "HME-4"),
    ("HMG50", "HME-3"),
    ("HMB50", "HME-4"),
    ("HMA50", "HME-4"),
)
"""(device_type, ct_type) pairs tried in order."""


@dataclass(frozen=True, slots=True)
class DiscoveryResult:
    """Outcome of a successful discovery.

    Attributes:
        host: Address that was probed.
        device_type: Device type the meter answered to.
        ct_type: CT type the meter answered to.
        record: The meter's first reply.
    """

    host: str
    device_type: str
    ct_type: str
    record: TelemetryRecord

    @property
    def name(self) -> str:
        """Display name for the new device."""
        return f"Marstek {self.record.meter_dev_type or self.device_type}"

    def device_id(self, battery_mac: str, ct_mac: str) -> str:
        """Stable identifier for a device created from this result."""
        host_part = self.host.replace(".", "-")
        return f"{battery_mac}-{ct_mac}-{self.device_type}-{host_part}"

    def to_device_settings(self, battery_mac: str, ct_mac: str) -> DeviceSettings:
        """Initial settings for a device created from this result."""
        return DeviceSettings(
            host=self.host,
            port=DEFAULT_PORT,
            device_type=self.device_type,
            ct_type=self.ct_type,
            battery_mac=battery_mac,
            ct_mac=ct_mac,
        )


async def discover(
    host: str,
    *,
    port: int = DEFAULT_PORT,
    transport: Transport | None = None,
) -> DiscoveryResult:
    """Probe *host* with each known identity combination.

    Args:
        host: Meter IP address or hostname.
        port: Meter UDP port.
        transport: Transport to use.  Defaults to UDP.

    Returns:
        The first combination that produced a decodable reply.

    Raises:
        DiscoveryError: If *host* is empty or no combination got a reply.
            The most recent attempt's error is chained as ``__cause__``.
    """
    host = (host or "").strip()
    if not host:
        raise DiscoveryError("Host is required")

    config = ConnectionConfig(
        host=host,
        port=port,
        timeout_ms=DISCOVERY_TIMEOUT_MS,
        retries=0,
        debug=True,
    )

    last_error: MalformedResponse | TransportError | None = None
    for device_type, ct_type in DISCOVERY_COMBINATIONS:
        identity = DeviceIdentity(
            device_type=device_type,
            ct_type=ct_type,
            battery_mac=PLACEHOLDER_MAC,
            ct_mac=PLACEHOLDER_MAC,
        )
        logger.info("Trying config %s/%s on %s", device_type, ct_type, host)
        try:
            record = await request_telemetry(config, identity, transport=transport)
        except (MalformedResponse, TransportError) as exc:
            logger.info("Config %s/%s failed: %s", device_type, ct_type, exc)
            last_error = exc
            continue

        logger.info("Success with config %s/%s on %s", device_type, ct_type, host)
        return DiscoveryResult(
            host=host,
            device_type=device_type,
            ct_type=ct_type,
            record=record,
        )

    logger.warning("All configs failed for %s. Last error: %s", host, last_error)
    raise DiscoveryError(
        f"Could not connect to device at {host}: {last_error}"
    ) from last_error
