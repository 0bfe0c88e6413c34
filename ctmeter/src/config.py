"""
Configuration for the CT meter poller.

Two layers:

- :class:`DeviceSettings` is what the host platform hands a device.  It is
  forgiving: numeric values are clamped into their supported range and
  unparseable values fall back to the default, so a bad settings form
  never stops a device from polling.
- :class:`MeterSettings` is the edge daemon configuration, loaded from
  environment variables / ``.env`` with pydantic-settings.  It is strict:
  invalid values are rejected at startup.

CHANGELOG:
- 2026-10-18: DeviceSettings falls back to the default port outside 1-65535
- 2026-10-16: Add MeterSettings for the standalone daemon (STORY-012)
- 2026-10-14: Initial creation (STORY-007)

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, field_validator, model_validator
from pydantic_settings import BaseSettings

from ctmeter.src.framing import normalize_mac
from ctmeter.src.models import DeviceIdentity
from ctmeter.src.transport import DEFAULT_PORT

# ---------------------------------------------------------------------------
# Ranges and defaults
# ---------------------------------------------------------------------------

PORT_RANGE: tuple[int, int] = (1, 65535)
POLL_INTERVAL_RANGE: tuple[int, int] = (2, 60)
TIMEOUT_MS_RANGE: tuple[int, int] = (500, 5000)
RETRIES_RANGE: tuple[int, int] = (0, 5)

DEFAULT_POLL_INTERVAL_S: int = 10
DEFAULT_TIMEOUT_MS: int = 1500
DEFAULT_RETRIES: int = 2

FRAME_KEYS: frozenset[str] = frozenset(
    {"host", "device_type", "battery_mac", "ct_mac", "ct_type"}
)
"""Setting keys whose change invalidates the cached request frame."""

TIMER_KEYS: frozenset[str] = frozenset(
    {"poll_interval_seconds", "timeout_ms", "retries", "debug"}
)
"""Setting keys whose change restarts the poll timer."""


def _clamp(value: object, low: int, high: int, fallback: int) -> int:
    try:
        number = int(float(value))  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return fallback
    return min(max(number, low), high)


# ---------------------------------------------------------------------------
# Per-device settings (host facing)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ConnectionConfig:
    """Transport and cadence parameters for one device."""

    host: str
    port: int = DEFAULT_PORT
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    retries: int = DEFAULT_RETRIES
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL_S
    debug: bool = False

    @property
    def timeout_s(self) -> float:
        """Reply timeout in seconds."""
        return self.timeout_ms / 1000.0


class DeviceSettings(BaseModel):
    """Settings of one paired meter as stored by the host platform.

    Attributes:
        host: Meter IP address or hostname.
        port: Meter UDP port; empty, unparseable or outside 1-65535 falls
            back to 12345.
        device_type: Battery device type sent in requests.
        ct_type: CT meter type sent in requests.
        battery_mac: Battery MAC in any notation.  Validated when the
            request frame is built, not here, so a device with a bad MAC
            still loads and reports the problem in its log.
        ct_mac: CT meter MAC in any notation.
        poll_interval_seconds: Seconds between poll cycles, clamped to 2-60.
        timeout_ms: Reply timeout, clamped to 500-5000.
        retries: Extra attempts per poll cycle, clamped to 0-5.
        debug: Log frames and decoded replies.
    """

    host: str
    port: int = DEFAULT_PORT
    device_type: str = ""
    ct_type: str = ""
    battery_mac: str = ""
    ct_mac: str = ""
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL_S
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    retries: int = DEFAULT_RETRIES
    debug: bool = False

    @field_validator("port", mode="before")
    @classmethod
    def _default_port(cls, v: object) -> int:
        """Fall back to the default port when empty, unparseable or out of range."""
        try:
            port = int(v)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return DEFAULT_PORT
        low, high = PORT_RANGE
        if port < low or port > high:
            return DEFAULT_PORT
        return port

    @field_validator("poll_interval_seconds", mode="before")
    @classmethod
    def _clamp_poll_interval(cls, v: object) -> int:
        return _clamp(v, *POLL_INTERVAL_RANGE, DEFAULT_POLL_INTERVAL_S)

    @field_validator("timeout_ms", mode="before")
    @classmethod
    def _clamp_timeout(cls, v: object) -> int:
        return _clamp(v, *TIMEOUT_MS_RANGE, DEFAULT_TIMEOUT_MS)

    @field_validator("retries", mode="before")
    @classmethod
    def _clamp_retries(cls, v: object) -> int:
        return _clamp(v, *RETRIES_RANGE, DEFAULT_RETRIES)

    @field_validator("debug", mode="before")
    @classmethod
    def _coerce_debug(cls, v: object) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in ("1", "true", "yes", "on")
        return bool(v)

    def connection(self) -> ConnectionConfig:
        """Return the transport/cadence part of these settings."""
        return ConnectionConfig(
            host=self.host,
            port=self.port,
            timeout_ms=self.timeout_ms,
            retries=self.retries,
            poll_interval_seconds=self.poll_interval_seconds,
            debug=self.debug,
        )

    def identity(self) -> DeviceIdentity:
        """Return the device identity.

        Raises:
            InvalidIdentity: If either MAC is not 12 hex characters.
        """
        return DeviceIdentity(
            device_type=self.device_type,
            ct_type=self.ct_type,
            battery_mac=self.battery_mac,
            ct_mac=self.ct_mac,
        )


# ---------------------------------------------------------------------------
# Daemon settings (environment)
# ---------------------------------------------------------------------------


class MeterSettings(BaseSettings):
    """Edge daemon configuration for a single CT meter.

    Attributes:
        meter_host: Meter IP address / hostname on the local LAN.
        meter_port: Meter UDP port (default 12345).
        device_type: Battery device type sent in requests (default HMG50).
        ct_type: CT meter type sent in requests (default HME-4).
        battery_mac: Battery MAC address (required).
        ct_mac: CT meter MAC address (required).
        poll_interval_s: Seconds between poll cycles (2-60).
        timeout_ms: Reply timeout in milliseconds (500-5000).
        retries: Extra attempts per poll cycle (0-5).
        debug: Log frames and decoded replies.
        device_id: Identifier attached to published telemetry.  Defaults
            to meter_host if not set.
        telemetry_url: Optional base URL of the host platform's telemetry
            endpoint.  When unset, telemetry is only logged.
        telemetry_token: Optional bearer token for telemetry_url.
        health_path: Path of the JSON health snapshot.
    """

    meter_host: str
    meter_port: int = DEFAULT_PORT
    device_type: str = "HMG50"
    ct_type: str = "HME-4"
    battery_mac: str
    ct_mac: str
    poll_interval_s: int = DEFAULT_POLL_INTERVAL_S
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    retries: int = DEFAULT_RETRIES
    debug: bool = False
    device_id: str = ""
    telemetry_url: str | None = None
    telemetry_token: str | None = None
    health_path: str = "/data/health.json"

    @model_validator(mode="after")
    def _default_device_id(self) -> "MeterSettings":
        """Default device_id to meter_host when not explicitly set."""
        if not self.device_id:
            self.device_id = self.meter_host
        return self

    @field_validator("battery_mac", "ct_mac")
    @classmethod
    def mac_must_be_valid(cls, v: str) -> str:
        """Validate and normalize MAC addresses to 12 uppercase hex chars."""
        return normalize_mac(v)

    @field_validator("meter_port")
    @classmethod
    def meter_port_must_be_valid(cls, v: int) -> int:
        """Validate UDP port is in valid range."""
        low, high = PORT_RANGE
        if v < low or v > high:
            raise ValueError(f"METER_PORT must be between {low} and {high}")
        return v

    @field_validator("poll_interval_s")
    @classmethod
    def poll_interval_must_be_in_range(cls, v: int) -> int:
        """Validate poll interval is between 2 and 60 seconds."""
        low, high = POLL_INTERVAL_RANGE
        if v < low or v > high:
            raise ValueError(f"POLL_INTERVAL_S must be >= {low} and <= {high}")
        return v

    @field_validator("timeout_ms")
    @classmethod
    def timeout_must_be_in_range(cls, v: int) -> int:
        """Validate reply timeout is between 500 and 5000 ms."""
        low, high = TIMEOUT_MS_RANGE
        if v < low or v > high:
            raise ValueError(f"TIMEOUT_MS must be >= {low} and <= {high}")
        return v

    @field_validator("retries")
    @classmethod
    def retries_must_be_in_range(cls, v: int) -> int:
        """Validate retry count is between 0 and 5."""
        low, high = RETRIES_RANGE
        if v < low or v > high:
            raise ValueError(f"RETRIES must be >= {low} and <= {high}")
        return v

    @field_validator("telemetry_url")
    @classmethod
    def telemetry_url_must_be_http(cls, v: str | None) -> str | None:
        """Validate the telemetry URL scheme and strip a trailing slash."""
        if v is None or v == "":
            return None
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError(
                f"TELEMETRY_URL must start with http:// or https:// (got: '{v[:20]}...')"
            )
        return v.rstrip("/")

    def to_device_settings(self) -> DeviceSettings:
        """Convert to the per-device settings used by the polling engine."""
        return DeviceSettings(
            host=self.meter_host,
            port=self.meter_port,
            device_type=self.device_type,
            ct_type=self.ct_type,
            battery_mac=self.battery_mac,
            ct_mac=self.ct_mac,
            poll_interval_seconds=self.poll_interval_s,
            timeout_ms=self.timeout_ms,
            retries=self.retries,
            debug=self.debug,
        )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
