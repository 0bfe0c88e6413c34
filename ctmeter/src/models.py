"""
Data models for meter identity, decoded telemetry, and poll state.

- DeviceIdentity: the four parameters that address one physical meter.
- TelemetryRecord: one decoded reply, 24 positional fields.
- MeterSample: host-facing power readings derived from a TelemetryRecord.
- PollState: per-device failure/availability bookkeeping.

CHANGELOG:
- 2026-10-18: Reject non-ASCII device/CT types in DeviceIdentity
- 2026-10-15: Add MeterSample for the capability mapping (STORY-009)
- 2026-10-12: Initial creation (STORY-003)

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from ctmeter.src.errors import InvalidIdentity
from ctmeter.src.framing import normalize_mac

# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DeviceIdentity:
    """Identity parameters that select which meter a request addresses.

    Both MAC fields are normalized on construction, so two identities built
    from ``"aa:bb:cc:dd:ee:ff"`` and ``"AABBCCDDEEFF"`` compare equal and
    share a cached request frame.

    Attributes:
        device_type: Battery device type reported to the meter (e.g. ``"HMG50"``).
        ct_type: CT meter type (e.g. ``"HME-4"``).
        battery_mac: Battery MAC, 12 uppercase hex characters.
        ct_mac: CT meter MAC, 12 uppercase hex characters.

    Raises:
        InvalidIdentity: If either MAC does not normalize to 12 hex characters,
            or a type contains non-ASCII characters.
    """

    device_type: str
    ct_type: str
    battery_mac: str
    ct_mac: str

    def __post_init__(self) -> None:  # noqa: D105
        for name in ("device_type", "ct_type"):
            value = getattr(self, name)
            if not value.isascii():
                raise InvalidIdentity(f"{name} must be ASCII (got {value!r})")
        # frozen=True requires object.__setattr__
        object.__setattr__(self, "battery_mac", normalize_mac(self.battery_mac))
        object.__setattr__(self, "ct_mac", normalize_mac(self.ct_mac))


# ---------------------------------------------------------------------------
# Decoded reply
# ---------------------------------------------------------------------------

RESPONSE_FIELDS: tuple[str, ...] = (
    "meter_dev_type",
    "meter_mac_code",
    "hhm_dev_type",
    "hhm_mac_code",
    "a_phase_power",
    "b_phase_power",
    "c_phase_power",
    "total_power",
    "a_chrg_nb",
    "b_chrg_nb",
    "c_chrg_nb",
    "abc_chrg_nb",
    "wifi_rssi",
    "info_idx",
    "x_chrg_power",
    "a_chrg_power",
    "b_chrg_power",
    "c_chrg_power",
    "abc_chrg_power",
    "x_dchrg_power",
    "a_dchrg_power",
    "b_dchrg_power",
    "c_dchrg_power",
    "abc_dchrg_power",
)
"""Reply field names in wire order."""


class TelemetryRecord(BaseModel):
    """One decoded meter reply.

    Each field holds an ``int`` when the wire value was a signed decimal
    integer and the raw string otherwise.  Fields missing from a short
    reply are ``""``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    meter_dev_type: int | str = ""
    meter_mac_code: int | str = ""
    hhm_dev_type: int | str = ""
    hhm_mac_code: int | str = ""
    a_phase_power: int | str = ""
    b_phase_power: int | str = ""
    c_phase_power: int | str = ""
    total_power: int | str = ""
    a_chrg_nb: int | str = ""
    b_chrg_nb: int | str = ""
    c_chrg_nb: int | str = ""
    abc_chrg_nb: int | str = ""
    wifi_rssi: int | str = ""
    info_idx: int | str = ""
    x_chrg_power: int | str = ""
    a_chrg_power: int | str = ""
    b_chrg_power: int | str = ""
    c_chrg_power: int | str = ""
    abc_chrg_power: int | str = ""
    x_dchrg_power: int | str = ""
    a_dchrg_power: int | str = ""
    b_dchrg_power: int | str = ""
    c_dchrg_power: int | str = ""
    abc_dchrg_power: int | str = ""


# ---------------------------------------------------------------------------
# Host-facing sample
# ---------------------------------------------------------------------------


class MeterSample(BaseModel):
    """Power readings exposed to the host platform.

    Attributes:
        power_w: Net grid power in watts.  Positive = import, negative = export.
        delivery_w: Imported power (``power_w`` when positive, else 0).
        production_w: Exported power (``-power_w`` when negative, else 0).
        phase_l1_w: Phase A power in watts.
        phase_l2_w: Phase B power in watts.
        phase_l3_w: Phase C power in watts.
        signal_strength_dbm: Meter WiFi RSSI in dBm.

    Any reading the meter did not report as a number is ``None``.
    """

    model_config = ConfigDict(frozen=True)

    power_w: float | None = None
    delivery_w: float | None = None
    production_w: float | None = None
    phase_l1_w: float | None = None
    phase_l2_w: float | None = None
    phase_l3_w: float | None = None
    signal_strength_dbm: int | None = None


# ---------------------------------------------------------------------------
# Poll state
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class PollState:
    """Per-device poll bookkeeping owned by the polling engine."""

    consecutive_failures: int = 0
    available: bool = True
    last_poll_time: datetime | None = None
