"""
Pure normalizer that maps a decoded TelemetryRecord onto a MeterSample.

The meter reports net grid power as a single signed value (positive =
import, negative = export).  Energy dashboards on the host side want import
and export as separate non-negative readings, so the sample carries both
the signed value and the split.

Fields the meter did not report as integers map to ``None`` rather than
raising: a meter with a single CT clamp, for instance, leaves the B/C phase
fields empty.

This is a pure function: no side effects, no I/O, no clock.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

import logging

from ctmeter.src.models import MeterSample, TelemetryRecord

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Mapping from MeterSample field names to TelemetryRecord field names.
# ---------------------------------------------------------------------------

_FIELD_MAP: dict[str, str] = {
    "power_w": "total_power",
    "phase_l1_w": "a_phase_power",
    "phase_l2_w": "b_phase_power",
    "phase_l3_w": "c_phase_power",
    "signal_strength_dbm": "wifi_rssi",
}
"""Maps MeterSample field name -> TelemetryRecord field name."""


def _numeric(value: int | str) -> int | None:
    """Return *value* if the decoder produced an integer, else None."""
    # bool is an int subclass; the decoder never produces one, but be strict.
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def normalize(record: TelemetryRecord) -> MeterSample:
    """Convert a decoded meter reply into host-facing power readings.

    Args:
        record: The decoded reply.

    Returns:
        A :class:`MeterSample`.  ``delivery_w``/``production_w`` are only
        set when ``total_power`` is numeric.
    """
    fields: dict[str, int | None] = {
        field_name: _numeric(getattr(record, record_name))
        for field_name, record_name in _FIELD_MAP.items()
    }

    power = fields["power_w"]
    if power is None:
        logger.debug("total_power not numeric (%r), skipping split", record.total_power)
        return MeterSample(**fields)

    return MeterSample(
        **fields,
        delivery_w=power if power > 0 else 0,
        production_w=-power if power < 0 else 0,
    )
