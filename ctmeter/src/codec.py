"""
Request encoder and reply decoder for the CT meter UDP protocol.

Frame layout (all ASCII except the control bytes)::

    0x01 0x02 <length> <body> 0x03 <checksum>

- ``length`` is the decimal byte count of the whole frame, including the
  length field itself and the two checksum characters.
- ``checksum`` is the XOR of every byte from 0x01 through 0x03, written as
  two lowercase hex characters.
- A request body is ``|<device_type>|<battery_mac>|<ct_type>|<ct_mac>|0|0``.
- A reply body is a pipe-delimited list mapped positionally onto
  :data:`~ctmeter.src.models.RESPONSE_FIELDS`.

The decoder reads the reply body from a fixed offset (2 control bytes plus
a 2-digit length field) and does not verify the checksum.  Both match the
behaviour of the meters this was written against.

CHANGELOG:
- 2026-10-13: Split build_frame out of encode_request for reply fixtures
- 2026-10-12: Initial creation (STORY-004)

TODO:
- None
"""

from __future__ import annotations

import re

from ctmeter.src.errors import MalformedResponse
from ctmeter.src.framing import ETX, SOH, STX, is_ascii, xor_checksum
from ctmeter.src.models import RESPONSE_FIELDS, DeviceIdentity, TelemetryRecord

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MIN_FRAME_LENGTH: int = 7
"""Shortest reply accepted by the decoder."""

_HEADER_LENGTH: int = 4
"""SOH + STX + 2-digit length field."""

_TRAILER_LENGTH: int = 3
"""ETX + 2 checksum characters."""

_CHECKSUM_LENGTH: int = 2

_INTEGER_RE = re.compile(r"-?[0-9]+")


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------


def frame_length(body_length: int) -> int:
    """Return the total frame length for a body of *body_length* bytes.

    The length field counts its own digits, so its width depends on the
    value it encodes.  The first guess assumes a width derived from the
    fixed part of the frame; if the resulting total needs one more digit
    (for example 99 growing to 100), the total is recomputed with the
    wider field.
    """
    base_size = 2 + body_length + 1 + _CHECKSUM_LENGTH
    guess_digits = len(str(base_size + 2))
    total = base_size + guess_digits
    if len(str(total)) != guess_digits:
        total = base_size + len(str(total))
    return total


def build_frame(body: bytes) -> bytes:
    """Wrap *body* in control bytes, a length field and an XOR checksum."""
    length_field = str(frame_length(len(body))).encode("ascii")
    unsigned = bytes([SOH, STX]) + length_field + body + bytes([ETX])
    checksum = f"{xor_checksum(unsigned):02x}".encode("ascii")
    return unsigned + checksum


def request_body(identity: DeviceIdentity) -> bytes:
    """Return the ASCII request body for *identity*."""
    message = (
        f"|{identity.device_type}|{identity.battery_mac}"
        f"|{identity.ct_type}|{identity.ct_mac}|0|0"
    )
    return message.encode("ascii")


def encode_request(identity: DeviceIdentity) -> bytes:
    """Build the complete request frame for *identity*.

    Args:
        identity: Validated device identity.  MAC validation happens when
            the identity is constructed, so callers building one from raw
            settings see :class:`~ctmeter.src.errors.InvalidIdentity` there.

    Returns:
        The request frame bytes.
    """
    return build_frame(request_body(identity))


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------


def _parse_value(value: str) -> int | str:
    """Convert a signed decimal field to int, leave anything else as text."""
    if _INTEGER_RE.fullmatch(value):
        return int(value)
    return value


def decode_response(data: object) -> TelemetryRecord:
    """Decode a reply frame into a :class:`TelemetryRecord`.

    Args:
        data: The raw reply datagram.

    Returns:
        The decoded record.  Fields the reply does not carry are ``""``;
        fields beyond the known 24 are ignored.

    Raises:
        MalformedResponse: If *data* is not bytes, contains non-ASCII
            bytes, or is shorter than :data:`MIN_FRAME_LENGTH`.
    """
    if not isinstance(data, bytes | bytearray):
        raise MalformedResponse("Invalid response buffer")
    if not is_ascii(data):
        raise MalformedResponse("Invalid ASCII encoding")
    if len(data) < MIN_FRAME_LENGTH:
        raise MalformedResponse("Response too short")

    payload = bytes(data[_HEADER_LENGTH : len(data) - _TRAILER_LENGTH])
    # The body starts with a pipe, so the first segment is never a field.
    parts = payload.decode("ascii").split("|")[1:]

    values = {
        name: _parse_value(parts[index]) if index < len(parts) else ""
        for index, name in enumerate(RESPONSE_FIELDS)
    }
    return TelemetryRecord(**values)
