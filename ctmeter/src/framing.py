"""
Byte-level helpers shared by the request encoder and reply decoder.

CHANGELOG:
- 2026-10-14: Add checksum_matches for debug diagnostics
- 2026-10-12: Initial creation (STORY-002)

TODO:
- None
"""

from __future__ import annotations

import re

from ctmeter.src.errors import InvalidIdentity

SOH: int = 0x01
STX: int = 0x02
ETX: int = 0x03

MAC_LENGTH: int = 12
"""Number of hex characters in a normalized MAC address."""

_NON_HEX_RE = re.compile(r"[^0-9a-fA-F]")


def xor_checksum(data: bytes) -> int:
    """Return the running XOR of every byte in *data* (0 for empty input)."""
    checksum = 0x00
    for byte in data:
        checksum ^= byte
    return checksum


def is_ascii(data: bytes) -> bool:
    """Return True if every byte in *data* is 7-bit ASCII."""
    return all(byte <= 0x7F for byte in data)


def normalize_mac(value: object) -> str:
    """Normalize a MAC address to 12 uppercase hex characters.

    Separators and any other non-hex characters are stripped, so
    ``"aa:bb:cc:dd:ee:ff"`` and ``"AABB.CCDD.EEFF"`` both normalize to
    ``"AABBCCDDEEFF"``.

    Args:
        value: MAC address in any common notation.  ``None`` is treated as
            an empty string.

    Returns:
        The normalized MAC address.

    Raises:
        InvalidIdentity: If the stripped value is not exactly 12 characters.
    """
    cleaned = _NON_HEX_RE.sub("", "" if value is None else str(value)).upper()
    if len(cleaned) != MAC_LENGTH:
        raise InvalidIdentity(
            f"MAC must be {MAC_LENGTH} hex characters (got {len(cleaned)} from {value!r})"
        )
    return cleaned


def checksum_matches(frame: bytes) -> bool:
    """Check the trailing two-character hex checksum of a complete frame.

    The checksum covers every byte before it (SOH through ETX).  Frames
    too short to carry a checksum, or whose checksum is not valid hex,
    never match.
    """
    if len(frame) < 3:
        return False
    try:
        expected = int(frame[-2:].decode("ascii"), 16)
    except (UnicodeDecodeError, ValueError):
        return False
    return xor_checksum(frame[:-2]) == expected
