"""
Request orchestrator: one logical telemetry request with sequential retries.

A request is ``retries + 1`` attempts at most.  Each attempt sends the frame
through a :class:`~ctmeter.src.transport.Transport` and decodes the reply.
Attempts never overlap; a slow meter is never hit with a second request
while the first is still pending.  The first successful attempt wins; if
every attempt fails, the error from the last attempt is raised.

When ``debug`` is set the outbound frame, the raw reply and the decoded
record are logged.  Debug logging never alters the outcome.

CHANGELOG:
- 2026-10-18: Re-raise the final attempt error directly
- 2026-10-14: Log checksum mismatches in debug mode (replies are still accepted)
- 2026-10-13: Initial creation (STORY-006)

TODO:
- None
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import TYPE_CHECKING

from ctmeter.src.codec import decode_response, encode_request
from ctmeter.src.errors import MalformedResponse, TransportError
from ctmeter.src.framing import checksum_matches
from ctmeter.src.transport import UdpTransport

if TYPE_CHECKING:
    from ctmeter.src.config import ConnectionConfig
    from ctmeter.src.models import DeviceIdentity, TelemetryRecord
    from ctmeter.src.transport import Transport

logger = logging.getLogger(__name__)


@lru_cache(maxsize=32)
def frame_for(identity: DeviceIdentity) -> bytes:
    """Return the request frame for *identity*, cached by identity value."""
    return encode_request(identity)


async def fetch_telemetry(
    config: ConnectionConfig,
    frame: bytes,
    *,
    transport: Transport | None = None,
    log: logging.Logger | None = None,
) -> TelemetryRecord:
    """Send *frame* to the meter, retrying on failure, and decode the reply.

    Args:
        config: Connection parameters (host, port, timeout, retries, debug).
        frame: Encoded request frame.
        transport: Transport to use.  Defaults to a fresh
            :class:`~ctmeter.src.transport.UdpTransport`.
        log: Logger for debug output.  Defaults to this module's logger.

    Returns:
        The decoded record of the first successful attempt.

    Raises:
        MalformedResponse: If the last attempt got an undecodable reply.
        TransportTimeout: If the last attempt timed out.
        TransportError: If the last attempt failed at socket level.
    """
    transport = transport or UdpTransport()
    log = log or logger
    attempts = max(config.retries, 0) + 1
    attempt = 1

    while True:
        try:
            return await _attempt(config, frame, transport=transport, log=log)
        except (MalformedResponse, TransportError) as exc:
            if config.debug:
                log.info(
                    "Attempt %d/%d to %s:%d failed: %s",
                    attempt,
                    attempts,
                    config.host,
                    config.port,
                    exc,
                )
            if attempt >= attempts:
                raise
        attempt += 1


async def request_telemetry(
    config: ConnectionConfig,
    identity: DeviceIdentity,
    *,
    transport: Transport | None = None,
    log: logging.Logger | None = None,
) -> TelemetryRecord:
    """Request telemetry for *identity*, reusing its cached request frame."""
    return await fetch_telemetry(
        config,
        frame_for(identity),
        transport=transport,
        log=log,
    )


async def _attempt(
    config: ConnectionConfig,
    frame: bytes,
    *,
    transport: Transport,
    log: logging.Logger,
) -> TelemetryRecord:
    """Run a single send/receive/decode attempt."""
    if config.debug:
        log.info("UDP payload (hex): %s", frame.hex())

    raw = await transport.send(frame, config.host, config.port, config.timeout_s)

    if config.debug and isinstance(raw, bytes | bytearray):
        log.info("UDP response (hex): %s", raw.hex())
        if not checksum_matches(bytes(raw)):
            log.warning("UDP response checksum mismatch (reply accepted anyway)")

    record = decode_response(raw)

    if config.debug:
        log.info("Parsed response: %s", record.model_dump_json())
    return record
