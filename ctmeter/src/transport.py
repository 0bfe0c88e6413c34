"""
Async UDP transport for single request/reply exchanges with the meter.

Each call opens its own ephemeral non-blocking datagram socket, sends one
frame, and waits for the first datagram that comes back.  The reply is not
checked against the sender address or its content; that is left to the
codec.  The socket is closed on every exit path.

CHANGELOG:
- 2026-10-13: Resolve host with loop.getaddrinfo before sending (IPv6 hosts)
- 2026-10-12: Initial creation (STORY-005)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import Protocol

from ctmeter.src.errors import TransportError, TransportTimeout

logger = logging.getLogger(__name__)

DEFAULT_PORT: int = 12345
"""Default meter UDP port."""

MAX_DATAGRAM_SIZE: int = 4096
"""Receive buffer size; meter replies are well below this."""


class Transport(Protocol):
    """Anything that can exchange one request frame for one reply."""

    async def send(
        self,
        frame: bytes,
        host: str,
        port: int,
        timeout_s: float,
    ) -> bytes:
        """Send *frame* to (host, port) and return the first reply datagram."""


class UdpTransport:
    """Datagram transport backed by asyncio's socket helpers."""

    async def send(
        self,
        frame: bytes,
        host: str,
        port: int,
        timeout_s: float,
    ) -> bytes:
        """Send *frame* and wait for a single reply datagram.

        Args:
            frame: Encoded request frame.
            host: Meter IP address or hostname.
            port: Meter UDP port.
            timeout_s: Seconds to wait for the reply.

        Returns:
            The payload of the first datagram received.

        Raises:
            TransportTimeout: If nothing arrives within *timeout_s*.
            TransportError: On address resolution or socket failures.
        """
        loop = asyncio.get_running_loop()

        try:
            infos = await loop.getaddrinfo(host, port, type=socket.SOCK_DGRAM)
        except OSError as exc:
            raise TransportError(f"Could not resolve {host}:{port}: {exc}") from exc
        if not infos:
            raise TransportError(f"Could not resolve {host}:{port}")
        family, sock_type, proto, _, address = infos[0]

        try:
            sock = socket.socket(family, sock_type, proto)
        except OSError as exc:
            raise TransportError(f"Could not create UDP socket: {exc}") from exc

        try:
            sock.setblocking(False)
            try:
                await loop.sock_sendto(sock, frame, address)
            except OSError as exc:
                raise TransportError(f"UDP send to {host}:{port} failed: {exc}") from exc

            try:
                data, _ = await asyncio.wait_for(
                    loop.sock_recvfrom(sock, MAX_DATAGRAM_SIZE),
                    timeout=timeout_s,
                )
            except TimeoutError as exc:
                raise TransportTimeout(
                    f"Timeout - No response from meter at {host}:{port}"
                ) from exc
            except OSError as exc:
                raise TransportError(
                    f"UDP receive from {host}:{port} failed: {exc}"
                ) from exc
        finally:
            sock.close()

        logger.debug("Received %d bytes from %s:%d", len(data), host, port)
        return data
