"""
Error taxonomy for the CT meter poller.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-002)

TODO:
- None
"""


class MeterError(Exception):
    """Base error for the CT meter poller."""


class InvalidIdentity(MeterError, ValueError):
    """Raised when device identity parameters cannot form a request frame."""


class MalformedResponse(MeterError):
    """Raised when a reply datagram fails structural validation."""


class TransportError(MeterError):
    """Raised on socket-level failures while talking to the meter."""


class TransportTimeout(TransportError):
    """Raised when the meter does not reply within the timeout budget."""


class DiscoveryError(MeterError):
    """Raised when no identity combination gets a reply during pairing."""
