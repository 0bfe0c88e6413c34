"""
CT meter poller package.

Polls a Marstek-style battery/CT meter over its local UDP protocol, decodes
the pipe-delimited telemetry reply, and hands the readings to a host
automation platform through explicit sink interfaces.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-001)

TODO:
- None
"""
