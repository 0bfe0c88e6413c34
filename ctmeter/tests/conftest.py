"""
Shared test fixtures for the CT meter poller tests.

Provides environment variable fixtures for MeterSettings configuration tests.
All meter env vars are cleaned before each test to ensure isolation.

CHANGELOG:
- 2026-10-16: Initial creation (STORY-012)

TODO:
- None
"""

from __future__ import annotations

import pytest

# All MeterSettings environment variable names, used for cleanup.
_ALL_METER_ENV_VARS = (
    "METER_HOST",
    "METER_PORT",
    "DEVICE_TYPE",
    "CT_TYPE",
    "BATTERY_MAC",
    "CT_MAC",
    "POLL_INTERVAL_S",
    "TIMEOUT_MS",
    "RETRIES",
    "DEBUG",
    "DEVICE_ID",
    "TELEMETRY_URL",
    "TELEMETRY_TOKEN",
    "HEALTH_PATH",
)


@pytest.fixture(autouse=True)
def _clean_meter_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all meter env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_METER_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def env_vars_full(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set all required and optional environment variables for MeterSettings.

    Returns the dict of env var names to values for assertion convenience.
    """
    env = {
        "METER_HOST": "192.168.1.50",
        "METER_PORT": "12346",
        "DEVICE_TYPE": "HMB50",
        "CT_TYPE": "HME-3",
        "BATTERY_MAC": "AABBCCDDEEFF",
        "CT_MAC": "001122334455",
        "POLL_INTERVAL_S": "5",
        "TIMEOUT_MS": "2000",
        "RETRIES": "3",
        "DEBUG": "true",
        "DEVICE_ID": "ct-garage",
        "TELEMETRY_URL": "https://home.example.com",
        "TELEMETRY_TOKEN": "test-token",
        "HEALTH_PATH": "/tmp/test-health.json",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set only the required environment variables (no optional ones).

    Optional variables should fall back to their defaults.
    """
    env = {
        "METER_HOST": "10.0.0.60",
        "BATTERY_MAC": "aa:bb:cc:dd:ee:ff",
        "CT_MAC": "00-11-22-33-44-55",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env
