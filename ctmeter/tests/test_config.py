"""
Unit tests for meter configuration (DeviceSettings, MeterSettings).

Tests verify:
- DeviceSettings clamps numeric values into range and falls back to
  defaults on unparseable input.
- DeviceSettings splits into ConnectionConfig and DeviceIdentity.
- MeterSettings loads from environment variables with correct defaults.
- MeterSettings rejects missing required and out-of-range values.
- DEVICE_ID defaults to METER_HOST when not set.

CHANGELOG:
- 2026-10-18: Out-of-range port falls back to the default
- 2026-10-16: Add MeterSettings tests (STORY-012)
- 2026-10-14: Initial creation (STORY-007)

TODO:
- None
"""

import pytest
from ctmeter.src.config import (
    FRAME_KEYS,
    TIMER_KEYS,
    ConnectionConfig,
    DeviceSettings,
    MeterSettings,
)
from ctmeter.src.errors import InvalidIdentity
from pydantic import ValidationError

# ===========================================================================
# DeviceSettings
# ===========================================================================


class TestDeviceSettingsClamping:
    """Host-supplied values are clamped, never rejected."""

    @pytest.mark.parametrize(
        ("field", "value", "expected"),
        [
            ("poll_interval_seconds", 1, 2),
            ("poll_interval_seconds", 600, 60),
            ("poll_interval_seconds", "15", 15),
            ("poll_interval_seconds", "fast", 10),
            ("timeout_ms", 100, 500),
            ("timeout_ms", 99999, 5000),
            ("timeout_ms", None, 1500),
            ("retries", -1, 0),
            ("retries", 9, 5),
            ("retries", "2.7", 2),
        ],
    )
    def test_clamps(self, field: str, value: object, expected: int) -> None:
        settings = DeviceSettings(host="h", **{field: value})
        assert getattr(settings, field) == expected

    def test_defaults(self) -> None:
        settings = DeviceSettings(host="192.168.1.50")
        assert settings.port == 12345
        assert settings.poll_interval_seconds == 10
        assert settings.timeout_ms == 1500
        assert settings.retries == 2
        assert settings.debug is False

    @pytest.mark.parametrize("port", [None, "", 0, "0", -1, 65536, 70000, "udp"])
    def test_empty_port_falls_back(self, port: object) -> None:
        assert DeviceSettings(host="h", port=port).port == 12345

    @pytest.mark.parametrize(("port", "expected"), [(1, 1), ("4000", 4000), (65535, 65535)])
    def test_valid_port_kept(self, port: object, expected: int) -> None:
        assert DeviceSettings(host="h", port=port).port == expected

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("true", True), ("0", False), ("off", False), (1, True), (None, False)],
    )
    def test_debug_coerced(self, value: object, expected: bool) -> None:
        assert DeviceSettings(host="h", debug=value).debug is expected


class TestDeviceSettingsSplit:
    def test_connection(self) -> None:
        settings = DeviceSettings(
            host="10.0.0.5", port=4000, timeout_ms=800, retries=1, poll_interval_seconds=5
        )
        config = settings.connection()

        assert config == ConnectionConfig(
            host="10.0.0.5",
            port=4000,
            timeout_ms=800,
            retries=1,
            poll_interval_seconds=5,
            debug=False,
        )
        assert config.timeout_s == pytest.approx(0.8)

    def test_identity_normalizes_macs(self) -> None:
        settings = DeviceSettings(
            host="h",
            device_type="HMG50",
            ct_type="HME-4",
            battery_mac="aa:bb:cc:dd:ee:ff",
            ct_mac="00-11-22-33-44-55",
        )
        identity = settings.identity()

        assert identity.battery_mac == "AABBCCDDEEFF"
        assert identity.ct_mac == "001122334455"

    def test_identity_invalid_mac(self) -> None:
        settings = DeviceSettings(host="h", battery_mac="123", ct_mac="001122334455")
        with pytest.raises(InvalidIdentity):
            settings.identity()

    def test_key_groups_disjoint(self) -> None:
        assert not FRAME_KEYS & TIMER_KEYS


# ===========================================================================
# MeterSettings
# ===========================================================================


class TestMeterSettingsLoadsFromEnv:
    def test_loads_all_env_vars(self, env_vars_full: dict[str, str]) -> None:
        settings = MeterSettings()

        assert settings.meter_host == env_vars_full["METER_HOST"]
        assert settings.meter_port == int(env_vars_full["METER_PORT"])
        assert settings.device_type == env_vars_full["DEVICE_TYPE"]
        assert settings.ct_type == env_vars_full["CT_TYPE"]
        assert settings.battery_mac == env_vars_full["BATTERY_MAC"]
        assert settings.ct_mac == env_vars_full["CT_MAC"]
        assert settings.poll_interval_s == int(env_vars_full["POLL_INTERVAL_S"])
        assert settings.timeout_ms == int(env_vars_full["TIMEOUT_MS"])
        assert settings.retries == int(env_vars_full["RETRIES"])
        assert settings.debug is True
        assert settings.device_id == env_vars_full["DEVICE_ID"]
        assert settings.telemetry_url == env_vars_full["TELEMETRY_URL"]
        assert settings.telemetry_token == env_vars_full["TELEMETRY_TOKEN"]
        assert settings.health_path == env_vars_full["HEALTH_PATH"]

    def test_defaults_applied_when_optional_vars_missing(
        self, env_vars_required_only: dict[str, str]
    ) -> None:
        settings = MeterSettings()

        assert settings.meter_port == 12345
        assert settings.device_type == "HMG50"
        assert settings.ct_type == "HME-4"
        assert settings.poll_interval_s == 10
        assert settings.timeout_ms == 1500
        assert settings.retries == 2
        assert settings.debug is False
        assert settings.telemetry_url is None
        assert settings.telemetry_token is None
        assert settings.health_path == "/data/health.json"

    def test_macs_normalized(self, env_vars_required_only: dict[str, str]) -> None:
        settings = MeterSettings()
        assert settings.battery_mac == "AABBCCDDEEFF"
        assert settings.ct_mac == "001122334455"

    def test_device_id_defaults_to_host(
        self, env_vars_required_only: dict[str, str]
    ) -> None:
        assert MeterSettings().device_id == env_vars_required_only["METER_HOST"]

    def test_telemetry_url_trailing_slash_stripped(
        self, env_vars_required_only: dict[str, str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TELEMETRY_URL", "http://homey.local:8080/")
        assert MeterSettings().telemetry_url == "http://homey.local:8080"

    def test_to_device_settings(self, env_vars_full: dict[str, str]) -> None:
        device = MeterSettings().to_device_settings()

        assert device.host == env_vars_full["METER_HOST"]
        assert device.port == 12346
        assert device.poll_interval_seconds == 5
        assert device.timeout_ms == 2000
        assert device.retries == 3
        assert device.debug is True
        assert device.identity().ct_mac == "001122334455"


class TestMeterSettingsValidation:
    @pytest.mark.parametrize("missing", ["METER_HOST", "BATTERY_MAC", "CT_MAC"])
    def test_missing_required_raises(
        self,
        missing: str,
        env_vars_required_only: dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.delenv(missing)

        with pytest.raises(ValidationError) as exc_info:
            MeterSettings()
        assert missing.lower() in str(exc_info.value).lower()

    @pytest.mark.parametrize(
        ("var", "value"),
        [
            ("METER_PORT", "0"),
            ("METER_PORT", "70000"),
            ("POLL_INTERVAL_S", "1"),
            ("POLL_INTERVAL_S", "61"),
            ("TIMEOUT_MS", "499"),
            ("TIMEOUT_MS", "5001"),
            ("RETRIES", "-1"),
            ("RETRIES", "6"),
            ("BATTERY_MAC", "aa:bb"),
            ("CT_MAC", "not a mac"),
            ("TELEMETRY_URL", "ftp://example.com"),
        ],
    )
    def test_invalid_values_rejected(
        self,
        var: str,
        value: str,
        env_vars_required_only: dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv(var, value)

        with pytest.raises(ValidationError):
            MeterSettings()

    @pytest.mark.parametrize(("var", "value"), [("POLL_INTERVAL_S", "2"), ("RETRIES", "0")])
    def test_boundaries_accepted(
        self,
        var: str,
        value: str,
        env_vars_required_only: dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv(var, value)
        MeterSettings()
