"""
Tests for building state update requests
"""

import pytest
from datetime import datetime, timezone, timedelta

from hass_alarm.config import HassConfig, DEFAULT_ENTITY_ID
from hass_alarm.exceptions import ConfigError, ConfigErrorReason
from hass_alarm.models import AlarmSnapshot
from hass_alarm.request_builder import (
    build, normalize_host, resolve_entity_id, format_alarm_time, auth_header
)


def local_millis(*args) -> int:
    return int(datetime(*args).timestamp() * 1000)


class TestNormalizeHost:
    """Test host normalization"""

    @pytest.mark.parametrize("host", ["myhost.local", "192.168.1.10", "ha.example.com"])
    def test_adds_scheme_and_port(self, host):
        normalized = normalize_host(host)
        assert normalized.startswith("http://")
        assert normalized.endswith(":8123")
        assert normalized == f"http://{host}:8123"

    def test_keeps_explicit_port(self):
        assert normalize_host("myhost.local:8300") == "http://myhost.local:8300"

    def test_keeps_https_scheme(self):
        assert normalize_host("https://ha.example.com:443") == "https://ha.example.com:443"

    def test_adds_port_after_scheme(self):
        assert normalize_host("https://ha.example.com") == "https://ha.example.com:8123"

    def test_strips_whitespace_and_trailing_slash(self):
        assert normalize_host("  myhost.local/ ") == "http://myhost.local:8123"


class TestFormatting:
    """Test alarm time formatting and entity resolution"""

    def test_no_alarm_is_empty_state(self):
        assert format_alarm_time(AlarmSnapshot.none()) == ""
        assert format_alarm_time(AlarmSnapshot(has_alarm=False, trigger_timestamp=1700000000000)) == ""

    def test_seconds_forced_to_zero(self):
        # 2023-11-14 22:13:20 UTC
        state = format_alarm_time(AlarmSnapshot.at(1700000000000), timezone.utc)
        assert state == "2023-11-14 22:13:00"
        assert state.endswith(":00")

    def test_uses_given_time_zone(self):
        tz = timezone(timedelta(hours=2))
        assert format_alarm_time(AlarmSnapshot.at(1700000000000), tz) == "2023-11-15 00:13:00"

    def test_local_rendering(self):
        snapshot = AlarmSnapshot.at(local_millis(2024, 1, 2, 7, 30, 45))
        assert format_alarm_time(snapshot) == "2024-01-02 07:30:00"

    @pytest.mark.parametrize("entity_id", [None, "", "   "])
    def test_default_entity(self, entity_id):
        assert resolve_entity_id(entity_id) == DEFAULT_ENTITY_ID

    def test_configured_entity(self):
        assert resolve_entity_id("input_datetime.phone_alarm") == "input_datetime.phone_alarm"


class TestAuthHeader:
    """Test credential header selection"""

    def test_long_lived_token(self):
        assert auth_header("abc", True) == ("Authorization", "Bearer abc")

    def test_api_key(self):
        assert auth_header("abc", False) == ("x-ha-access", "abc")

    def test_empty_api_key_still_sent(self):
        assert auth_header("", False) == ("x-ha-access", "")


class TestBuild:
    """Test the full request build"""

    @pytest.mark.parametrize("host", ["", "   "])
    def test_missing_host(self, host):
        with pytest.raises(ConfigError) as exc_info:
            build(HassConfig(host=host, credential="abc"), AlarmSnapshot.none())
        assert exc_info.value.reason is ConfigErrorReason.MISSING_HOST

    def test_default_entity_scenario(self):
        config = HassConfig(host="myhost.local", credential="abc",
                            credential_is_long_lived_token=False, entity_id="")
        request = build(config, AlarmSnapshot.at(local_millis(2024, 1, 2, 7, 30)))

        assert request.method == "POST"
        assert request.base_url == "http://myhost.local:8123"
        assert request.path == "/api/states/input_datetime.next_alarm"
        assert request.url == "http://myhost.local:8123/api/states/input_datetime.next_alarm"
        assert request.body.to_json() == {"state": "2024-01-02 07:30:00"}
        assert request.headers["x-ha-access"] == "abc"
        assert "Authorization" not in request.headers

    def test_token_request(self):
        config = HassConfig(host="https://ha.example.com:443", credential="tok",
                            credential_is_long_lived_token=True, entity_id="input_datetime.wake")
        request = build(config, AlarmSnapshot.none())

        assert request.url == "https://ha.example.com:443/api/states/input_datetime.wake"
        assert request.body.state == ""
        assert request.headers["Authorization"] == "Bearer tok"
        assert "x-ha-access" not in request.headers

    def test_request_is_immutable(self):
        request = build(HassConfig(host="myhost.local"), AlarmSnapshot.none())
        with pytest.raises(AttributeError):
            request.path = "/other"

    def test_preview_masks_credential(self):
        config = HassConfig(host="myhost.local", credential="secret-token",
                            credential_is_long_lived_token=True)
        preview = build(config, AlarmSnapshot.none()).to_dict()
        assert preview["headers"]["Authorization"] == "Bearer ********oken"

    @pytest.mark.parametrize("host", ["myhost.local:abc", "myhost.local:70000"])
    def test_invalid_host(self, host):
        with pytest.raises(ConfigError) as exc_info:
            build(HassConfig(host=host, credential="abc"), AlarmSnapshot.none())
        assert exc_info.value.reason is ConfigErrorReason.INVALID_HOST

    def test_entity_id_is_escaped_in_path(self):
        config = HassConfig(host="myhost.local", entity_id="input_datetime/next")
        request = build(config, AlarmSnapshot.none())
        assert request.path == "/api/states/input_datetime%2Fnext"
