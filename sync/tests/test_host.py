"""
Tests for alarm sources
"""

import json
from datetime import datetime, timezone

import pytest

from hass_alarm.host import AlarmSource, JobScheduler, ScheduleFileAlarmSource, StaticAlarmSource
from hass_alarm.models import AlarmSnapshot
from hass_alarm.scheduler import NetworkTriggerScheduler


def utc_millis(*args) -> int:
    return int(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000)


def monday_morning(tz):
    # 2024-01-01 was a Monday
    return datetime(2024, 1, 1, 6, 0, tzinfo=timezone.utc).astimezone(tz)


@pytest.fixture
def alarms_file(tmp_path):
    path = tmp_path / "alarms.json"

    def write(alarms):
        path.write_text(json.dumps(alarms))
        return ScheduleFileAlarmSource(path, timezone="UTC", clock=monday_morning)

    return write


class TestStaticAlarmSource:
    def test_no_alarm(self):
        assert StaticAlarmSource().query_next_alarm() == AlarmSnapshot.none()

    def test_alarm(self):
        snapshot = StaticAlarmSource(1700000000000).query_next_alarm()
        assert snapshot.has_alarm is True
        assert snapshot.trigger_timestamp == 1700000000000

    def test_protocols(self):
        assert isinstance(StaticAlarmSource(), AlarmSource)
        assert isinstance(NetworkTriggerScheduler(), JobScheduler)


class TestScheduleFileAlarmSource:
    """Test next alarm computation from a weekly schedule"""

    def test_missing_file(self, tmp_path):
        source = ScheduleFileAlarmSource(tmp_path / "missing.json", timezone="UTC", clock=monday_morning)
        assert source.query_next_alarm() == AlarmSnapshot.none()

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "alarms.json"
        path.write_text("{not json")
        source = ScheduleFileAlarmSource(path, timezone="UTC", clock=monday_morning)
        assert source.query_next_alarm() == AlarmSnapshot.none()

    def test_earliest_active_alarm(self, alarms_file):
        source = alarms_file([
            {"id": "late", "hour": 9, "minute": 0, "dow": "mon", "active": True},
            {"id": "early", "hour": 7, "minute": 30, "dow": "mon,tue", "active": True},
            {"id": "off", "hour": 6, "minute": 30, "dow": "mon", "active": False},
        ])
        assert source.query_next_alarm() == AlarmSnapshot.at(utc_millis(2024, 1, 1, 7, 30))

    def test_passed_alarm_rolls_to_next_week(self, alarms_file):
        source = alarms_file([{"id": "a", "hour": 5, "minute": 0, "dow": "mon"}])
        assert source.query_next_alarm() == AlarmSnapshot.at(utc_millis(2024, 1, 8, 5, 0))

    def test_invalid_days_skipped(self, alarms_file):
        source = alarms_file([
            {"id": "nodays", "hour": 6, "minute": 30, "dow": ""},
            {"id": "weekend", "hour": 10, "minute": 0, "dow": "sat,sun"},
        ])
        assert source.query_next_alarm() == AlarmSnapshot.at(utc_millis(2024, 1, 6, 10, 0))

    def test_no_active_alarms(self, alarms_file):
        source = alarms_file([{"id": "off", "hour": 7, "minute": 0, "dow": "mon", "active": False}])
        assert source.query_next_alarm() == AlarmSnapshot.none()

    def test_unknown_time_zone_skips_alarms(self, tmp_path):
        path = tmp_path / "alarms.json"
        path.write_text(json.dumps([{"id": "a", "hour": 7, "minute": 0, "dow": "mon"}]))
        source = ScheduleFileAlarmSource(path, timezone="Not/AZone", clock=monday_morning)
        assert source.query_next_alarm() == AlarmSnapshot.none()
