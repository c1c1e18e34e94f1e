#!/usr/bin/env python3
"""
Integration tests for Hass Alarm
"""

import threading
import unittest
from datetime import datetime
from unittest.mock import Mock

import requests

from hass_alarm.config import HassConfig, SyncSettings
from hass_alarm.hass_client import HassClient
from hass_alarm.host import StaticAlarmSource
from hass_alarm.models import JobOutcome, RunnerState
from hass_alarm.scheduler import NetworkTriggerScheduler
from hass_alarm.service import SyncService, JOB_ID


class TestSyncServiceIntegration(unittest.TestCase):
    """Scheduler, runner and client wired together over a mocked session"""

    def setUp(self):
        self.settings = SyncSettings(retry_delay_s=30.0)
        self.session = Mock(spec=requests.Session)
        self.alarm_ms = int(datetime(2024, 1, 2, 7, 30).timestamp() * 1000)
        scheduler = NetworkTriggerScheduler(self.settings, network_check=lambda: True, scheduler=Mock(running=False))
        self.service = SyncService(
            self.settings,
            config_provider=lambda: HassConfig(host="myhost.local", credential="abc"),
            alarm_source=StaticAlarmSource(self.alarm_ms),
            client=HassClient(self.settings, session=self.session),
            scheduler=scheduler,
        )

        self.outcomes = []
        self.done = threading.Event()
        report = scheduler.report_outcome

        def record(handle, outcome):
            self.outcomes.append(outcome)
            report(handle, outcome)
            self.done.set()

        scheduler.report_outcome = record

    def tearDown(self):
        self.service.stop()

    def _sync(self):
        self.assertTrue(self.service.scheduler.check_alarm(self.service.alarm_source, JOB_ID))
        self.assertEqual(self.service.scheduler.probe(), 1)
        self.assertTrue(self.done.wait(5))

    def test_alarm_pushed_to_server(self):
        self.session.request.return_value = Mock(status_code=200, ok=True, text="{}")

        self._sync()

        self.assertEqual(self.outcomes, [JobOutcome.SUCCEEDED])
        self.assertEqual(self.service.runner.state, RunnerState.SUCCEEDED)
        self.assertFalse(self.service.scheduler.is_pending(JOB_ID))

        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("POST", "http://myhost.local:8123/api/states/input_datetime.next_alarm"))
        self.assertEqual(kwargs["json"], {"state": "2024-01-02 07:30:00"})
        self.assertEqual(kwargs["headers"]["x-ha-access"], "abc")

    def test_unreachable_server_is_retried(self):
        self.session.request.side_effect = requests.exceptions.ConnectionError("refused")

        self._sync()

        self.assertEqual(self.outcomes, [JobOutcome.FAILED_RETRY])
        self.assertEqual(self.service.runner.state, RunnerState.FAILED_RETRY)
        self.assertTrue(self.service.scheduler.is_pending(JOB_ID))

    def test_unchanged_alarm_not_pushed_again(self):
        self.session.request.return_value = Mock(status_code=200, ok=True, text="{}")

        self._sync()

        self.assertFalse(self.service.scheduler.check_alarm(self.service.alarm_source, JOB_ID))
        self.assertEqual(self.service.scheduler.probe(), 0)
        self.assertEqual(self.session.request.call_count, 1)


if __name__ == '__main__':
    unittest.main()
