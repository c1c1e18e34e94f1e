"""
Wires configuration, client, runner and scheduler into a running service
"""

import logging
from typing import Callable, Optional

from pydantic import ValidationError

from .config import HassConfig, SyncSettings
from .hass_client import HassClient
from .host import AlarmSource, ScheduleFileAlarmSource
from .runner import SyncJobRunner
from .scheduler import NetworkTriggerScheduler

logger = logging.getLogger(__name__)

JOB_ID = 0


def _env_config() -> HassConfig:
    try:
        return HassConfig.from_env()
    except ValidationError as e:
        # Empty config makes the builder report the missing host.
        logger.error(f"Invalid Home Assistant configuration: {e}")
        return HassConfig()


class SyncService:
    """Keeps the Home Assistant next alarm entity up to date"""

    def __init__(self, settings: Optional[SyncSettings] = None,
                 config_provider: Optional[Callable[[], HassConfig]] = None,
                 alarm_source: Optional[AlarmSource] = None,
                 client: Optional[HassClient] = None,
                 scheduler: Optional[NetworkTriggerScheduler] = None):
        self.settings = settings or SyncSettings.from_env()
        self.alarm_source = alarm_source or ScheduleFileAlarmSource(
            self.settings.alarms_file, timezone=self.settings.timezone
        )
        self.client = client or HassClient(self.settings)
        self.scheduler = scheduler or NetworkTriggerScheduler(self.settings)
        self.runner = SyncJobRunner(
            self.alarm_source,
            config_provider or _env_config,
            self.client,
            self.scheduler,
        )
        self.scheduler.attach(self.runner)

    def start(self) -> None:
        logger.info(f"Starting next alarm sync (alarms file: {self.settings.alarms_file})")
        self.scheduler.watch_alarm_changes(self.alarm_source, JOB_ID)
        self.scheduler.start()

    def sync_now(self) -> None:
        """Ask for an update on the next network availability"""
        self.scheduler.register_for_trigger(JOB_ID)

    def stop(self) -> None:
        self.scheduler.stop()
        self.client.close()
        logger.info("Next alarm sync stopped")
