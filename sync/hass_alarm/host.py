"""
Host capabilities the sync job depends on, and alarm sources implementing them
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Union, runtime_checkable

from apscheduler.triggers.cron import CronTrigger

from .models import AlarmSnapshot, JobHandle, JobOutcome

logger = logging.getLogger(__name__)

# APScheduler uses ISO 8601 weekdays: Monday=0, Sunday=6
DOW_MAP = {'mon': '0', 'tue': '1', 'wed': '2', 'thu': '3', 'fri': '4', 'sat': '5', 'sun': '6'}


@runtime_checkable
class AlarmSource(Protocol):
    """Interface for reading the next wake alarm from the host."""

    def query_next_alarm(self) -> AlarmSnapshot: ...


@runtime_checkable
class JobScheduler(Protocol):
    """Interface for the host job scheduler."""

    def register_for_trigger(self, job_id: int) -> None: ...
    def report_outcome(self, handle: JobHandle, outcome: JobOutcome) -> None: ...


class StaticAlarmSource:
    """Alarm source returning a fixed alarm, or none"""

    def __init__(self, trigger_timestamp: Optional[int] = None):
        self.trigger_timestamp = trigger_timestamp

    def query_next_alarm(self) -> AlarmSnapshot:
        if self.trigger_timestamp is None:
            return AlarmSnapshot.none()
        return AlarmSnapshot.at(self.trigger_timestamp)


def _day_of_week(dow: str) -> str:
    return ','.join([DOW_MAP[d.strip().lower()] for d in dow.split(',') if d.strip().lower() in DOW_MAP])


class ScheduleFileAlarmSource:
    """
    Alarm source backed by a JSON file of weekly alarms.

    Each entry looks like ``{"id": "...", "hour": 7, "minute": 30,
    "dow": "mon,tue,wed", "active": true}``. The snapshot holds the
    earliest upcoming fire time over all active alarms.
    """

    def __init__(self, path: Union[str, Path], timezone: Optional[str] = None,
                 clock: Optional[Callable[[Any], datetime]] = None):
        """
        Args:
            path: Alarms JSON file
            timezone: Time zone of the schedule, local if None
            clock: ``clock(tz) -> datetime``, defaults to ``datetime.now``
        """
        self.path = Path(path)
        self.timezone = timezone
        self._clock = clock or datetime.now

    def load_alarms(self) -> List[Dict[str, Any]]:
        """Load alarms, an unreadable file counts as no alarms"""
        if not self.path.exists():
            return []
        try:
            with open(self.path, 'r') as f:
                alarms = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error loading alarms from {self.path}: {e}")
            return []
        if not isinstance(alarms, list):
            logger.error(f"Alarms file {self.path} does not contain a list")
            return []
        return alarms

    def _next_fire_time(self, alarm: Dict[str, Any]) -> Optional[datetime]:
        alarm_id = alarm.get('id', 'unknown')
        day_of_week = _day_of_week(str(alarm.get('dow', '')))
        if not day_of_week:
            logger.warning(f"Skipping alarm {alarm_id}: no valid days of week specified (dow='{alarm.get('dow', '')}')")
            return None
        try:
            trigger = CronTrigger(
                hour=int(alarm.get('hour', 0)),
                minute=int(alarm.get('minute', 0)),
                day_of_week=day_of_week,
                timezone=self.timezone,
            )
        except (TypeError, ValueError, KeyError) as e:
            # Unknown time zone names raise KeyError subclasses.
            logger.warning(f"Skipping alarm {alarm_id}: {e!r}")
            return None
        now = self._clock(trigger.timezone)
        return trigger.get_next_fire_time(None, now)

    def query_next_alarm(self) -> AlarmSnapshot:
        upcoming = []
        for alarm in self.load_alarms():
            if not isinstance(alarm, dict) or not alarm.get('active', True):
                continue
            fire_time = self._next_fire_time(alarm)
            if fire_time is not None:
                upcoming.append(fire_time)

        if not upcoming:
            return AlarmSnapshot.none()
        return AlarmSnapshot.at(int(min(upcoming).timestamp() * 1000))
