"""
Host job scheduler delivering the sync job whenever the network is available
"""

import logging
import socket
import threading
import time
from datetime import datetime
from typing import Callable, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from .config import SyncSettings
from .host import AlarmSource
from .models import AlarmSnapshot, JobHandle, JobOutcome, JobReply

logger = logging.getLogger(__name__)

NETWORK_PROBE_JOB = "network_probe"
ALARM_WATCH_JOB = "alarm_watch"


def network_available(host: str, port: int, timeout_s: float) -> bool:
    """Check connectivity by opening a TCP connection"""
    try:
        with socket.create_connection((host, port), timeout=timeout_s):
            return True
    except OSError as e:
        logger.debug(f"Network probe to {host}:{port} failed: {e}")
        return False


class NetworkTriggerScheduler:
    """
    Runs registered jobs once any network connectivity is available.

    A registered job stays pending until it is delivered. A job answering
    DONE_RETRY becomes pending again after ``retry_delay_s``; DONE_NO_RETRY
    ends it until the next registration. There is no other periodicity.
    """

    def __init__(self, settings: Optional[SyncSettings] = None,
                 network_check: Optional[Callable[[], bool]] = None,
                 scheduler: Optional[BackgroundScheduler] = None,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize scheduler.

        Args:
            settings: Poll periods, retry delay and probe address
            network_check: Connectivity check, TCP probe if None
            scheduler: APScheduler instance driving the probes
            clock: Monotonic clock for retry delays
        """
        self.settings = settings or SyncSettings()
        self._network_check = network_check or (
            lambda: network_available(self.settings.probe_host, self.settings.probe_port,
                                      self.settings.probe_timeout_s)
        )
        self._scheduler = scheduler or BackgroundScheduler()
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: Dict[int, float] = {}
        self._running: Dict[int, JobHandle] = {}
        self._last_snapshot: Optional[AlarmSnapshot] = None
        self.runner = None

    def attach(self, runner) -> None:
        """Set the job receiving triggers (``on_trigger`` / ``on_cancel``)"""
        self.runner = runner

    def is_pending(self, job_id: int) -> bool:
        with self._lock:
            return job_id in self._pending

    def running_handle(self, job_id: int) -> Optional[JobHandle]:
        with self._lock:
            return self._running.get(job_id)

    def register_for_trigger(self, job_id: int) -> None:
        """Run the job the next time any network is available"""
        with self._lock:
            self._pending[job_id] = self._clock()
        logger.info(f"Scheduled job {job_id} to run on network availability")

    def report_outcome(self, handle: JobHandle, outcome: JobOutcome) -> None:
        logger.debug(f"Job {handle.job_id} reported {outcome.value}")
        self._apply_reply(handle, outcome.reply)

    def _apply_reply(self, handle: JobHandle, reply: JobReply) -> None:
        with self._lock:
            if self._running.get(handle.job_id) != handle:
                return
            if reply is JobReply.STILL_RUNNING:
                return
            del self._running[handle.job_id]
            if reply is JobReply.DONE_RETRY and handle.job_id not in self._pending:
                self._pending[handle.job_id] = self._clock() + self.settings.retry_delay_s
                logger.info(f"Job {handle.job_id} will be retried in {self.settings.retry_delay_s:.0f}s")

    def probe(self) -> int:
        """
        Deliver due jobs if the network is up.

        Returns:
            Number of triggers delivered
        """
        now = self._clock()
        with self._lock:
            due = [job_id for job_id, not_before in self._pending.items() if not_before <= now]
        if not due:
            return 0
        if self.runner is None:
            logger.warning("No job attached, skipping trigger delivery")
            return 0
        if not self._network_check():
            logger.debug("Network unavailable, keeping jobs pending")
            return 0

        for job_id in due:
            handle = JobHandle(job_id)
            with self._lock:
                self._pending.pop(job_id, None)
                self._running[job_id] = handle
            logger.info(f"Delivering trigger {handle.trigger_id} to job {job_id}")
            try:
                reply = self.runner.on_trigger(handle)
            except Exception as e:
                logger.error(f"Job {job_id} failed to start: {e}", exc_info=True)
                reply = JobReply.DONE_RETRY
            self._apply_reply(handle, reply)
        return len(due)

    def check_alarm(self, source: AlarmSource, job_id: int) -> bool:
        """Register the job if the next alarm changed since the last check"""
        snapshot = source.query_next_alarm()
        if snapshot == self._last_snapshot:
            return False
        logger.info(f"Next alarm changed: {snapshot}")
        self._last_snapshot = snapshot
        self.register_for_trigger(job_id)
        return True

    def watch_alarm_changes(self, source: AlarmSource, job_id: int) -> None:
        """Re-register the job whenever the next alarm changes"""
        self._scheduler.add_job(
            self.check_alarm,
            trigger='interval',
            seconds=self.settings.alarm_poll_s,
            args=(source, job_id),
            id=ALARM_WATCH_JOB,
            replace_existing=True,
            next_run_time=datetime.now(),
        )

    def start(self) -> None:
        self._scheduler.add_job(
            self.probe,
            trigger='interval',
            seconds=self.settings.network_poll_s,
            id=NETWORK_PROBE_JOB,
            replace_existing=True,
            max_instances=1,
            next_run_time=datetime.now(),
        )
        self._scheduler.start()
        logger.info("Scheduler started")

    def stop(self) -> None:
        """Stop running jobs and shut down; stopped jobs stay pending"""
        with self._lock:
            running = list(self._running.values())
            self._running.clear()
            for handle in running:
                self._pending[handle.job_id] = self._clock()
        for handle in running:
            if self.runner is not None:
                self.runner.on_cancel(handle)
            logger.info(f"Stopped job {handle.job_id}")
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
