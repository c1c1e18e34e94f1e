"""
Sync job runner: pushes the next alarm to Home Assistant once per trigger
"""

import logging
import threading
from datetime import tzinfo
from functools import partial
from typing import Callable, Optional, Union

from pydantic import ValidationError

from .config import HassConfig
from .exceptions import ConfigError, TransportError
from .hass_client import HassClient, PendingCall, CancelledError
from .host import AlarmSource, JobScheduler
from .models import JobHandle, JobOutcome, JobReply, RunnerState
from .request_builder import build
from .logging_utils import log_state_change, log_outcome, log_error

logger = logging.getLogger(__name__)

ConfigProvider = Callable[[], HassConfig]


class SyncJobRunner:
    """
    Cancellable unit of work driven by a host job scheduler.

    Each trigger reads the next alarm, builds a state update and
    dispatches it without blocking. At most one call is in flight: a new
    trigger cancels the previous call first. Responses are reported to
    the scheduler through ``report_outcome``.
    """

    def __init__(self, alarm_source: AlarmSource,
                 config: Union[HassConfig, ConfigProvider],
                 client: HassClient,
                 scheduler: JobScheduler,
                 tz: Optional[tzinfo] = None):
        """
        Initialize runner.

        Args:
            alarm_source: Host query for the next alarm
            config: Configuration, or a callable re-read on every trigger
            client: Dispatches requests
            scheduler: Receives outcomes of dispatched calls
            tz: Time zone for formatting the alarm, local if None
        """
        self.alarm_source = alarm_source
        self.client = client
        self.scheduler = scheduler
        self.tz = tz
        if isinstance(config, HassConfig):
            self._config_provider: ConfigProvider = lambda: config
        else:
            self._config_provider = config

        # Guards the in-flight call. Re-entrant since a call that is
        # already finished runs its callback inside on_trigger.
        self._lock = threading.RLock()
        self._in_flight: Optional[PendingCall] = None
        self._state = RunnerState.IDLE
        self.last_outcome: Optional[JobOutcome] = None

    @property
    def state(self) -> RunnerState:
        return self._state

    @property
    def in_flight(self) -> Optional[PendingCall]:
        return self._in_flight

    def _set_state(self, handle: JobHandle, new_state: RunnerState) -> None:
        old_state = self._state
        self._state = new_state
        log_state_change(logger, handle.job_id, old_state.value, new_state.value,
                         trigger_id=handle.trigger_id)

    def _cancel_in_flight(self, handle: JobHandle) -> None:
        if self._in_flight is not None:
            self._in_flight.cancel()
            logger.info(f"Cancelled in-flight update for job {handle.job_id}")
            self._in_flight = None

    def on_trigger(self, handle: JobHandle) -> JobReply:
        """
        Start the job for a trigger.

        Returns:
            STILL_RUNNING once the update is dispatched, DONE_NO_RETRY
            if the configuration cannot produce a request, DONE_RETRY if
            the alarm or configuration could not be read
        """
        with self._lock:
            self._cancel_in_flight(handle)
            self._set_state(handle, RunnerState.BUILDING)

            try:
                snapshot = self.alarm_source.query_next_alarm()
                config = self._config_provider()
            except ValidationError as e:
                logger.error(f"Invalid configuration: {e}")
                self._finish(handle, JobOutcome.FAILED_FATAL, reason="INVALID_CONFIG")
                return JobReply.DONE_NO_RETRY
            except Exception as e:
                log_error(logger, handle.job_id, e, {"phase": "building"})
                self._finish(handle, JobOutcome.FAILED_RETRY, error=str(e))
                return JobReply.DONE_RETRY

            try:
                request = build(config, snapshot, self.tz)
            except ConfigError as e:
                logger.error(f"Failed to create request: {e}")
                self._finish(handle, JobOutcome.FAILED_FATAL, reason=e.reason.value)
                return JobReply.DONE_NO_RETRY

            call = self.client.dispatch(request)
            self._in_flight = call
            self._set_state(handle, RunnerState.DISPATCHED)
            call.add_done_callback(partial(self._on_call_complete, handle))
            return JobReply.STILL_RUNNING

    def on_cancel(self, handle: JobHandle) -> bool:
        """Cancel any in-flight call. Always succeeds."""
        with self._lock:
            self._cancel_in_flight(handle)
            if self._state is RunnerState.DISPATCHED:
                self._set_state(handle, RunnerState.IDLE)
        return True

    def _finish(self, handle: JobHandle, outcome: JobOutcome, **context) -> None:
        self._set_state(handle, outcome.runner_state)
        self.last_outcome = outcome
        log_outcome(logger, handle.job_id, outcome.value, trigger_id=handle.trigger_id, **context)

    def _on_call_complete(self, handle: JobHandle, call: PendingCall) -> None:
        """Runs on whichever thread completed the call"""
        with self._lock:
            if call is not self._in_flight or call.cancelled:
                logger.debug(f"Dropping result of superseded call to {call.request.url}")
                return
            self._in_flight = None

            try:
                response = call.result()
            except CancelledError:
                logger.debug(f"Call to {call.request.url} was cancelled before it ran")
                return
            except ConfigError as e:
                logger.error(f"Server URL rejected: {e}")
                outcome = JobOutcome.FAILED_FATAL
                self._finish(handle, outcome, reason=e.reason.value)
            except TransportError as e:
                logger.error(f"State update failed: {e}")
                outcome = JobOutcome.FAILED_RETRY
                self._finish(handle, outcome, error=str(e))
            except Exception as e:
                log_error(logger, handle.job_id, e, {"url": call.request.url})
                outcome = JobOutcome.FAILED_RETRY
                self._finish(handle, outcome, error=str(e))
            else:
                # Any response means the server is reachable; retrying would not help.
                outcome = JobOutcome.SUCCEEDED
                self._finish(handle, outcome, status_code=response.status_code)

        self.scheduler.report_outcome(handle, outcome)
