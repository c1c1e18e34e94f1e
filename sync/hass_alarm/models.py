"""
Data models and enums for the next alarm sync system
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, Tuple


class RunnerState(Enum):
    """Sync job runner state enumeration"""
    IDLE = "IDLE"
    BUILDING = "BUILDING"
    DISPATCHED = "DISPATCHED"
    SUCCEEDED = "SUCCEEDED"
    FAILED_RETRY = "FAILED_RETRY"
    FAILED_FATAL = "FAILED_FATAL"


class JobReply(Enum):
    """Answers a job can give to its scheduler"""
    DONE_NO_RETRY = "DONE_NO_RETRY"
    DONE_RETRY = "DONE_RETRY"
    STILL_RUNNING = "STILL_RUNNING"


class JobOutcome(Enum):
    """Final outcome of one sync trigger"""
    SUCCEEDED = "SUCCEEDED"
    FAILED_RETRY = "FAILED_RETRY"
    FAILED_FATAL = "FAILED_FATAL"

    @property
    def reply(self) -> JobReply:
        """Scheduler reply matching this outcome"""
        if self is JobOutcome.FAILED_RETRY:
            return JobReply.DONE_RETRY
        return JobReply.DONE_NO_RETRY

    @property
    def runner_state(self) -> RunnerState:
        return _OUTCOME_STATES[self]


_OUTCOME_STATES = {
    JobOutcome.SUCCEEDED: RunnerState.SUCCEEDED,
    JobOutcome.FAILED_RETRY: RunnerState.FAILED_RETRY,
    JobOutcome.FAILED_FATAL: RunnerState.FAILED_FATAL,
}


@dataclass(frozen=True)
class AlarmSnapshot:
    """Next alarm as reported by the host at job start"""
    has_alarm: bool = False
    trigger_timestamp: Optional[int] = None  # epoch millis

    @classmethod
    def none(cls) -> "AlarmSnapshot":
        return cls(has_alarm=False, trigger_timestamp=None)

    @classmethod
    def at(cls, trigger_timestamp: int) -> "AlarmSnapshot":
        return cls(has_alarm=True, trigger_timestamp=int(trigger_timestamp))


@dataclass(frozen=True)
class StatePayload:
    """Body of a state update"""
    state: str = ""

    def to_json(self) -> Dict[str, Any]:
        return {"state": self.state}


@dataclass(frozen=True)
class OutboundRequest:
    """A fully validated state update, ready to be sent"""
    base_url: str
    path: str
    body: StatePayload
    auth_header: Tuple[str, str]
    method: str = "POST"

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.path}"

    @property
    def headers(self) -> Dict[str, str]:
        name, value = self.auth_header
        return {name: value, "Content-Type": "application/json"}

    def to_dict(self, mask_credential: bool = True) -> Dict[str, Any]:
        """Convert to dictionary for logging and previews"""
        name, value = self.auth_header
        if mask_credential:
            value = mask_secret(value)
        return {
            "method": self.method,
            "url": self.url,
            "headers": {name: value},
            "body": self.body.to_json(),
        }


@dataclass(frozen=True)
class JobHandle:
    """Identifies one trigger delivery of a scheduled job"""
    job_id: int
    trigger_id: str = field(default_factory=lambda: uuid.uuid4().hex)


def mask_secret(value: str) -> str:
    """Hide all but the last four characters of a credential"""
    if not value:
        return value
    prefix = ""
    if value.startswith("Bearer "):
        prefix, value = "Bearer ", value[len("Bearer "):]
    if len(value) <= 4:
        return prefix + "*" * len(value)
    return prefix + "*" * (len(value) - 4) + value[-4:]
