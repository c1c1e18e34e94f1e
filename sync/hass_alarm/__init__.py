"""
Hass Alarm Sync

Push the device's next wake alarm to a Home Assistant entity.
"""

__version__ = "1.0.0"
__author__ = "Hass Alarm"

from .config import HassConfig, SyncSettings, DEFAULT_PORT, DEFAULT_ENTITY_ID
from .exceptions import ConfigError, ConfigErrorReason, TransportError
from .models import AlarmSnapshot, JobHandle, JobOutcome, JobReply, OutboundRequest, RunnerState, StatePayload
from .request_builder import build
from .runner import SyncJobRunner

__all__ = [
    "HassConfig",
    "SyncSettings",
    "DEFAULT_PORT",
    "DEFAULT_ENTITY_ID",
    "ConfigError",
    "ConfigErrorReason",
    "TransportError",
    "AlarmSnapshot",
    "JobHandle",
    "JobOutcome",
    "JobReply",
    "OutboundRequest",
    "RunnerState",
    "StatePayload",
    "build",
    "SyncJobRunner",
]
