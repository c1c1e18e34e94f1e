"""
Exceptions raised by the next alarm sync system
"""

from enum import Enum
from typing import Optional


class HassAlarmError(Exception):
    """Base class for all sync errors"""


class ConfigErrorReason(Enum):
    """Why a configuration could not produce a request"""
    MISSING_HOST = "MISSING_HOST"
    INVALID_HOST = "INVALID_HOST"


class ConfigError(HassAlarmError):
    """
    The configuration cannot produce a request.

    Fatal for the current trigger: retrying will not help until the
    configuration is fixed.
    """

    def __init__(self, reason: ConfigErrorReason, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or reason.value)


class TransportError(HassAlarmError):
    """No response could be obtained from the server (DNS, timeout, refused)"""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)
