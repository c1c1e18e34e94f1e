"""
Configuration models for the next alarm sync system
"""

from pydantic import BaseModel, Field
from typing import Any, Mapping, Optional
import os
import logging
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8123
DEFAULT_ENTITY_ID = "input_datetime.next_alarm"

# Keys in the settings store written by the configuration screens
KEY_PREFS_HOST = "host"
KEY_PREFS_API_KEY = "api_key"
KEY_PREFS_IS_TOKEN = "is_token"
KEY_PREFS_ENTITY_ID = "entity_id"

BASE_DIR = os.getenv("BASE_DIR", os.path.expanduser("~/.hass_alarm"))


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("1", "true", "yes", "on")


class HassConfig(BaseModel):
    """Home Assistant server and entity to push the next alarm to"""
    host: str = Field(default="", description="Server host, optionally with scheme and port")
    credential: str = Field(default="", description="API key or long-lived access token (may be empty)")
    credential_is_long_lived_token: bool = Field(default=False, description="Send credential as a Bearer token")
    entity_id: str = Field(default="", description="Entity to update, empty means the default entity")

    @classmethod
    def from_store(cls, store: Mapping[str, Any]) -> "HassConfig":
        """Create HassConfig from a key-value settings store"""
        return cls(
            host=store.get(KEY_PREFS_HOST) or "",
            credential=store.get(KEY_PREFS_API_KEY) or "",
            credential_is_long_lived_token=_as_bool(store.get(KEY_PREFS_IS_TOKEN, False)),
            entity_id=store.get(KEY_PREFS_ENTITY_ID) or "",
        )

    @classmethod
    def from_env(cls) -> "HassConfig":
        """Create HassConfig from environment variables"""
        return cls(
            host=os.getenv("HASS_HOST", ""),
            credential=os.getenv("HASS_API_KEY", ""),
            credential_is_long_lived_token=os.getenv("HASS_IS_TOKEN", "false").lower() == "true",
            entity_id=os.getenv("HASS_ENTITY_ID", ""),
        )


class SyncSettings(BaseModel):
    """Tunables for dispatching and scheduling the sync job"""
    connect_timeout_s: float = Field(default=10.0, ge=0.5, le=120.0, description="HTTP connect timeout")
    read_timeout_s: float = Field(default=10.0, ge=0.5, le=120.0, description="HTTP read timeout")
    network_poll_s: float = Field(default=15.0, ge=1.0, le=3600.0, description="Network availability probe period")
    retry_delay_s: float = Field(default=30.0, ge=0.0, le=3600.0, description="Delay before a failed job may run again")
    alarm_poll_s: float = Field(default=60.0, ge=1.0, le=3600.0, description="Next alarm change check period")
    probe_host: str = Field(default="1.1.1.1", description="Address used to detect network connectivity")
    probe_port: int = Field(default=53, ge=1, le=65535, description="Port used to detect network connectivity")
    probe_timeout_s: float = Field(default=2.0, ge=0.1, le=30.0, description="Connectivity probe timeout")
    alarms_file: str = Field(
        default_factory=lambda: os.path.join(BASE_DIR, "alarms.json"),
        description="JSON file with the weekly alarm schedule"
    )
    timezone: Optional[str] = Field(default=None, description="Time zone of the alarm schedule, local if unset")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format (json|text)")

    @classmethod
    def from_env(cls) -> "SyncSettings":
        """Create settings from environment variables"""
        defaults = cls()
        return cls(
            connect_timeout_s=float(os.getenv("HASS_ALARM_CONNECT_TIMEOUT_S", defaults.connect_timeout_s)),
            read_timeout_s=float(os.getenv("HASS_ALARM_READ_TIMEOUT_S", defaults.read_timeout_s)),
            network_poll_s=float(os.getenv("HASS_ALARM_NETWORK_POLL_S", defaults.network_poll_s)),
            retry_delay_s=float(os.getenv("HASS_ALARM_RETRY_DELAY_S", defaults.retry_delay_s)),
            alarm_poll_s=float(os.getenv("HASS_ALARM_ALARM_POLL_S", defaults.alarm_poll_s)),
            probe_host=os.getenv("HASS_ALARM_PROBE_HOST", defaults.probe_host),
            probe_port=int(os.getenv("HASS_ALARM_PROBE_PORT", defaults.probe_port)),
            probe_timeout_s=float(os.getenv("HASS_ALARM_PROBE_TIMEOUT_S", defaults.probe_timeout_s)),
            alarms_file=os.getenv("HASS_ALARM_ALARMS_FILE", defaults.alarms_file),
            timezone=os.getenv("HASS_ALARM_TIMEZONE") or None,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )
