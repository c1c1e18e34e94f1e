"""
Builds the outbound state update for the next alarm
"""

import logging
from datetime import datetime, tzinfo
from typing import Optional, Tuple
from urllib.parse import quote

from urllib3.exceptions import LocationParseError
from urllib3.util import parse_url

from .config import HassConfig, DEFAULT_PORT, DEFAULT_ENTITY_ID
from .exceptions import ConfigError, ConfigErrorReason
from .models import AlarmSnapshot, OutboundRequest, StatePayload

logger = logging.getLogger(__name__)

STATE_PATH_TEMPLATE = "/api/states/{entity_id}"
STATE_TIME_FORMAT = "%Y-%m-%d %H:%M:00"
BEARER_PATTERN = "Bearer {}"
API_KEY_HEADER = "x-ha-access"
AUTHORIZATION_HEADER = "Authorization"
_SCHEMES = ("http://", "https://")


def normalize_host(host: str, default_port: int = DEFAULT_PORT) -> str:
    """
    Turn a user-entered host into a base URL.

    Appends the default port when the host has no port and prepends
    ``http://`` when no scheme is given.

    Args:
        host: Host as configured, e.g. ``myhost.local`` or ``https://ha:443``
        default_port: Port to use when none is present

    Returns:
        Base URL without trailing slash
    """
    host = host.strip().rstrip("/")
    scheme = ""
    remainder = host
    for candidate in _SCHEMES:
        if host.lower().startswith(candidate):
            scheme, remainder = host[:len(candidate)], host[len(candidate):]
            break

    # No port number? Add default one.
    if ":" not in remainder:
        remainder = f"{remainder}:{default_port}"

    return f"{scheme or 'http://'}{remainder}"


def validate_base_url(base_url: str) -> str:
    """
    Check that a normalized base URL has a usable host and port.

    Raises:
        ConfigError: If the URL cannot be parsed
    """
    try:
        url = parse_url(base_url)
    except LocationParseError as e:
        raise ConfigError(ConfigErrorReason.INVALID_HOST, f"Host '{base_url}' is not a valid URL: {e}") from e
    if not url.host:
        raise ConfigError(ConfigErrorReason.INVALID_HOST, f"Host '{base_url}' has no host name")
    if url.port is not None and not 0 < url.port <= 65535:
        raise ConfigError(ConfigErrorReason.INVALID_HOST, f"Host '{base_url}' has an invalid port")
    return base_url


def resolve_entity_id(entity_id: Optional[str]) -> str:
    """Configured entity id, or the default one if none is set"""
    if entity_id and entity_id.strip():
        return entity_id.strip()
    return DEFAULT_ENTITY_ID


def format_alarm_time(snapshot: AlarmSnapshot, tz: Optional[tzinfo] = None) -> str:
    """
    Format the alarm trigger time as ``yyyy-MM-dd HH:mm:00``.

    Uses the local time zone unless ``tz`` is given. Returns an empty
    string when no alarm is scheduled.
    """
    if not snapshot.has_alarm or snapshot.trigger_timestamp is None:
        return ""
    moment = datetime.fromtimestamp(snapshot.trigger_timestamp / 1000.0, tz)
    return moment.strftime(STATE_TIME_FORMAT)


def auth_header(credential: str, is_long_lived_token: bool) -> Tuple[str, str]:
    """Pick the header carrying the credential"""
    if is_long_lived_token:
        return AUTHORIZATION_HEADER, BEARER_PATTERN.format(credential)
    return API_KEY_HEADER, credential


def build(config: HassConfig, snapshot: AlarmSnapshot, tz: Optional[tzinfo] = None) -> OutboundRequest:
    """
    Build the state update request for the given alarm.

    Args:
        config: Server configuration
        snapshot: Next alarm as reported by the host
        tz: Time zone for formatting, local time if None

    Returns:
        Validated OutboundRequest

    Raises:
        ConfigError: If the host is missing or invalid
    """
    if not config.host or not config.host.strip():
        raise ConfigError(
            ConfigErrorReason.MISSING_HOST,
            "Host is missing. You need to specify the host of your Home Assistant instance."
        )

    base_url = validate_base_url(normalize_host(config.host))
    entity_id = resolve_entity_id(config.entity_id)
    state = format_alarm_time(snapshot, tz)
    logger.debug(f"Setting {entity_id} to '{state}'")

    return OutboundRequest(
        base_url=base_url,
        path=STATE_PATH_TEMPLATE.format(entity_id=quote(entity_id, safe="")),
        body=StatePayload(state=state),
        auth_header=auth_header(config.credential or "", config.credential_is_long_lived_token),
    )
