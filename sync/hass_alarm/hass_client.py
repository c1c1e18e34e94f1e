"""
HTTP client for the Home Assistant states API
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, CancelledError
from typing import Callable, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import SyncSettings
from .exceptions import ConfigError, ConfigErrorReason, TransportError
from .models import OutboundRequest

logger = logging.getLogger(__name__)

USER_AGENT = "HassAlarm-Sync/1.0"
_BODY_LOG_LIMIT = 200

_SESSION: Optional[requests.Session] = None
_SESSION_LOCK = threading.Lock()


def _http_session() -> requests.Session:
    global _SESSION
    if _SESSION is None:
        with _SESSION_LOCK:
            if _SESSION is None:
                session = requests.Session()
                # Retries are the scheduler's job, one attempt per trigger here.
                retry_cfg = Retry(total=0, raise_on_status=False)
                adapter = HTTPAdapter(pool_connections=2, pool_maxsize=4, max_retries=retry_cfg)
                session.mount("http://", adapter)
                session.mount("https://", adapter)
                session.headers.update({"User-Agent": USER_AGENT})
                _SESSION = session
    return _SESSION


class PendingCall:
    """Handle on a dispatched state update that can be cancelled"""

    def __init__(self, future: "Future[requests.Response]", request: OutboundRequest):
        self.request = request
        self._future = future
        self._cancel_lock = threading.Lock()
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> bool:
        """
        Cancel the call.

        Best effort: a request already on the wire may still reach the
        server, its result is ignored.

        Returns:
            True on the first cancellation, False if already cancelled
        """
        with self._cancel_lock:
            if self._cancelled:
                return False
            self._cancelled = True
        self._future.cancel()
        logger.debug(f"Cancelled call to {self.request.url}")
        return True

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: Optional[float] = None) -> requests.Response:
        """
        Wait for the response.

        Raises:
            TransportError: If no response was received
            CancelledError: If the call was cancelled before it ran
        """
        return self._future.result(timeout=timeout)

    def add_done_callback(self, fn: Callable[["PendingCall"], None]) -> None:
        """Call ``fn(self)`` when the call completes, on the completing thread"""
        self._future.add_done_callback(lambda _future: fn(self))


class HassClient:
    """Sends state updates to Home Assistant"""

    def __init__(self, settings: Optional[SyncSettings] = None,
                 session: Optional[requests.Session] = None,
                 executor: Optional[ThreadPoolExecutor] = None):
        """
        Initialize client.

        Args:
            settings: Timeouts, defaults used if None
            session: HTTP session, shared pooled session if None
            executor: Worker pool running the blocking calls
        """
        self.settings = settings or SyncSettings()
        self._session = session
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="hass-alarm-http")

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = _http_session()
        return self._session

    def send(self, request: OutboundRequest) -> requests.Response:
        """
        Send the request and wait for any HTTP response.

        Every response counts, whatever its status. The body is read
        for logging only and may be unreadable.

        Raises:
            TransportError: If the server could not be reached
            ConfigError: If the URL is rejected by the HTTP layer
        """
        timeout = (self.settings.connect_timeout_s, self.settings.read_timeout_s)
        logger.debug(f"{request.method} {request.url} with payload {request.body.to_json()}")

        try:
            response = self.session.request(
                request.method,
                request.url,
                json=request.body.to_json(),
                headers=request.headers,
                timeout=timeout,
                stream=True,
            )
        except (requests.exceptions.InvalidURL, requests.exceptions.MissingSchema,
                requests.exceptions.InvalidSchema) as e:
            logger.error(f"Invalid server URL {request.url}: {e}")
            raise ConfigError(ConfigErrorReason.INVALID_HOST, f"Invalid server URL {request.url}: {e}") from e
        except requests.exceptions.Timeout as e:
            logger.warning(f"Timeout connecting to {request.base_url}: {e}")
            raise TransportError(f"Timeout connecting to {request.base_url}", e) from e
        except requests.exceptions.ConnectionError as e:
            logger.warning(f"Connection failed to {request.base_url}: {e}")
            raise TransportError(f"Connection failed to {request.base_url}", e) from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Request to {request.base_url} failed: {e}")
            raise TransportError(f"Request to {request.base_url} failed", e) from e

        try:
            body = response.text
            if response.ok:
                logger.info(f"State update accepted ({response.status_code}): {body[:_BODY_LOG_LIMIT]}")
            else:
                logger.warning(f"State update rejected ({response.status_code}): {body[:_BODY_LOG_LIMIT]}")
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"State update returned {response.status_code} with unreadable body: {e}")
        finally:
            response.close()

        return response

    def dispatch(self, request: OutboundRequest) -> PendingCall:
        """Submit the request to a worker and return immediately"""
        future = self._executor.submit(self.send, request)
        return PendingCall(future, request)

    def close(self) -> None:
        self._executor.shutdown(wait=False)
        if self._session is not None and self._session is not _SESSION:
            self._session.close()


__all__ = ("HassClient", "PendingCall", "CancelledError")
