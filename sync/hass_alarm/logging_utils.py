"""
Logging utilities for structured logging
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .models import mask_secret

_RESERVED_ATTRS = frozenset((
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'message', 'asctime',
))

_SECRET_FIELDS = ('credential', 'api_key', 'token', 'authorization')


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON"""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Extra fields passed through `extra=`
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, ensure_ascii=False, default=str)


class CredentialMaskFilter(logging.Filter):
    """Masks credentials passed as extra fields"""

    def filter(self, record: logging.LogRecord) -> bool:
        for key in _SECRET_FIELDS:
            value = getattr(record, key, None)
            if isinstance(value, str):
                setattr(record, key, mask_secret(value))
        return True


def setup_logging(log_level: str = "INFO", log_format: str = "text",
                  log_file: Optional[str] = None) -> None:
    """
    Setup structured logging for the sync system.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ("json" or "text")
        log_file: Optional log file path
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    if log_format.lower() == "json":
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(CredentialMaskFilter())
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(CredentialMaskFilter())
        root_logger.addHandler(file_handler)

    logging.getLogger('requests').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('apscheduler').setLevel(logging.WARNING)


def log_state_change(logger: logging.Logger, job_id: int, old_state: str,
                     new_state: str, **kwargs) -> None:
    """
    Log runner state changes.

    Args:
        logger: Logger instance
        job_id: Scheduled job id
        old_state: Previous state
        new_state: New state
        **kwargs: Additional context
    """
    logger.debug(
        f"Runner state change: {old_state} -> {new_state}",
        extra={
            "job_id": job_id,
            "event_type": "state_change",
            "old_state": old_state,
            "new_state": new_state,
            **kwargs
        }
    )


def log_outcome(logger: logging.Logger, job_id: int, outcome: str, **kwargs) -> None:
    """Log the outcome of one trigger"""
    level = logging.INFO if outcome == "SUCCEEDED" else logging.WARNING
    logger.log(
        level,
        f"Sync job {job_id} finished: {outcome}",
        extra={
            "job_id": job_id,
            "event_type": "outcome",
            "outcome": outcome,
            **kwargs
        }
    )


def log_error(logger: logging.Logger, job_id: int, error: Exception,
              context: Optional[Dict[str, Any]] = None) -> None:
    """
    Log errors with context.

    Args:
        logger: Logger instance
        job_id: Scheduled job id
        error: Exception that occurred
        context: Additional context
    """
    logger.error(
        f"Error occurred: {str(error)}",
        extra={
            "job_id": job_id,
            "event_type": "error",
            "error_type": type(error).__name__,
            "error_message": str(error),
            "context": context or {}
        },
        exc_info=error
    )
