"""
Structured logging configuration for the geofence filter.

Provides JSON-formatted logging with file rotation for production environments
and human-readable console logging for development.

Loggers:
- geofence: Admission decisions (classification, allowlist, proximity verdict)
- providers: Geolocation provider calls
- cache: Proximity cache backends
- api: Host application, middleware, CLI
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
import json
from datetime import datetime, timezone


LOGGER_NAMES = ["geofence", "providers", "cache", "api"]


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs logs as JSON for structured logging.

    Each log record includes:
    - timestamp: ISO 8601 format
    - level: Log level (INFO, ERROR, etc.)
    - logger: Logger name
    - message: Log message
    - module, function, line: Call site
    - Additional fields: exception info, extra fields
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON string."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # logger.debug("msg", extra={"extra_fields": {...}})
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable formatter for console output in development.

    Format: [TIMESTAMP] LEVEL - LOGGER - MESSAGE key=value ...
    Example: [2025-12-29 10:30:45] DEBUG - geofence.geofence - geofence remote_addr=203.0.113.9
    """

    def __init__(self):
        super().__init__(
            fmt="[%(asctime)s] %(levelname)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        fields = getattr(record, "extra_fields", None)
        if fields:
            message += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        return message


def _get_log_level() -> int:
    """
    Get log level from environment variable.

    Environment Variables:
        GEOFENCE_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR, CRITICAL (default INFO)
    """
    level_str = os.environ.get("GEOFENCE_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def _get_log_dir() -> Path:
    """
    Get log directory path from environment variable or use default.

    Environment Variables:
        GEOFENCE_LOG_DIR: Custom log directory path (default ./logs)
    """
    log_dir = Path(os.environ.get("GEOFENCE_LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def _is_production() -> bool:
    """
    Check if running in production environment.

    Environment Variables:
        GEOFENCE_ENV: production, development, test (default development)
    """
    env = os.environ.get("GEOFENCE_ENV", "development").lower()
    return env == "production"


def _build_handler(logger_name: str, log_level: int) -> logging.Handler:
    """JSON to a rotating per-logger file in production, console otherwise."""
    if _is_production():
        handler = logging.handlers.RotatingFileHandler(
            _get_log_dir() / f"{logger_name}.log",
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8"
        )
        handler.setFormatter(JSONFormatter())
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(ConsoleFormatter())
    handler.setLevel(log_level)
    return handler


_configured = False


def configure_logging() -> None:
    """
    (Re)configure every ``geofence.*`` logger from the environment.

    Loggers do not propagate to the root logger, so host applications
    keep their own logging setup.
    """
    global _configured

    log_level = _get_log_level()
    for logger_name in LOGGER_NAMES:
        logger = logging.getLogger(f"geofence.{logger_name}")
        logger.setLevel(log_level)
        logger.propagate = False
        logger.handlers.clear()
        logger.addHandler(_build_handler(logger_name, log_level))

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger by name.

    Args:
        name: Logger name (geofence, providers, cache, api)

    Raises:
        ValueError: If logger name is not recognized
    """
    if name not in LOGGER_NAMES:
        raise ValueError(
            f"Unknown logger name: {name}. "
            f"Valid names: {', '.join(LOGGER_NAMES)}"
        )
    if not _configured:
        configure_logging()
    return logging.getLogger(f"geofence.{name}")


# Called on application and CLI startup to pick up environment changes
init_logging = configure_logging
