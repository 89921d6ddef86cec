"""
Structured Logging Setup

Every module logs through a `ServiceLoggerAdapter` named after its
service ("device.modbus", "acquisition", "publish"). Lines go to stdout
either as one JSON object per record or as plain text for a terminal.

JSON line:
    {"timestamp": "2024-01-15T10:30:00.500Z", "level": "WARNING",
     "service": "acquisition", "logger": "emibridge.acquisition",
     "message": "Failed to read voltage@0x006C: ...", "data_load": "voltage"}
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from .timestamp import format_timestamp_iso

LOGGER_PREFIX = "emibridge"
TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
TEXT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord carries; anything else came in through `extra`
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime", "service", "taskName"}


class JsonFormatter(logging.Formatter):
    """One JSON object per record, extras flattened into the top level"""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": format_timestamp_iso(created),
            "level": record.levelname,
            "service": getattr(record, "service", "unknown"),
            "logger": record.name,
            "message": record.getMessage(),
        }

        entry.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS
        )

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """
    Stamps the service name on every record.

    Per-call `extra` fields are merged over the adapter's own context
    instead of replacing it.
    """

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def _build_handler(level: int, json_format: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATE_FORMAT))
    return handler


def setup_logging(
    service_name: str,
    log_level: str = "INFO",
    json_format: bool = True,
) -> logging.Logger:
    """
    Configure the `emibridge.<service_name>` logger.

    Calling it again for the same service replaces the handler, which is
    how reconfigure_loggers() switches level or format at startup.

    Args:
        service_name: Service part of the logger name (e.g. "publish")
        log_level: Level name; unknown names fall back to INFO
        json_format: JSON lines when True, plain text otherwise

    Returns:
        The configured logger
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logger = logging.getLogger(f"{LOGGER_PREFIX}.{service_name}")
    logger.setLevel(level)
    logger.handlers = [_build_handler(level, json_format)]
    logger.propagate = False
    return logger


def configure_from_env(
    default_level: str = "INFO",
    default_format: str = "json",
) -> tuple[str, bool]:
    """Resolve level and format, letting environment variables win"""
    log_level = os.environ.get("EMIBRIDGE_LOG_LEVEL", default_level)
    log_format = os.environ.get("EMIBRIDGE_LOG_FORMAT", default_format)
    return log_level, log_format.lower() == "json"


def get_service_logger(service_name: str) -> ServiceLoggerAdapter:
    """Adapter for `emibridge.<service_name>`, configured from the environment"""
    log_level, json_format = configure_from_env()
    logger = setup_logging(service_name, log_level, json_format)
    return ServiceLoggerAdapter(logger, {"service": service_name})


def reconfigure_loggers(log_level: str, json_format: bool) -> None:
    """Apply a new level/format to every emibridge logger created so far"""
    prefix = f"{LOGGER_PREFIX}."
    for name in list(logging.Logger.manager.loggerDict):
        if name.startswith(prefix):
            setup_logging(name[len(prefix):], log_level, json_format)


def log_data_load_read(
    logger: logging.Logger | logging.LoggerAdapter,
    load_name: str,
    address: int,
    value: Any,
    success: bool = True,
    error: str | None = None,
) -> None:
    """Log a data load read operation"""
    if success:
        logger.debug(
            f"Read {load_name}@0x{address:04X} = {value}",
            extra={"data_load": load_name, "address": address, "value": value},
        )
    else:
        logger.warning(
            f"Failed to read {load_name}@0x{address:04X}: {error}",
            extra={"data_load": load_name, "address": address, "error": error},
        )


def log_publish(
    logger: logging.Logger | logging.LoggerAdapter,
    load_name: str,
    topic: str,
    payload: str,
    success: bool = True,
    error: str | None = None,
) -> None:
    """Log a broker publish operation"""
    if success:
        logger.debug(
            f"Published {load_name} -> {topic}: {payload}",
            extra={"data_load": load_name, "topic": topic},
        )
    else:
        logger.warning(
            f"Failed to publish {load_name} -> {topic}: {error}",
            extra={"data_load": load_name, "topic": topic, "error": error},
        )
