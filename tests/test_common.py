"""
Tests for emibridge/common timestamp and logging helpers
"""

import json
import logging
from datetime import datetime, timedelta, timezone

from emibridge.common.exceptions import ConfigError, TransportError
from emibridge.common.logging_setup import (
    JsonFormatter,
    ServiceLoggerAdapter,
    configure_from_env,
    get_service_logger,
    reconfigure_loggers,
    setup_logging,
)
from emibridge.common.timestamp import format_timestamp_iso, to_utc


def test_format_timestamp_iso_milliseconds():
    ts = datetime(2024, 1, 15, 10, 30, 0, 500000, tzinfo=timezone.utc)
    assert format_timestamp_iso(ts) == "2024-01-15T10:30:00.500Z"


def test_format_timestamp_iso_converts_to_utc():
    plus_two = timezone(timedelta(hours=2))
    ts = datetime(2024, 1, 15, 12, 30, 0, 7000, tzinfo=plus_two)
    assert format_timestamp_iso(ts) == "2024-01-15T10:30:00.007Z"


def test_naive_datetime_treated_as_utc():
    assert to_utc(datetime(2024, 1, 1)).tzinfo == timezone.utc


def test_configure_from_env_overrides(monkeypatch):
    monkeypatch.setenv("EMIBRIDGE_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("EMIBRIDGE_LOG_FORMAT", "text")
    assert configure_from_env("INFO", "json") == ("DEBUG", False)


def test_configure_from_env_defaults(monkeypatch):
    monkeypatch.delenv("EMIBRIDGE_LOG_LEVEL", raising=False)
    monkeypatch.delenv("EMIBRIDGE_LOG_FORMAT", raising=False)
    assert configure_from_env("WARNING", "JSON") == ("WARNING", True)


def test_json_formatter_includes_service_and_extras():
    record = logging.LogRecord(
        name="emibridge.acquisition",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="Failed to read %s",
        args=("voltage",),
        exc_info=None,
    )
    record.service = "acquisition"
    record.data_load = "voltage"

    data = json.loads(JsonFormatter().format(record))

    assert data["level"] == "WARNING"
    assert data["service"] == "acquisition"
    assert data["message"] == "Failed to read voltage"
    assert data["data_load"] == "voltage"


def test_service_logger_name():
    adapter = get_service_logger("device")
    assert adapter.logger.name == "emibridge.device"
    assert adapter.extra["service"] == "device"
    assert adapter.logger.propagate is False


def test_error_messages_are_prefixed():
    assert str(ConfigError("bad scaler")) == "Config Error: bad scaler"
    error = TransportError("timeout", address=0x10, function="read_unsigned")
    assert str(error) == "Transport Error: timeout"
    assert error.recoverable
    assert not ConfigError("x").recoverable


def test_json_formatter_uses_record_time():
    record = logging.LogRecord("emibridge.publish", logging.INFO, __file__, 1, "sent", (), None)
    record.created = datetime(2024, 1, 15, 10, 30, 0, 250000, tzinfo=timezone.utc).timestamp()

    data = json.loads(JsonFormatter().format(record))

    assert data["timestamp"] == "2024-01-15T10:30:00.250Z"
    assert data["service"] == "unknown"


def test_adapter_merges_call_extras_with_service():
    adapter = ServiceLoggerAdapter(logging.getLogger("emibridge.test"), {"service": "test"})
    _, kwargs = adapter.process("msg", {"extra": {"data_load": "voltage"}})
    assert kwargs["extra"] == {"service": "test", "data_load": "voltage"}

    _, kwargs = adapter.process("msg", {})
    assert kwargs["extra"] == {"service": "test"}


def test_unknown_level_falls_back_to_info():
    logger = setup_logging("test.level", "CHATTY", json_format=False)
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1


def test_reconfigure_loggers_applies_level():
    logger = setup_logging("test.reconfigure", "INFO")
    reconfigure_loggers("ERROR", json_format=True)

    assert logger.level == logging.ERROR
    assert isinstance(logger.handlers[0].formatter, JsonFormatter)

    reconfigure_loggers("INFO", json_format=True)
