"""
Common Utilities

Shared modules used across all services:
- config.py - Configuration dataclasses and YAML loading
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
- timestamp.py - ISO-8601 timestamp formatting
"""

from .config import (
    BridgeConfig,
    DataLoadConfig,
    DataLoadType,
    LoggingSettings,
    ModbusConfig,
    MqttConfig,
    Parity,
    PayloadFormat,
    load_bridge_config,
    load_config_file,
    parse_address,
)
from .exceptions import (
    EmiBridgeError,
    ConfigError,
    TransportError,
    PublishError,
    BrokerConnectionError,
)
from .logging_setup import (
    setup_logging,
    get_service_logger,
    reconfigure_loggers,
    log_data_load_read,
    log_publish,
)
from .timestamp import format_timestamp_iso

__all__ = [
    # Config
    "BridgeConfig",
    "DataLoadConfig",
    "DataLoadType",
    "LoggingSettings",
    "ModbusConfig",
    "MqttConfig",
    "Parity",
    "PayloadFormat",
    "load_bridge_config",
    "load_config_file",
    "parse_address",
    # Exceptions
    "EmiBridgeError",
    "ConfigError",
    "TransportError",
    "PublishError",
    "BrokerConnectionError",
    # Logging
    "setup_logging",
    "get_service_logger",
    "reconfigure_loggers",
    "log_data_load_read",
    "log_publish",
    # Timestamps
    "format_timestamp_iso",
]
