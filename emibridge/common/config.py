"""
Configuration Dataclasses

Type-safe configuration structures for the bridge.
Loaded once at startup from a YAML file; immutable afterwards.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError
from .logging_setup import get_service_logger

logger = get_service_logger("config")

ADDRESS_PATTERN = re.compile(r"^(0[xX])?[0-9A-Fa-f]+$")
MAX_ADDRESS = 0xFFFF
SCALER_MIN = -128
SCALER_MAX = 127
CLOCK_DEFAULT_ADDRESS = 0x0001


class DataLoadType(str, Enum):
    """Register value types understood by the decoder"""
    FLOAT16 = "Float16"
    FLOAT32 = "Float32"
    UNSIGNED = "Unsigned"
    STRING = "String"
    CLOCK = "Clock"
    UNSET = "Unset"

    @classmethod
    def parse(cls, value: Any) -> "DataLoadType":
        """Case-insensitive lookup; anything unknown becomes UNSET"""
        if isinstance(value, DataLoadType):
            return value
        if not isinstance(value, str):
            return cls.UNSET
        key = value.strip().lower()
        return _TYPE_NAMES.get(key, cls.UNSET)

    @property
    def is_numeric(self) -> bool:
        return self in (DataLoadType.FLOAT16, DataLoadType.FLOAT32, DataLoadType.UNSIGNED)


_TYPE_NAMES: dict[str, DataLoadType] = {t.value.lower(): t for t in DataLoadType}
# Names used by the earlier device tooling
_TYPE_NAMES["float"] = DataLoadType.FLOAT16
_TYPE_NAMES["double"] = DataLoadType.FLOAT32


class Parity(str, Enum):
    """Serial parity, values are the pymodbus single-letter codes"""
    NONE = "N"
    EVEN = "E"
    ODD = "O"

    @classmethod
    def parse(cls, value: Any) -> "Parity":
        if isinstance(value, Parity):
            return value
        text = str(value).strip().lower()
        for parity in cls:
            if text in (parity.value.lower(), parity.name.lower()):
                return parity
        raise ValueError(f"Invalid parity: {value!r} (allowed: None, Even, Odd)")


class PayloadFormat(str, Enum):
    """How a decoded value is rendered onto the topic"""
    PLAIN = "plain"
    JSON = "json"


def parse_address(value: Any) -> int:
    """
    Resolve a register address to an integer.

    Accepts hexadecimal strings with or without a 0x prefix ("1A",
    "0x1A"). Bare YAML numbers are rejected: `address: 10` has already
    been read as decimal (or octal for `0010`) before it gets here.

    Raises:
        ConfigError: If the value is not a hex literal within 0..0xFFFF
    """
    if not isinstance(value, str):
        raise ConfigError(
            f"Address must be a quoted hexadecimal string, got {type(value).__name__} {value!r}"
        )

    if ADDRESS_PATTERN.match(value.strip()):
        address = int(value.strip(), 16)
    else:
        raise ConfigError(f"Address must be a valid hexadecimal number, got {value!r}")

    if not 0 <= address <= MAX_ADDRESS:
        raise ConfigError(f"Address 0x{address:X} out of range (0x0000-0xFFFF)")

    return address


@dataclass(frozen=True)
class DataLoadConfig:
    """One configured measurement to be polled and published"""
    name: str
    address: int
    type: DataLoadType
    topic: str
    polling_interval_s: int
    unit: str = ""
    scaler: int = 0
    string_length: int = 0


@dataclass
class ModbusConfig:
    """Serial RTU connection to the field device"""
    device: str
    baud_rate: int = 9600
    parity: Parity = Parity.NONE
    data_bits: int = 8
    stop_bits: int = 1
    slave_id: int = 1
    debug: bool = False
    response_timeout_ms: int = 1000

    @property
    def response_timeout_s(self) -> float:
        return self.response_timeout_ms / 1000


@dataclass
class MqttConfig:
    """Broker connection and publish options"""
    host: str = "localhost"
    port: int = 1883
    username: str = ""
    password: str = ""
    client_id: str = ""
    qos: int = 0
    retain: bool = False
    payload_format: PayloadFormat = PayloadFormat.PLAIN
    # Delays (seconds) between connect attempts; empty = fail on first error
    connect_retry_backoff: list[float] = field(default_factory=list)


@dataclass
class LoggingSettings:
    """Log output configuration"""
    level: str = "INFO"
    format: str = "json"


@dataclass
class BridgeConfig:
    """Complete bridge configuration"""
    modbus: ModbusConfig
    mqtt: MqttConfig = field(default_factory=MqttConfig)
    data_loads: list[DataLoadConfig] = field(default_factory=list)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_range(
    errors: list[str],
    section: str,
    key: str,
    value: Any,
    low: int,
    high: int,
) -> None:
    if not _is_int(value):
        errors.append(f"{section}.{key} must be an integer, got {value!r}")
    elif not low <= value <= high:
        errors.append(f"{section}.{key} must be between {low} and {high}, got {value}")


def _load_modbus(data: dict[str, Any], errors: list[str]) -> ModbusConfig:
    device = data.get("device") or ""
    if not isinstance(device, str) or not device:
        errors.append("modbus.device is required")
        device = ""
    elif len(device) > 255:
        errors.append("modbus.device must not exceed 255 characters")

    try:
        parity = Parity.parse(data.get("parity", "N"))
    except ValueError as e:
        errors.append(f"modbus.{e}")
        parity = Parity.NONE

    config = ModbusConfig(
        device=device,
        baud_rate=data.get("baud_rate", 9600),
        parity=parity,
        data_bits=data.get("data_bits", 8),
        stop_bits=data.get("stop_bits", 1),
        slave_id=data.get("slave_id", 1),
        debug=bool(data.get("debug", False)),
        response_timeout_ms=data.get("response_timeout_ms", 0),
    )

    _check_range(errors, "modbus", "baud_rate", config.baud_rate, 300, 115200)
    _check_range(errors, "modbus", "data_bits", config.data_bits, 5, 8)
    _check_range(errors, "modbus", "stop_bits", config.stop_bits, 1, 2)
    _check_range(errors, "modbus", "slave_id", config.slave_id, 1, 255)
    _check_range(errors, "modbus", "response_timeout_ms", config.response_timeout_ms, 0, 60000)

    # Zero means "use the default"
    if config.response_timeout_ms == 0:
        config.response_timeout_ms = 1000

    return config


def _load_mqtt(data: dict[str, Any], errors: list[str]) -> MqttConfig:
    try:
        payload_format = PayloadFormat(str(data.get("payload_format", "plain")).lower())
    except ValueError:
        errors.append(f"mqtt.payload_format must be 'plain' or 'json', got {data.get('payload_format')!r}")
        payload_format = PayloadFormat.PLAIN

    backoff = data.get("connect_retry_backoff", []) or []
    if not isinstance(backoff, list) or not all(
        isinstance(d, (int, float)) and not isinstance(d, bool) and d >= 0 for d in backoff
    ):
        errors.append("mqtt.connect_retry_backoff must be a list of non-negative seconds")
        backoff = []

    config = MqttConfig(
        host=data.get("host", "localhost"),
        port=data.get("port", 1883),
        username=data.get("username", "") or "",
        password=data.get("password", "") or "",
        client_id=data.get("client_id", "") or "",
        qos=data.get("qos", 0),
        retain=bool(data.get("retain", False)),
        payload_format=payload_format,
        connect_retry_backoff=[float(d) for d in backoff],
    )

    if not isinstance(config.host, str) or not config.host:
        errors.append("mqtt.host is required")
    _check_range(errors, "mqtt", "port", config.port, 1, 65535)
    _check_range(errors, "mqtt", "qos", config.qos, 0, 2)

    return config


def _load_data_load(
    index: int,
    data: dict[str, Any],
    errors: list[str],
) -> DataLoadConfig | None:
    """Build one DataLoadConfig, appending problems to errors"""
    label = f"data_loads[{index}]"
    if not isinstance(data, dict):
        errors.append(f"{label} must be a mapping")
        return None

    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        errors.append(f"{label}.name is required")
        return None
    label = f"data load '{name}'"
    problems_before = len(errors)

    raw_type = data.get("type")
    load_type = DataLoadType.parse(raw_type)
    if load_type == DataLoadType.UNSET:
        logger.warning(
            f"{label}: unknown data type {raw_type!r}, it will never be decoded",
            extra={"data_load": name},
        )

    # The clock sits at a fixed register block, its address is informational
    address = CLOCK_DEFAULT_ADDRESS if load_type == DataLoadType.CLOCK else 0
    if "address" in data:
        try:
            address = parse_address(data["address"])
        except ConfigError as e:
            errors.append(f"{label}: {e.detail}")
    elif load_type != DataLoadType.CLOCK:
        errors.append(f"{label}: address is required")

    unit = data.get("unit", "") or ""
    if load_type.is_numeric and not unit:
        errors.append(f"{label}: unit is required for {load_type.value}")

    scaler = data.get("scaler", 0)
    if not _is_int(scaler):
        errors.append(f"{label}: scaler must be an integer, got {scaler!r}")
        scaler = 0
    elif not SCALER_MIN <= scaler <= SCALER_MAX:
        logger.warning(
            f"{label}: scaler {scaler} does not fit a signed byte, reads will fail",
            extra={"data_load": name},
        )

    string_length = data.get("string_length", 0)
    if load_type == DataLoadType.STRING and (not _is_int(string_length) or string_length < 0):
        errors.append(f"{label}: string_length must be a non-negative integer")
        string_length = 0
    elif not _is_int(string_length):
        string_length = 0

    topic = data.get("topic")
    if not isinstance(topic, str) or not topic:
        errors.append(f"{label}: topic is required")

    interval = data.get("polling_interval", data.get("polling_interval_s"))
    if interval is None:
        errors.append(f"{label}: polling_interval is required")
    elif not _is_int(interval) or interval <= 0:
        errors.append(f"{label}: polling_interval must be a positive integer, got {interval!r}")

    if len(errors) > problems_before:
        return None

    return DataLoadConfig(
        name=name,
        address=address,
        type=load_type,
        topic=topic,
        polling_interval_s=interval,
        unit=unit,
        scaler=scaler,
        string_length=string_length,
    )


def load_bridge_config(data: dict[str, Any]) -> BridgeConfig:
    """
    Load BridgeConfig from a dictionary (e.g., parsed YAML).

    Every problem found is collected and reported in a single
    ConfigError so a broken file can be fixed in one pass.

    Raises:
        ConfigError: If any section is missing or invalid
    """
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")

    errors: list[str] = []

    modbus = _load_modbus(data.get("modbus") or {}, errors)
    mqtt = _load_mqtt(data.get("mqtt") or {}, errors)

    logging_data = data.get("logging") or {}
    logging_settings = LoggingSettings(
        level=str(logging_data.get("level", "INFO")).upper(),
        format=str(logging_data.get("format", "json")).lower(),
    )

    raw_loads = data.get("data_loads") or []
    if not isinstance(raw_loads, list):
        errors.append("data_loads must be a list")
        raw_loads = []

    data_loads: list[DataLoadConfig] = []
    seen: set[str] = set()
    for index, raw in enumerate(raw_loads):
        load = _load_data_load(index, raw, errors)
        if load is None:
            continue
        if load.name in seen:
            errors.append(f"data load '{load.name}': name must be unique")
            continue
        seen.add(load.name)
        data_loads.append(load)

    if not raw_loads:
        errors.append("No data loads configured")

    if errors:
        logger.warning(
            f"Config validation failed: {len(errors)} errors",
            extra={"errors": errors},
        )
        raise ConfigError("; ".join(errors))

    logger.debug(f"Config validation passed ({len(data_loads)} data loads)")

    return BridgeConfig(
        modbus=modbus,
        mqtt=mqtt,
        data_loads=data_loads,
        logging=logging_settings,
    )


def load_config_file(config_path: str | Path) -> BridgeConfig:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Validated BridgeConfig

    Raises:
        ConfigError: If the file is missing, unparsable or invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read {config_path}: {e}") from e

    return load_bridge_config(data or {})
