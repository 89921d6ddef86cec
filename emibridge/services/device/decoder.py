"""
Register Value Decoder

Turns a data load descriptor plus a register transport into a typed
value and its canonical string payload.

Numeric values render locale-invariant ("0.98", "230"), timestamps
render as UTC ISO-8601 with milliseconds, strings render as-is.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

from emibridge.common.config import (
    SCALER_MAX,
    SCALER_MIN,
    DataLoadConfig,
    DataLoadType,
    PayloadFormat,
)
from emibridge.common.exceptions import ConfigError, TransportError
from emibridge.common.timestamp import format_timestamp_iso, utc_now_iso
from .modbus_client import EmiClock

Value = float | int | str | datetime


class RegisterTransport(Protocol):
    """Typed read capability of a field device connection"""

    async def read_float16(self, address: int, scaler: int) -> float: ...

    async def read_float32(self, address: int) -> float: ...

    async def read_unsigned(self, address: int) -> int: ...

    async def read_octet_string(self, address: int, length: int) -> bytes: ...

    async def read_clock(self) -> EmiClock: ...


@dataclass(frozen=True)
class DecodedValue:
    """Result of decoding one data load"""
    value: Value
    payload: str


def check_scaler(scaler: int) -> int:
    """Scalers travel on the wire as a signed byte"""
    if not SCALER_MIN <= scaler <= SCALER_MAX:
        raise ConfigError(
            f"Scaler {scaler} out of range ({SCALER_MIN}..{SCALER_MAX})"
        )
    return scaler


def decode_clock(clock: EmiClock) -> datetime:
    """
    Convert the device clock structure to an aware UTC datetime.

    Hundredths of a second become milliseconds (x10). The weekday,
    deviation and status fields are informational only.
    """
    try:
        if not 0 <= clock.hundredths <= 99:
            raise ValueError(f"hundredths {clock.hundredths} out of range")
        return datetime(
            clock.year,
            clock.month,
            clock.day,
            clock.hour,
            clock.minute,
            clock.second,
            tzinfo=timezone.utc,
        ) + timedelta(milliseconds=clock.hundredths * 10)
    except ValueError as e:
        raise TransportError(f"Invalid device clock value {clock}: {e}", function="read_clock") from e


def decode_octet_string(raw: bytes) -> str:
    """Decode an octet string up to the first NUL"""
    return raw.split(b"\x00", 1)[0].decode("utf-8", errors="replace")


def format_payload(value: Value) -> str:
    """
    Render a decoded value as its canonical payload string.

    Integral floats drop the trailing ".0" (98.0 -> "98"); other floats
    use the shortest round-trip representation.
    """
    if isinstance(value, datetime):
        return format_timestamp_iso(value)
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


async def decode_data_load(
    load: DataLoadConfig,
    transport: RegisterTransport,
) -> DecodedValue:
    """
    Read and decode one data load.

    Raises:
        ConfigError: Unsupported type or scaler out of range (no read is made)
        TransportError: The underlying read failed
    """
    value: Value

    if load.type == DataLoadType.FLOAT16:
        value = await transport.read_float16(load.address, check_scaler(load.scaler))

    elif load.type == DataLoadType.FLOAT32:
        check_scaler(load.scaler)
        value = await transport.read_float32(load.address)

    elif load.type == DataLoadType.UNSIGNED:
        value = await transport.read_unsigned(load.address)

    elif load.type == DataLoadType.STRING:
        raw = await transport.read_octet_string(load.address, load.string_length)
        value = decode_octet_string(raw)

    elif load.type == DataLoadType.CLOCK:
        value = decode_clock(await transport.read_clock())

    else:
        raise ConfigError(f"Unsupported data type: {load.type.value}", data_load=load.name)

    return DecodedValue(value=value, payload=format_payload(value))


def build_message(
    load: DataLoadConfig,
    decoded: DecodedValue,
    payload_format: PayloadFormat = PayloadFormat.PLAIN,
) -> bytes:
    """
    Build the bytes published for a decoded data load.

    plain: the payload string itself
    json:  {"name", "value", "unit", "timestamp"} envelope
    """
    if payload_format == PayloadFormat.JSON:
        envelope = {
            "name": load.name,
            "value": decoded.payload,
            "unit": load.unit,
            "timestamp": utc_now_iso(),
        }
        return json.dumps(envelope).encode("utf-8")

    return decoded.payload.encode("utf-8")
