"""
Device Service - field device access

- modbus_client.py - pymodbus RTU transport with typed reads
- decoder.py - register value decoding and payload formatting
"""

from .modbus_client import EmiClock, EmiModbusClient, create_client_from_config
from .decoder import (
    DecodedValue,
    RegisterTransport,
    build_message,
    decode_data_load,
    format_payload,
)

__all__ = [
    "EmiClock",
    "EmiModbusClient",
    "create_client_from_config",
    "DecodedValue",
    "RegisterTransport",
    "build_message",
    "decode_data_load",
    "format_payload",
]
