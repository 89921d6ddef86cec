"""
Tests for emibridge/services/device/modbus_client.py

The pymodbus serial client is replaced with a mock; these tests cover
register packing, scaling and error translation.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pymodbus.exceptions import ModbusException

from emibridge.common.config import ModbusConfig, Parity
from emibridge.common.exceptions import TransportError
from emibridge.services.device.modbus_client import (
    CLOCK_ADDRESS,
    CLOCK_REGISTER_COUNT,
    CLOCK_STRUCT,
    EmiClock,
    EmiModbusClient,
    create_client_from_config,
    registers_to_bytes,
    scale_int,
)

PATCH_TARGET = "emibridge.services.device.modbus_client.AsyncModbusSerialClient"


def make_response(registers: list[int], error: bool = False) -> MagicMock:
    response = MagicMock()
    response.isError.return_value = error
    response.registers = registers
    return response


def make_serial_mock(*responses) -> MagicMock:
    serial = MagicMock()
    serial.connected = True
    serial.connect = AsyncMock(return_value=True)
    serial.read_input_registers = AsyncMock(side_effect=list(responses))
    return serial


def run(coro):
    return asyncio.run(coro)


# ============================================================================
# Helpers
# ============================================================================

@pytest.mark.parametrize("raw,scaler,expected", [
    (98, -2, 0.98),
    (98, 0, 98.0),
    (98, 1, 980.0),
    (65535, -3, 65.535),
])
def test_scale_int(raw, scaler, expected):
    assert scale_int(raw, scaler) == pytest.approx(expected)


def test_registers_to_bytes_is_big_endian():
    assert registers_to_bytes([0x4541, 0x4D49]) == b"EAMI"


def test_clock_structure_size():
    assert CLOCK_STRUCT.size == 12
    assert CLOCK_REGISTER_COUNT == 6


def test_clock_from_short_bytes_fails():
    with pytest.raises(TransportError, match="too short"):
        EmiClock.from_bytes(b"\x07\xe8\x01")


# ============================================================================
# Typed reads
# ============================================================================

def test_read_float16_scales_register():
    serial = make_serial_mock(make_response([98]))
    with patch(PATCH_TARGET, return_value=serial):
        client = EmiModbusClient("/dev/ttyUSB0", slave_id=7)
        value = run(client.read_float16(0x6C, -2))

    assert value == pytest.approx(0.98)
    serial.read_input_registers.assert_awaited_once_with(address=0x6C, count=1, device_id=7)


def test_read_float32_combines_high_word_first():
    serial = make_serial_mock(make_response([0x0001, 0x0002]))
    with patch(PATCH_TARGET, return_value=serial):
        client = EmiModbusClient("/dev/ttyUSB0")
        value = run(client.read_float32(0x16))

    assert value == float(0x00010002)
    serial.read_input_registers.assert_awaited_once_with(address=0x16, count=2, device_id=1)


def test_read_float32_uses_fixed_scaler():
    serial = make_serial_mock(make_response([0, 12345]))
    with patch(PATCH_TARGET, return_value=serial):
        client = EmiModbusClient("/dev/ttyUSB0", uint32_scaler=-3)
        value = run(client.read_float32(0x16))

    assert value == pytest.approx(12.345)


def test_read_unsigned_returns_raw_word():
    serial = make_serial_mock(make_response([5000]))
    with patch(PATCH_TARGET, return_value=serial):
        client = EmiModbusClient("/dev/ttyUSB0")
        assert run(client.read_unsigned(0x7F)) == 5000


def test_read_octet_string_odd_length_truncates_pad_byte():
    serial = make_serial_mock(make_response([0x4142, 0x4300]))
    with patch(PATCH_TARGET, return_value=serial):
        client = EmiModbusClient("/dev/ttyUSB0")
        value = run(client.read_octet_string(0x02, 3))

    assert value == b"ABC"
    serial.read_input_registers.assert_awaited_once_with(address=0x02, count=2, device_id=1)


def test_read_octet_string_zero_length_skips_bus():
    serial = make_serial_mock()
    with patch(PATCH_TARGET, return_value=serial):
        client = EmiModbusClient("/dev/ttyUSB0")
        assert run(client.read_octet_string(0x02, 0)) == b""

    serial.read_input_registers.assert_not_called()


def test_read_clock_unpacks_structure():
    raw = CLOCK_STRUCT.pack(2024, 1, 15, 1, 10, 30, 0, 50, -60, 0x80)
    registers = [int.from_bytes(raw[i:i + 2], "big") for i in range(0, len(raw), 2)]
    serial = make_serial_mock(make_response(registers))

    with patch(PATCH_TARGET, return_value=serial):
        client = EmiModbusClient("/dev/ttyUSB0")
        clock = run(client.read_clock())

    assert clock == EmiClock(2024, 1, 15, 1, 10, 30, 0, 50, deviation_minutes=-60, status=0x80)
    serial.read_input_registers.assert_awaited_once_with(
        address=CLOCK_ADDRESS, count=CLOCK_REGISTER_COUNT, device_id=1
    )


# ============================================================================
# Error translation
# ============================================================================

def test_error_response_is_transport_error():
    serial = make_serial_mock(make_response([], error=True))
    with patch(PATCH_TARGET, return_value=serial):
        client = EmiModbusClient("/dev/ttyUSB0")
        with pytest.raises(TransportError) as excinfo:
            run(client.read_unsigned(0x10))

    assert excinfo.value.address == 0x10
    assert excinfo.value.function == "read_unsigned"


def test_modbus_exception_is_transport_error():
    serial = make_serial_mock(ModbusException("no response"))
    with patch(PATCH_TARGET, return_value=serial):
        client = EmiModbusClient("/dev/ttyUSB0")
        with pytest.raises(TransportError, match="Modbus exception"):
            run(client.read_float16(0x6C, 0))


def test_short_response_is_transport_error():
    serial = make_serial_mock(make_response([1]))
    with patch(PATCH_TARGET, return_value=serial):
        client = EmiModbusClient("/dev/ttyUSB0")
        with pytest.raises(TransportError, match="Short response"):
            run(client.read_float32(0x16))


def test_connect_failure_is_transport_error():
    serial = make_serial_mock()
    serial.connected = False
    with patch(PATCH_TARGET, return_value=serial):
        client = EmiModbusClient("/dev/ttyUSB9")
        with pytest.raises(TransportError, match="ttyUSB9"):
            run(client.connect())

    assert not client.is_connected


def test_read_reports_address_when_connect_fails():
    serial = make_serial_mock()
    serial.connect = AsyncMock(side_effect=OSError("port busy"))
    with patch(PATCH_TARGET, return_value=serial):
        client = EmiModbusClient("/dev/ttyUSB0")
        with pytest.raises(TransportError) as excinfo:
            run(client.read_unsigned(0x20))

    assert excinfo.value.address == 0x20
    assert "port busy" in str(excinfo.value)


def test_disconnect_closes_serial_client():
    serial = make_serial_mock(make_response([1]))
    with patch(PATCH_TARGET, return_value=serial):
        client = EmiModbusClient("/dev/ttyUSB0")
        run(client.read_unsigned(0x01))
        assert client.is_connected
        run(client.disconnect())

    serial.close.assert_called_once()
    assert not client.is_connected


# ============================================================================
# Factory
# ============================================================================

def test_create_client_from_config():
    config = ModbusConfig(
        device="/dev/ttyUSB3",
        baud_rate=19200,
        parity=Parity.EVEN,
        stop_bits=2,
        slave_id=12,
        response_timeout_ms=2500,
    )
    client = create_client_from_config(config)

    assert client.port == "/dev/ttyUSB3"
    assert client.baudrate == 19200
    assert client.parity == "E"
    assert client.stopbits == 2
    assert client.slave_id == 12
    assert client.timeout == 2.5
    assert not client.is_connected
