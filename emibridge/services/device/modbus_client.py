"""
Async Modbus RTU Client for EMI Meters

Wrapper around pymodbus for direct RS485 serial communication with an
energy meter interface. Exposes only the typed reads the bridge needs:
scaled 16/32-bit values, raw unsigned words, octet strings and the
device real-time clock. Every failure surfaces as TransportError.
"""

import asyncio
import struct
from dataclasses import dataclass

from pymodbus import pymodbus_apply_logging_config
from pymodbus.client import AsyncModbusSerialClient
from pymodbus.exceptions import ModbusException

from emibridge.common.config import CLOCK_DEFAULT_ADDRESS, ModbusConfig
from emibridge.common.exceptions import TransportError
from emibridge.common.logging_setup import get_service_logger

logger = get_service_logger("device.modbus")

# The device clock lives at a fixed input register block
CLOCK_ADDRESS = CLOCK_DEFAULT_ADDRESS
# Packed layout: year, month, day, weekday, hour, minute, second,
# hundredths, deviation (minutes, signed), status flags
CLOCK_STRUCT = struct.Struct(">HBBBBBBBhB")
CLOCK_REGISTER_COUNT = (CLOCK_STRUCT.size + 1) // 2


@dataclass(frozen=True)
class EmiClock:
    """Device real-time clock as transmitted by the meter"""
    year: int
    month: int
    day: int
    weekday: int
    hour: int
    minute: int
    second: int
    hundredths: int
    deviation_minutes: int = 0
    status: int = 0

    @classmethod
    def from_bytes(cls, raw: bytes) -> "EmiClock":
        """Unpack the 12-byte big-endian clock structure"""
        if len(raw) < CLOCK_STRUCT.size:
            raise TransportError(
                f"Clock response too short ({len(raw)} of {CLOCK_STRUCT.size} bytes)",
                address=CLOCK_ADDRESS,
                function="read_clock",
            )
        return cls(*CLOCK_STRUCT.unpack(raw[:CLOCK_STRUCT.size]))


def scale_int(raw: int, scaler: int) -> float:
    """
    Apply a decimal exponent to a raw register value.

    scale_int(98, -2) == 0.98, scale_int(98, 0) == 98.0
    """
    if scaler == 0:
        return float(raw)
    if scaler > 0:
        return float(raw * 10 ** scaler)
    # Divide rather than multiply by 10**-n to keep results exact where possible
    return raw / 10 ** -scaler


def registers_to_bytes(registers: list[int]) -> bytes:
    """Flatten 16-bit registers into big-endian bytes"""
    return b"".join(reg.to_bytes(2, byteorder="big") for reg in registers)


class EmiModbusClient:
    """
    Async Modbus RTU serial client for one EMI slave.

    All reads use input registers (function 0x04). Access is serialized
    through an asyncio Lock so callers never interleave frames on the bus.
    """

    def __init__(
        self,
        port: str,
        baudrate: int = 9600,
        parity: str = "N",
        bytesize: int = 8,
        stopbits: int = 1,
        slave_id: int = 1,
        timeout: float = 1.0,
        uint32_scaler: int = 0,
    ):
        self.port = port
        self.baudrate = baudrate
        self.parity = parity
        self.bytesize = bytesize
        self.stopbits = stopbits
        self.slave_id = slave_id
        self.timeout = timeout
        self.uint32_scaler = uint32_scaler

        self._client: AsyncModbusSerialClient | None = None
        self._lock = asyncio.Lock()
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected and self._client is not None

    async def connect(self) -> None:
        """
        Open the serial port.

        Raises:
            TransportError: If the port cannot be opened
        """
        if self._connected:
            return

        try:
            self._client = AsyncModbusSerialClient(
                port=self.port,
                baudrate=self.baudrate,
                bytesize=self.bytesize,
                parity=self.parity,
                stopbits=self.stopbits,
                timeout=self.timeout,
            )

            await self._client.connect()
            self._connected = bool(self._client.connected)

        except Exception as e:
            self._connected = False
            raise TransportError(f"Serial connection error on {self.port}: {e}") from e

        if not self._connected:
            raise TransportError(f"Failed to connect to serial port {self.port}")

        logger.info(
            f"Connected to serial port {self.port} "
            f"(baud={self.baudrate}, parity={self.parity}, stop={self.stopbits}, "
            f"slave={self.slave_id})"
        )

    async def disconnect(self) -> None:
        """Close serial connection"""
        if self._client:
            self._client.close()
            self._client = None
        self._connected = False
        logger.debug(f"Disconnected from serial port {self.port}")

    async def read_float16(self, address: int, scaler: int) -> float:
        """Read one unsigned 16-bit register and apply 10**scaler"""
        registers = await self._read_input_registers(address, 1, "read_float16")
        return scale_int(registers[0], scaler)

    async def read_float32(self, address: int) -> float:
        """Read a 32-bit register pair (high word first) with the fixed scaler"""
        registers = await self._read_input_registers(address, 2, "read_float32")
        raw = (registers[0] << 16) | registers[1]
        return scale_int(raw, self.uint32_scaler)

    async def read_unsigned(self, address: int) -> int:
        """Read one unsigned 16-bit register"""
        registers = await self._read_input_registers(address, 1, "read_unsigned")
        return registers[0]

    async def read_octet_string(self, address: int, length: int) -> bytes:
        """
        Read an octet string of `length` bytes.

        Two octets are packed per register; an odd length drops the
        trailing pad byte. A zero length returns b"" without touching
        the bus.
        """
        if length <= 0:
            return b""

        count = (length + 1) // 2
        registers = await self._read_input_registers(address, count, "read_octet_string")
        return registers_to_bytes(registers)[:length]

    async def read_clock(self) -> EmiClock:
        """Read the device real-time clock structure"""
        registers = await self._read_input_registers(
            CLOCK_ADDRESS, CLOCK_REGISTER_COUNT, "read_clock"
        )
        return EmiClock.from_bytes(registers_to_bytes(registers))

    async def _ensure_connected(self) -> None:
        """Ensure serial connection is established"""
        if self._client and not self._client.connected:
            logger.warning(f"Serial port {self.port} dropped, reconnecting")
            self._client.close()
            self._client = None
            self._connected = False

        if not self._connected:
            await self.connect()

    async def _read_input_registers(
        self,
        address: int,
        count: int,
        function: str,
    ) -> list[int]:
        """
        Read `count` input registers, raising TransportError on any failure.
        """
        async with self._lock:
            try:
                await self._ensure_connected()
            except TransportError as e:
                e.address = address
                e.function = function
                raise

            try:
                response = await self._client.read_input_registers(
                    address=address,
                    count=count,
                    device_id=self.slave_id,
                )
            except ModbusException as e:
                raise TransportError(
                    f"Modbus exception: {e}", address=address, function=function
                ) from e
            except asyncio.TimeoutError as e:
                raise TransportError("Read timeout", address=address, function=function) from e
            except Exception as e:
                raise TransportError(str(e), address=address, function=function) from e

        if response.isError():
            raise TransportError(
                f"Modbus error: {response}", address=address, function=function
            )

        registers = list(response.registers)
        if len(registers) < count:
            raise TransportError(
                f"Short response: {len(registers)} of {count} registers",
                address=address,
                function=function,
            )

        return registers


def create_client_from_config(config: ModbusConfig) -> EmiModbusClient:
    """Build an EmiModbusClient from the modbus configuration section"""
    if config.debug:
        pymodbus_apply_logging_config("DEBUG")

    return EmiModbusClient(
        port=config.device,
        baudrate=config.baud_rate,
        parity=config.parity.value,
        bytesize=config.data_bits,
        stopbits=config.stop_bits,
        slave_id=config.slave_id,
        timeout=config.response_timeout_s,
    )
