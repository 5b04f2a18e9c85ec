"""GPS position sources: positions replayed from a map, a RUTX09 router, a u-blox device."""

from __future__ import annotations

import logging
import socket
import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, NamedTuple, Optional, Sequence

from virtual_vehicle.osm import Route

logger = logging.getLogger(__name__)

_READ_HOLDING_REGISTERS = 0x03
_MAX_REGISTERS_PER_READ = 125


@dataclass
class GpsPosition:
    """A position in decimal degrees with an altitude."""

    latitude: float = 0.0
    longitude: float = 0.0
    altitude: float = 0.0


class GpsSource(ABC):
    """Something that reports the current GPS position and speed."""

    @abstractmethod
    def position(self) -> GpsPosition:
        """Current position in decimal degrees."""

    @abstractmethod
    def speed(self) -> float:
        """Current speed."""


class MapGps(GpsSource):
    """Replays the points of a route as GPS positions, one point per call."""

    def __init__(self, route: Route) -> None:
        self.route = route
        self.route.prepare_route()

    def position(self) -> GpsPosition:
        point = self.route.position
        self.route.set_next_position()
        return GpsPosition(latitude=point.latitude, longitude=point.longitude)

    def speed(self) -> float:
        return 0.0


class ModbusError(OSError):
    """Raised when a Modbus exchange fails."""


def _recv_exact(sock: socket.socket, size: int) -> bytes:
    data = bytearray()
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            raise ModbusError("Connection closed by the Modbus server")
        data.extend(chunk)
    return bytes(data)


class ModbusTcpClient:
    """A minimal Modbus TCP client that reads holding registers."""

    def __init__(self, host: str, port: int, unit_id: int = 1, timeout: float = 5.0) -> None:
        self.host = host
        self.port = port
        self.unit_id = unit_id
        self.timeout = timeout
        self._socket: Optional[socket.socket] = None
        self._transaction = 0

    @property
    def is_connected(self) -> bool:
        return self._socket is not None

    def connect(self) -> None:
        """Open the TCP connection; raise ModbusError if it cannot be made."""
        if self._socket is not None:
            return
        try:
            self._socket = socket.create_connection((self.host, self.port), timeout=self.timeout)
        except OSError as error:
            raise ModbusError(f"Cannot connect to {self.host}:{self.port}: {error}") from error

    def close(self) -> None:
        """Close the connection if it is open."""
        if self._socket is not None:
            try:
                self._socket.close()
            finally:
                self._socket = None

    def __enter__(self) -> "ModbusTcpClient":
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def read_holding_registers(self, address: int, count: int) -> List[int]:
        """Read ``count`` 16-bit holding registers starting at ``address``."""
        if not 1 <= count <= _MAX_REGISTERS_PER_READ:
            raise ValueError(f"Register count must be between 1 and {_MAX_REGISTERS_PER_READ}")
        if not 0 <= address <= 0xFFFF:
            raise ValueError("Register address must fit in 16 bits")
        if self._socket is None:
            raise ModbusError("Not connected to the Modbus server")

        self._transaction = (self._transaction + 1) & 0xFFFF
        request = struct.pack(">HHHBBHH", self._transaction, 0, 6, self.unit_id & 0xFF,
                              _READ_HOLDING_REGISTERS, address, count)
        try:
            self._socket.sendall(request)
            transaction, protocol, length, _unit = struct.unpack(">HHHB", _recv_exact(self._socket, 7))
            if length < 2:
                raise ModbusError("Malformed Modbus response")
            body = _recv_exact(self._socket, length - 1)
        except OSError as error:
            self.close()
            if isinstance(error, ModbusError):
                raise
            raise ModbusError(f"Modbus communication failed: {error}") from error

        if transaction != self._transaction or protocol != 0:
            self.close()
            raise ModbusError("Unexpected Modbus response header")
        function = body[0]
        if function == _READ_HOLDING_REGISTERS | 0x80:
            code = body[1] if len(body) > 1 else 0
            raise ModbusError(f"Modbus exception code {code}")
        if function != _READ_HOLDING_REGISTERS or len(body) < 2:
            raise ModbusError("Unexpected Modbus function in response")
        byte_count = body[1]
        data = body[2:2 + byte_count]
        if byte_count != 2 * count or len(data) != byte_count:
            raise ModbusError("Modbus response has the wrong number of registers")
        return list(struct.unpack(f">{count}H", data))


def unpack_unsigned_int(registers: Sequence[int]) -> int:
    """Join two 16-bit registers, high word first, into a 32-bit unsigned integer."""
    return ((registers[0] << 16) | registers[1]) & 0xFFFFFFFF


def unpack_float(registers: Sequence[int]) -> float:
    """Interpret two 16-bit registers, high word first, as an IEEE 754 single-precision float."""
    return struct.unpack(">f", struct.pack(">I", unpack_unsigned_int(registers)))[0]


class _Register(NamedTuple):
    address: int
    length: int


class Rutx09(GpsSource):
    """GPS data read over Modbus TCP from a RUTX09 router."""

    LATITUDE = _Register(143, 2)
    LONGITUDE = _Register(145, 2)
    SPEED = _Register(179, 2)

    def __init__(self, ip_address: str, port: int, slave_id: int, timeout: float = 5.0) -> None:
        self.client = ModbusTcpClient(ip_address, port, slave_id, timeout)

    def _read(self, register: _Register) -> List[int]:
        if not self.client.is_connected:
            try:
                self.client.connect()
            except ModbusError as error:
                raise ConnectionError("Unable to connect to modbus server!") from error
        return self.client.read_holding_registers(register.address, register.length)

    def position(self) -> GpsPosition:
        longitude = unpack_float(self._read(self.LONGITUDE))
        latitude = unpack_float(self._read(self.LATITUDE))
        return GpsPosition(latitude=latitude, longitude=longitude, altitude=0.0)

    def speed(self) -> float:
        return unpack_float(self._read(self.SPEED))

    def close(self) -> None:
        """Close the Modbus connection."""
        self.client.close()


class UBlox(GpsSource):
    """Placeholder for a u-blox receiver; reports zeros and logs that it is unsupported."""

    def position(self) -> GpsPosition:
        logger.error("UBlocks gps provider is not implemented!")
        return GpsPosition()

    def speed(self) -> float:
        logger.error("UBlocks gps provider is not implemented!")
        return 0.0