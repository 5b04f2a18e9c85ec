import socket
import struct
import threading

import pytest

from virtual_vehicle.gps import (
    GpsPosition,
    GpsSource,
    MapGps,
    ModbusError,
    ModbusTcpClient,
    Rutx09,
    UBlox,
    unpack_float,
    unpack_unsigned_int,
)
from virtual_vehicle.osm import Point, Route, Way


def _registers(value):
    return list(struct.unpack(">HH", struct.pack(">f", value)))


def _as_float32(value):
    return struct.unpack(">f", struct.pack(">f", value))[0]


def _recv_exact(conn, size):
    data = b""
    while len(data) < size:
        chunk = conn.recv(size - len(data))
        if not chunk:
            return None
        data += chunk
    return data


def _serve(server, registers, requests, exception_code):
    conn, _ = server.accept()
    with conn:
        while True:
            data = _recv_exact(conn, 12)
            if data is None:
                return
            tid, _pid, _length, unit, fc, addr, count = struct.unpack(">HHHBBHH", data)
            requests.append((unit, fc, addr, count))
            if exception_code is not None:
                payload = struct.pack(">BB", fc | 0x80, exception_code)
            else:
                values = [registers.get(addr + offset, 0) for offset in range(count)]
                payload = struct.pack(">BB", fc, 2 * count) + struct.pack(f">{count}H", *values)
            conn.sendall(struct.pack(">HHHB", tid, 0, len(payload) + 1, unit) + payload)


def _start_server(registers, exception_code=None):
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    requests = []
    thread = threading.Thread(target=_serve, args=(server, registers, requests, exception_code),
                              daemon=True)
    thread.start()
    return server, server.getsockname()[1], requests


@pytest.fixture
def rutx_registers():
    registers = {}
    for address, value in ((143, 49.19), (145, 16.61), (179, 3.5)):
        high, low = _registers(value)
        registers[address] = high
        registers[address + 1] = low
    return registers


def _free_port():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


def test_unpack_unsigned_int_joins_high_word_first():
    assert unpack_unsigned_int([0x1234, 0x5678]) == 0x12345678


@pytest.mark.parametrize("value", [0.0, 1.0, -2.5, 49.5, 16.625])
def test_unpack_float_round_trip(value):
    assert unpack_float(_registers(value)) == value


def test_map_gps_replays_route_points():
    points = [Point(1, 10.0, 10.0, speed=2.0), Point(2, 20.0, 20.0), Point(3, 30.0, 30.0)]
    way = Way(1)
    for point in points:
        way.append_point(point)
    route = Route(7, "line")
    route.append_way(way)
    gps = MapGps(route)
    seen = [gps.position() for _ in range(4)]
    assert [(p.latitude, p.longitude) for p in seen] == [
        (10.0, 10.0), (20.0, 20.0), (30.0, 30.0), (20.0, 20.0)]
    assert all(p.altitude == 0.0 for p in seen)
    assert gps.speed() == 0.0


def test_map_gps_rejects_empty_route():
    with pytest.raises(ValueError):
        MapGps(Route(1, "empty"))


def test_gps_source_is_abstract():
    with pytest.raises(TypeError):
        GpsSource()


def test_ublox_reports_zeros():
    ublox = UBlox()
    assert ublox.position() == GpsPosition()
    assert ublox.speed() == 0.0


def test_modbus_client_reads_registers():
    server, port, requests = _start_server({10: 7, 11: 9})
    with server, ModbusTcpClient("127.0.0.1", port, unit_id=3) as client:
        assert client.is_connected
        assert client.read_holding_registers(10, 2) == [7, 9]
    assert requests == [(3, 0x03, 10, 2)]


def test_modbus_client_requires_connection():
    client = ModbusTcpClient("127.0.0.1", 1)
    with pytest.raises(ModbusError):
        client.read_holding_registers(0, 1)


def test_modbus_client_rejects_bad_count():
    client = ModbusTcpClient("127.0.0.1", 1)
    with pytest.raises(ValueError):
        client.read_holding_registers(0, 0)


def test_modbus_exception_response_raises():
    server, port, _ = _start_server({}, exception_code=2)
    with server, ModbusTcpClient("127.0.0.1", port) as client:
        with pytest.raises(ModbusError):
            client.read_holding_registers(143, 2)


def test_modbus_connect_failure_raises():
    client = ModbusTcpClient("127.0.0.1", _free_port(), timeout=1.0)
    with pytest.raises(ModbusError):
        client.connect()
    assert client.is_connected is False


def test_rutx09_reads_position_and_speed(rutx_registers):
    server, port, requests = _start_server(rutx_registers)
    with server:
        rutx = Rutx09("127.0.0.1", port, 5)
        try:
            position = rutx.position()
            speed = rutx.speed()
        finally:
            rutx.close()
    assert position.latitude == _as_float32(49.19)
    assert position.longitude == _as_float32(16.61)
    assert position.altitude == 0.0
    assert speed == 3.5
    assert [(addr, count) for _unit, _fc, addr, count in requests] == [(145, 2), (143, 2), (179, 2)]
    assert {unit for unit, *_ in requests} == {5}


def test_rutx09_unreachable_server_raises():
    rutx = Rutx09("127.0.0.1", _free_port(), 1, timeout=1.0)
    with pytest.raises(ConnectionError):
        rutx.speed()