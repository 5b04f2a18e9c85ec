"""Geometry helpers and mission formatting shared across the package."""

from __future__ import annotations

import math
import sys
from typing import TYPE_CHECKING, Optional, Protocol, Sequence

if TYPE_CHECKING:
    from virtual_vehicle.osm import Route

EARTH_RADIUS_M = 6372.8 * 1000
MISSION_PRECISION = 1e-6


class _Located(Protocol):
    latitude: float
    longitude: float


class _NamedLocation(Protocol):
    name: str
    latitude: float
    longitude: float


def haversine_distance(a_latitude: float, a_longitude: float,
                       b_latitude: float, b_longitude: float) -> float:
    """Great-circle distance between two coordinates, in metres."""
    lon_h = math.sin(math.radians(a_longitude - b_longitude) * 0.5) ** 2
    lat_h = math.sin(math.radians(a_latitude - b_latitude) * 0.5) ** 2
    tmp = math.cos(math.radians(a_latitude)) * math.cos(math.radians(b_latitude))
    return 2.0 * EARTH_RADIUS_M * math.asin(math.sqrt(min(1.0, lat_h + tmp * lon_h)))


def distance_between(a: _Located, b: _Located) -> float:
    """Distance in metres between two objects carrying latitude and longitude."""
    return haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude)


def construct_mission_string(mission: Sequence[_NamedLocation]) -> str:
    """Render the stop names of a mission as ``["stop1","stop2"]``."""
    return "[" + ",".join(f'"{stop.name}"' for stop in mission) + "]"


def time_to_drive_ms(distance_m: float, speed_mps: float) -> int:
    """Milliseconds needed to cover ``distance_m`` at ``speed_mps``; 0 when not moving."""
    if abs(speed_mps) < sys.float_info.epsilon:
        return 0
    return int((distance_m / speed_mps) * 1000)


def _export_json_position(point) -> str:
    station = f'"{point.name}"' if point.name else "null"
    return (f'{{ "latitude":{point.latitude:.7f}, "longitude":{point.longitude:.7f}, '
            f'"stationName": {station}}}')


def export_route_to_fleet_init_format(route: Optional["Route"]) -> str:
    """List every point of one lap of ``route`` as JSON objects, each followed by a comma."""
    if route is None:
        return ""
    route.prepare_route()
    start = route.position
    route.set_next_position()
    parts = []
    while route.position is not start:
        parts.append(_export_json_position(route.position) + ",")
        route.set_next_position()
    return "".join(parts)


def compare_missions(mission1: Sequence[_NamedLocation],
                     mission2: Sequence[_NamedLocation]) -> bool:
    """True when both missions list the same stations in the same order."""
    if len(mission1) != len(mission2):
        return False
    return all(
        first.name == second.name
        and abs(first.latitude - second.latitude) <= MISSION_PRECISION
        and abs(first.longitude - second.longitude) <= MISSION_PRECISION
        for first, second in zip(mission1, mission2)
    )