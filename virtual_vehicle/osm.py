"""Map objects: points, ways and routes the vehicle drives along."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from virtual_vehicle.utils import distance_between

logger = logging.getLogger(__name__)

ROUTES_DISTANCE_THRESHOLD_M = 50.0
CIRCULAR_ROUTE_THRESHOLD_M = 10.0
POINT_TOLERANCE_M = 0.5
DISTANCE_TOLERANCE_M = 0.001
DEFAULT_SPEED_MPS = 5.0


@dataclass
class Station:
    """A named stop with its position, as used in missions."""

    name: str = ""
    latitude: float = 0.0
    longitude: float = 0.0


@dataclass(eq=False)
class Point:
    """A map node: position, planned speed in m/s and optional stop name."""

    id: int
    latitude: float
    longitude: float
    is_stop: bool = False
    name: str = ""
    speed: float = 0.0

    def copy(self) -> "Point":
        """Return an independent point with the same attributes."""
        return Point(self.id, self.latitude, self.longitude, self.is_stop, self.name, self.speed)


@dataclass
class Way:
    """A section of a route: ordered points and the distinct stops on them."""

    id: int
    points: List[Point] = field(default_factory=list)
    stops: List[Point] = field(default_factory=list)

    def append_point(self, point: Point) -> None:
        self.points.append(point)

    def append_stop(self, point: Point) -> None:
        """Add a stop unless a stop with the same name is already present."""
        if all(stop.name != point.name for stop in self.stops):
            self.stops.append(point)


class Route:
    """A drivable route made of ways, with a current position on it."""

    def __init__(self, id: int, name: Optional[str] = None) -> None:
        self.id = id
        self.name = name
        self.points: List[Point] = []
        self.stops: List[Point] = []
        self.is_circular = False
        self._position = 0

    def __repr__(self) -> str:
        return f"Route(id={self.id!r}, name={self.name!r}, points={len(self.points)})"

    @property
    def route_name(self) -> str:
        return self.name if self.name is not None else ""

    @route_name.setter
    def route_name(self, value: Optional[str]) -> None:
        self.name = value

    @property
    def position(self) -> Point:
        """The point the vehicle currently stands on."""
        return self.points[self._position]

    @property
    def stop_points(self) -> List[Point]:
        """All points of the route that are stops, in route order."""
        return [point for point in self.points if point.is_stop]

    def propagate_speed(self) -> None:
        """Give points without a speed the speed of the last point that had one."""
        if not self.points:
            raise ValueError(f"Route {self.route_name} has no points.")
        first = self.points[0].speed
        if first > 0:
            speed = first
        else:
            speed = DEFAULT_SPEED_MPS
            logger.warning("First point of route %s does not contain speed, defaulting to 5m/s",
                           self.route_name)
        for point in self.points:
            if point.speed > 0:
                speed = point.speed
            else:
                point.speed = speed

    def prepare_route(self) -> None:
        """Move to the first point, detect a circular route and fill in speeds."""
        if not self.points:
            raise ValueError(f"Route {self.route_name} has no points.")
        self._position = 0
        self.is_circular = distance_between(self.points[0], self.points[-1]) < CIRCULAR_ROUTE_THRESHOLD_M
        self.propagate_speed()

    def set_next_position(self) -> None:
        """Advance one point; at the end, wrap around or reverse the route."""
        self._position += 1
        if self._position < len(self.points):
            return
        logger.info("End of route has been reached, continuing another lap")
        if not self.is_circular:
            logger.info("Route is not circular, reversing.")
            self.points.reverse()
            self._position = 1
        else:
            self._position = 0

    def are_stops_present(self, stations: Iterable[Station]) -> bool:
        """True if every station's name is a stop on this route."""
        names = {stop.name for stop in self.stops}
        for station in stations:
            if station.name not in names:
                logger.error("Unknown stop: %s", station.name)
                return False
        return True

    def is_point_present(self, point: Point) -> bool:
        """True if some route point lies within tolerance of ``point``."""
        return any(distance_between(own, point) < POINT_TOLERANCE_M for own in self.points)

    def _index_near(self, position: Point) -> Optional[int]:
        return next((index for index, point in enumerate(self.points)
                     if distance_between(point, position) < DISTANCE_TOLERANCE_M), None)

    def set_position_and_direction(self, actual_position: Point, next_stop_name: str) -> None:
        """Place the route at ``actual_position``, reversing it if the next stop lies behind."""
        self._position = 0
        index = self._index_near(actual_position)
        if index is None:
            return
        if not self.is_circular:
            ahead = any(point.name == next_stop_name for point in self.points[index:])
            if not ahead:
                self.points.reverse()
                index = self._index_near(actual_position)
                if index is None:
                    index = 0
        self._position = index

    def append_way(self, way: Way) -> None:
        """Append the points and stops of ``way`` to the route."""
        if self.points and way.points:
            gap = distance_between(self.points[-1], way.points[0])
            if gap > ROUTES_DISTANCE_THRESHOLD_M:
                logger.warning("Distance between part of routes is higher than threshold %s",
                               ROUTES_DISTANCE_THRESHOLD_M)
        self.points.extend(way.points)
        self.stops.extend(way.stops)

    def speed_override(self, speed: float) -> None:
        """Set the same speed, in m/s, on every point."""
        for point in self.points:
            point.speed = float(speed)

    def compare_stations(self, command_stations: List[Station]) -> None:
        """Log differences between the stations of a command and the stops of the route."""
        if len(command_stations) != len(self.stops):
            logger.error("There isn't the same number of stops in the command (%d) as on the route (%d)",
                         len(command_stations), len(self.stops))
            return
        for station in command_stations:
            found = False
            for stop in self.stops:
                if stop.name != station.name:
                    continue
                found = True
                if distance_between(stop, station) > POINT_TOLERANCE_M:
                    logger.warning(
                        "Station %s is on different location. Station position in command: lat = %s, "
                        "long = %s, position on route: lat = %s, long = %s",
                        station.name, station.latitude, station.longitude, stop.latitude, stop.longitude)
            if not found:
                logger.error("Station %s sent in command is not on the route", station.name)