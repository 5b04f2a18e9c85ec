"""Status sent by the vehicle and command received from the fleet."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List

from virtual_vehicle.osm import Station
from virtual_vehicle.utils import compare_missions


class AutonomyState(Enum):
    """State of the autonomy."""

    INVALID = 0
    IDLE = 1
    DRIVE = 2
    IN_STOP = 3
    OBSTACLE = 4
    ERROR = 5

    def __str__(self) -> str:
        return self.name


class AutonomyAction(Enum):
    """Action the fleet asks the autonomy to take."""

    INVALID = 0
    NO_ACTION = 1
    STOP = 2
    START = 3

    def __str__(self) -> str:
        return self.name


@dataclass(eq=False)
class Command:
    """A command from the fleet: action, mission stops and route name."""

    mission: List[Station] = field(default_factory=list)
    action: AutonomyAction = AutonomyAction.INVALID
    route: str = ""

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Command):
            return NotImplemented
        return (self.action == other.action
                and compare_missions(self.mission, other.mission)
                and self.route == other.route)

    __hash__ = None  # type: ignore[assignment]

    def __str__(self) -> str:
        stops = "".join(f"[{stop.name};{stop.latitude:g};{stop.longitude:g}],"
                        for stop in self.mission)
        return f"action: {self.action}, route: {self.route} mission stops: {stops}"


@dataclass
class Status:
    """The vehicle status reported to the fleet."""

    longitude: float = 0.0
    latitude: float = 0.0
    speed: float = 0.0
    state: AutonomyState = AutonomyState.INVALID
    next_stop: Station = field(default_factory=Station)

    def __str__(self) -> str:
        return (f"state: {self.state} latitude: {self.latitude:g} "
                f"longitude: {self.longitude:g} next stop: {self.next_stop.name}")