"""Virtual vehicles: a simulated drive along a map route and a GPS-tracked vehicle."""

from __future__ import annotations

import dataclasses
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from virtual_vehicle.communication import Communication, GlobalContext
from virtual_vehicle.gps import GpsSource, MapGps, Rutx09, UBlox
from virtual_vehicle.mapping import Map
from virtual_vehicle.messages import AutonomyAction, AutonomyState, Status
from virtual_vehicle.osm import Point, Route, Station
from virtual_vehicle.settings import GpsProvider, Settings
from virtual_vehicle.utils import (
    compare_missions,
    construct_mission_string,
    distance_between,
    haversine_distance,
    time_to_drive_ms,
)

logger = logging.getLogger(__name__)


class VirtualVehicle(ABC):
    """A vehicle that reports its status to the fleet until the run is stopped."""

    def __init__(self, com: Communication, context: GlobalContext) -> None:
        self.com = com
        self.context = context
        self.map = Map()
        self.actual_route: Optional[Route] = None

    @property
    def settings(self) -> Settings:
        if self.context.settings is None:
            raise ValueError("The run context holds no settings")
        return self.context.settings

    @abstractmethod
    def initialize(self) -> None:
        """Prepare the vehicle and its route."""

    @abstractmethod
    def next_event(self) -> None:
        """Advance the vehicle by one step."""

    def drive(self) -> None:
        """Run steps until the context is stopped, reconnecting when the link is down."""
        while not self.context.stopped:
            if not self.com.is_connected:
                self.com.initialize_connection()
            self.next_event()

    def _sleep_ms(self, milliseconds: float) -> None:
        self.context.wait(max(0.0, milliseconds) / 1000)

    def _load_map_and_route(self) -> Route:
        settings = self.settings
        self.map.load_map_from_file(settings.map_file_path)
        if settings.speed_override:
            self.map.speed_override(settings.speed_override_mps)
        self.map.prepare_routes()
        if settings.route_name:
            route = self.map.get_route(settings.route_name)
            if route is None:
                raise ValueError(f"Route {settings.route_name} was not found in the map")
        else:
            if not self.map.routes:
                raise ValueError("The map contains no routes")
            route = self.map.routes[0]
        self.actual_route = route
        return route


class SimVehicle(VirtualVehicle):
    """A vehicle whose movement is simulated along the routes of an .osm map."""

    def __init__(self, com: Communication, context: GlobalContext) -> None:
        super().__init__(com, context)
        self.actual_position: Optional[Point] = None
        self.next_position: Optional[Point] = None
        self.actual_speed = 0.0
        self.mission: List[Station] = []
        self.mission_validity = True
        self.next_stop = Station()
        self.state = AutonomyState.IDLE
        self._change_route = False
        self._check_stations = False
        self.actual_route_name = ""
        self._next_route_name = ""
        self._drive_ms_left = 0
        self._in_stop_ms_left = 0

    def initialize(self) -> None:
        route = self._load_map_and_route()
        self.actual_route_name = route.route_name
        self._update_vehicle_state(AutonomyState.IDLE)
        self.com.initialize_connection()
        self._set_next_position()

    def next_event(self) -> None:
        state = self.state
        if state is AutonomyState.IDLE:
            self._handle_idle_event()
        elif state is AutonomyState.DRIVE:
            self._handle_drive_event()
        elif state is AutonomyState.IN_STOP:
            self._handle_in_stop_event()
        elif state is AutonomyState.OBSTACLE:
            self._handle_obstacle_event()
            self._handle_error_event()
        elif state is AutonomyState.ERROR:
            self._handle_error_event()
        self._request()

    def _handle_idle_event(self) -> None:
        self._sleep_ms(self.settings.message_period_ms)

    def _handle_drive_event(self) -> None:
        if self._check_for_stop():
            return
        period = self.settings.message_period_ms
        self._sleep_ms(min(self._drive_ms_left, period))
        self._drive_ms_left -= period
        if self._drive_ms_left <= 0:
            if self._change_route:
                self._switch_route()
            self._set_next_position()

    def _handle_in_stop_event(self) -> None:
        period = self.settings.message_period_ms
        self._sleep_ms(min(self._in_stop_ms_left, period))
        self._in_stop_ms_left = max(0, self._in_stop_ms_left - period)

    def _handle_obstacle_event(self) -> None:
        self._sleep_ms(self.settings.message_period_ms)
        logger.warning("Cars state is obstacle, this state is not supported.")

    def _handle_error_event(self) -> None:
        self._sleep_ms(self.settings.message_period_ms)
        logger.warning("Car is in error state.")

    def _set_next_position(self) -> None:
        route = self.actual_route
        self.actual_position = route.position
        route.set_next_position()
        self.next_position = route.position

        driving = self.state is AutonomyState.DRIVE
        self.actual_speed = self.actual_position.speed if driving else 0.0
        distance = distance_between(self.actual_position, self.next_position)
        self._drive_ms_left = time_to_drive_ms(distance, self.actual_speed)
        if driving:
            logger.info("%s route, distance to drive: %.2fm, time to get there: %.2fs",
                        self.actual_route_name, distance, self._drive_ms_left / 1000)

    def _request(self) -> None:
        position = self.actual_position
        status = Status(longitude=position.longitude, latitude=position.latitude,
                        speed=self.actual_speed, state=self.state,
                        next_stop=dataclasses.replace(self.next_stop))
        logger.info("Sending status %s", status)
        self.com.make_request(status)
        self._evaluate_command()

    def _evaluate_command(self) -> None:
        command = self.com.command
        if command.route and command.route != self.actual_route_name:
            if self.map.get_route(command.route) is None:
                logger.warning("Route %s was not found. Command will be ignored", command.route)
                return
            if not self._change_route:
                logger.info("New route received.")
            self._change_route = True
            self._next_route_name = command.route

        if not command.mission:
            self._update_vehicle_state(AutonomyState.IDLE)
            return

        if self._check_stations:
            self.actual_route.compare_stations(command.mission)
            self._check_stations = False

        if not compare_missions(self.mission, command.mission):
            if not self._change_route and not self.actual_route.are_stops_present(command.mission):
                self._invalidate_mission()
                return
            self.mission_validity = True
            self.mission = [dataclasses.replace(stop) for stop in command.mission]

        action = command.action
        if self.state is AutonomyState.IDLE:
            self._update_vehicle_state(
                AutonomyState.DRIVE if action is AutonomyAction.START else AutonomyState.IDLE)
        elif self.state is AutonomyState.DRIVE:
            self._update_vehicle_state(
                AutonomyState.IDLE if action is AutonomyAction.STOP else AutonomyState.DRIVE)
        elif self.state is AutonomyState.IN_STOP:
            if action is AutonomyAction.START:
                if self._in_stop_ms_left == 0:
                    self._update_vehicle_state(
                        AutonomyState.DRIVE if self.mission else AutonomyState.IDLE)
                else:
                    self._update_vehicle_state(AutonomyState.IN_STOP)
            else:
                self._update_vehicle_state(AutonomyState.IDLE)

        if self.state is not AutonomyState.IN_STOP and self.mission:
            self.next_stop = dataclasses.replace(self.mission[0])

    def _invalidate_mission(self) -> None:
        logger.warning("Received stopNames are not on route, stopNames will be completely ignored %s",
                       construct_mission_string(self.mission))
        self.mission.clear()
        self.mission_validity = False

    def _check_for_stop(self) -> bool:
        position = self.actual_position
        if position.is_stop and position.name == self.next_stop.name:
            self._update_vehicle_state(AutonomyState.IN_STOP)
            logger.info("Car have arrived at the stop %s", self.next_stop.name)
            return True
        return False

    def _update_vehicle_state(self, state: AutonomyState) -> None:
        if not self.mission_validity:
            self.state = AutonomyState.ERROR
            return
        if self.state is state:
            return
        self.state = state
        if state is AutonomyState.IDLE:
            self.next_stop.name = ""
            self.actual_speed = 0.0
        elif state is AutonomyState.DRIVE:
            self.actual_speed = self.actual_position.speed
            self._drive_ms_left = time_to_drive_ms(
                distance_between(self.actual_position, self.next_position), self.actual_speed)
        elif state is AutonomyState.IN_STOP:
            self.actual_speed = 0.0
            self._in_stop_ms_left = self.settings.stop_wait_time * 1000

    def _switch_route(self) -> None:
        next_route = self.map.get_route(self._next_route_name)
        if next_route is None:
            logger.warning("Route %s was not found.", self._next_route_name)
            return
        if not next_route.is_point_present(self.actual_position):
            logger.info("Vehicle is not on a the new route and cannot switch routes yet")
            return
        self.actual_route.set_next_position()
        self.actual_route = next_route
        self.actual_route_name = self._next_route_name
        logger.info("Route changed to: %s.", self._next_route_name)

        if not self.actual_route.are_stops_present(self.mission):
            self._invalidate_mission()
            return

        self._change_route = False
        self._check_stations = True
        self.actual_route.set_position_and_direction(self.actual_position, self.next_stop.name)


class GpsVehicle(VirtualVehicle):
    """A vehicle whose position comes from a GPS source."""

    def __init__(self, com: Communication, context: GlobalContext) -> None:
        super().__init__(com, context)
        self.gps: Optional[GpsSource] = None
        self.status = Status()
        self.event_delay_s = 0.0
        self.stops: List[Point] = []
        self.current_stop: Optional[Point] = None

    def initialize(self) -> None:
        route = self._load_map_and_route()
        self.stops = route.stop_points
        settings = self.settings
        provider = settings.gps_provider
        if provider is GpsProvider.RUTX09:
            self.gps = Rutx09(settings.rutx_ip, settings.rutx_port, settings.rutx_slave_id)
        elif provider is GpsProvider.UBLOX:
            self.gps = UBlox()
        elif provider is GpsProvider.MAP:
            self.gps = MapGps(route)
        else:
            raise ValueError("Unknown gps provider!")
        self.status.state = AutonomyState.IDLE
        self.com.initialize_connection()
        self.event_delay_s = settings.message_period_ms / 1000

    def next_event(self) -> None:
        self._update_position()
        self._make_request()
        self._sleep_ms(self.settings.message_period_ms)

    def _update_position(self) -> None:
        position = self.gps.position()
        last_latitude, last_longitude = self.status.latitude, self.status.longitude
        self.status.latitude = position.latitude
        self.status.longitude = position.longitude
        if self.current_stop is not None:
            distance_to_stop = haversine_distance(self.current_stop.latitude, self.current_stop.longitude,
                                                  self.status.latitude, self.status.longitude)
            if distance_to_stop < self.settings.stop_radius:
                self.status.state = AutonomyState.IN_STOP
                logger.info("Car arrived at stop %s.", self.current_stop.name)
        moved = haversine_distance(last_latitude, last_longitude,
                                   self.status.latitude, self.status.longitude)
        self.status.speed = moved / self.event_delay_s if self.event_delay_s > 0 else 0.0

    def _make_request(self) -> None:
        self.com.make_request(self.status)
        logger.info("Sending status %s", self.status)
        self._evaluate_command()

    def _evaluate_command(self) -> None:
        command = self.com.command
        route = self.map.get_route(command.route)
        if route is None:
            logger.warning("Route %s was not found. Command will be ignored", command.route)
            return
        self.actual_route = route
        self.stops = route.stop_points

        if not command.mission:
            self.status.state = AutonomyState.IDLE
            self.status.next_stop = Station()
            self.current_stop = None
            return

        self.status.state = AutonomyState.DRIVE
        self.status.next_stop = dataclasses.replace(command.mission[0])
        found = next((stop for stop in self.stops if stop.name == self.status.next_stop.name), None)
        if found is not None:
            self.current_stop = found
        if self.current_stop is None:
            logger.warning("Received stop with name %s but stop was not found on map.",
                           self.status.next_stop.name)