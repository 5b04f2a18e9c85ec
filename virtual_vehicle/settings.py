"""Program settings: command-line options merged over a JSON configuration file."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

CONFIG_PATH = "config"
VERBOSE = "verbose"
LOG_PATH = "log-path"
MODULE_GATEWAY_IP = "module-gateway-ip"
MODULE_GATEWAY_PORT = "module-gateway-port"
STATUS_MESSAGE_PERIOD = "period-ms"
VEHICLE_PROVIDER = "vehicle-provider"
FLEET_PROVIDER = "fleet-provider"
HELP = "help"

OSM_MAP = "map"
OSM_ROUTE = "default-route"
OSM_STOP_WAIT_TIME = "wait-at-stop-s"
OSM_SPEED_OVERRIDE = "speed-override"
OSM_SPEED_OVERRIDE_MPS = "speed-override-mps"

GPS_PROVIDER = "gps-provider"
RUT_IP = "rutx-ip"
RUT_PORT = "rutx-port"
RUT_SLAVE_ID = "rutx-slave-id"
STOP_RADIUS = "stop-radius-m"
DEVICE_NAME = "device-name"
DEVICE_ROLE = "device-role"
DEVICE_PRIORITY = "device-priority"
RECONNECT_PERIOD = "reconnect-period-s"

GENERAL_SETTINGS = "general-settings"
VEHICLE_SETTINGS = "vehicle-settings"
GPS_SETTINGS = "gps-settings"
RUTX_09_SETTINGS = "rutx09-settings"
SIMULATION_SETTINGS = "simulation-settings"
FLEET_SETTINGS = "fleet-settings"
INTERNAL_PROTOCOL_SETTINGS = "internal-protocol-settings"
MAP_SETTINGS = "map-settings"

_UINT32_MAX = 2 ** 32 - 1


class SettingsError(ValueError):
    """Raised when command-line arguments or the configuration are not valid."""


class _ProviderEnum(Enum):
    """Enum whose string form is its value."""

    def __str__(self) -> str:
        return self.value


def _enum_from_string(cls, value: str):
    try:
        return cls(str(value).upper())
    except ValueError:
        return cls("INVALID")


class FleetProvider(_ProviderEnum):
    """How the vehicle talks to the fleet."""

    INVALID = "INVALID"
    INTERNAL_PROTOCOL = "INTERNAL-PROTOCOL"
    NO_CONNECTION = "NO-CONNECTION"

    @classmethod
    def from_string(cls, value: str) -> "FleetProvider":
        """Map ``value`` to a member ignoring case; unknown values give INVALID."""
        return _enum_from_string(cls, value)


class VehicleProvider(_ProviderEnum):
    """Where the vehicle position comes from."""

    INVALID = "INVALID"
    SIMULATION = "SIMULATION"
    GPS = "GPS"

    @classmethod
    def from_string(cls, value: str) -> "VehicleProvider":
        """Map ``value`` to a member ignoring case; unknown values give INVALID."""
        return _enum_from_string(cls, value)


class GpsProvider(_ProviderEnum):
    """Which GPS device supplies coordinates."""

    INVALID = "INVALID"
    RUTX09 = "RUTX09"
    UBLOX = "UBLOX"
    MAP = "MAP"

    @classmethod
    def from_string(cls, value: str) -> "GpsProvider":
        """Map ``value`` to a member ignoring case; unknown values give INVALID."""
        return _enum_from_string(cls, value)


@dataclass
class Settings:
    """All settings of a run."""

    config: Path = field(default_factory=Path)
    verbose: bool = False
    map_file_path: Path = field(default_factory=Path)
    route_name: str = ""
    log_path: Path = field(default_factory=Path)
    stop_wait_time: int = 5
    message_period_ms: int = 1
    speed_override: bool = False
    speed_override_mps: int = 0

    fleet_provider: FleetProvider = FleetProvider.INVALID
    module_gateway_ip: str = ""
    module_gateway_port: int = -1
    device_name: str = ""
    device_role: str = ""
    device_priority: int = 10
    reconnect_period_s: int = 30

    vehicle_provider: VehicleProvider = VehicleProvider.INVALID

    gps_provider: GpsProvider = GpsProvider.INVALID
    rutx_ip: str = ""
    rutx_port: int = -1
    rutx_slave_id: int = -1
    stop_radius: int = -1


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str):  # type: ignore[override]
        raise SettingsError(message)


def _uint32(text: str) -> int:
    value = int(text)
    if not 0 <= value <= _UINT32_MAX:
        raise ValueError(f"{text} is not an unsigned 32-bit integer")
    return value


def _build_parser() -> _ArgumentParser:
    parser = _ArgumentParser(prog="VirtualVehicle", description="BringAuto virtual vehicle utility",
                             add_help=False, allow_abbrev=False)

    def add(group, name: str, help_text: str, kind=str, short: Optional[str] = None) -> None:
        flags = ([f"-{short}"] if short else []) + [f"--{name}"]
        group.add_argument(*flags, dest=name, action="append", type=kind, help=help_text)

    general = parser.add_argument_group("general")
    add(general, CONFIG_PATH, "Path to configuration file", short="c")
    add(general, LOG_PATH, "Path to logs")
    general.add_argument("-v", f"--{VERBOSE}", dest=VERBOSE, action="count",
                         help="Print log messages into terminal")
    add(general, STATUS_MESSAGE_PERIOD, "Period in ms for sending status messages", _uint32)

    vehicle = parser.add_argument_group("vehicle")
    add(vehicle, VEHICLE_PROVIDER, 'Choose virtual vehicle location provider, "simulation" or "gps".')

    gps = parser.add_argument_group("gps vehicle provider")
    add(gps, GPS_PROVIDER, 'Choose gps provider, "rutx09" or "ublox".')
    add(gps, RUT_IP, "Modbus server address for rutx09.")
    add(gps, RUT_PORT, "Modbus server port for rutx09.", int)
    add(gps, RUT_SLAVE_ID, "Modbus server slave id for rutx09.", int)
    add(gps, STOP_RADIUS, "Radius from stop for marking it done.", int)

    simulation = parser.add_argument_group("simulation vehicle provider")
    add(simulation, OSM_SPEED_OVERRIDE, "Override map speed on all points, in m/s", _uint32)
    add(simulation, OSM_STOP_WAIT_TIME, "Wait time in stops in seconds, default is 10s", _uint32)

    fleet = parser.add_argument_group("fleet")
    add(fleet, FLEET_PROVIDER, 'Provider of communication with fleet, "protobuf" or "empty"')

    protocol = parser.add_argument_group("protobuf fleet provider")
    add(protocol, MODULE_GATEWAY_IP, "IPv4 address or hostname of server side application")
    add(protocol, MODULE_GATEWAY_PORT, "Port of server side application", int)

    osm_map = parser.add_argument_group("map")
    add(osm_map, OSM_MAP, "Path to .osm map file")
    add(osm_map, OSM_ROUTE, "Name of route that will be set on initialization")

    parser.add_argument("-h", f"--{HELP}", dest=HELP, action="count", help="Print usage")
    return parser


def _config_value(section: Any, key: str, kind: str) -> Any:
    if not isinstance(section, dict) or key not in section:
        raise SettingsError(f"Missing configuration value '{key}'")
    value = section[key]
    if kind == "str":
        if not isinstance(value, str):
            raise SettingsError(f"Configuration value '{key}' must be a string")
        return value
    if kind == "bool":
        if not isinstance(value, bool):
            raise SettingsError(f"Configuration value '{key}' must be a boolean")
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SettingsError(f"Configuration value '{key}' must be a number")
    number = int(value)
    if kind == "uint" and number < 0:
        raise SettingsError(f"Configuration value '{key}' must not be negative")
    return number


def _sub(section: Any, key: str) -> Any:
    return section.get(key) if isinstance(section, dict) else None


def _quoted(path: Path) -> str:
    text = str(path).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


class SettingsParser:
    """Builds :class:`Settings` from command-line arguments and a JSON configuration file."""

    def __init__(self) -> None:
        self.settings: Optional[Settings] = None
        self._args: Dict[str, Any] = {}

    def parse_settings(self, argv: Optional[Sequence[str]] = None) -> bool:
        """Parse ``argv`` (without the program name) and fill :attr:`settings`.

        Returns False when help was printed instead. Raises SettingsError on bad input.
        """
        args = list(sys.argv[1:] if argv is None else argv)
        parser = _build_parser()
        unmatched = self._parse_cmd_arguments(parser, args)
        if self._count(HELP) or not args:
            print(parser.format_help())
            return False
        if not self._are_cmd_arguments_correct(unmatched):
            raise SettingsError("Cmd arguments are not correct")
        self._fill_settings()
        if not self._are_settings_correct():
            raise SettingsError("Arguments are not correct.")
        return True

    def _parse_cmd_arguments(self, parser: _ArgumentParser, args: List[str]) -> List[str]:
        namespace, extras = parser.parse_known_args(args)
        self._args = vars(namespace)
        unmatched = []
        for extra in extras:
            if extra.startswith("-") and extra != "-":
                raise SettingsError(f"Option '{extra}' does not exist")
            unmatched.append(extra)
        return unmatched

    def _count(self, name: str) -> int:
        value = self._args.get(name)
        if value is None:
            return 0
        return value if isinstance(value, int) else len(value)

    def _value(self, name: str) -> Any:
        return self._args[name][-1]

    def _override(self, name: str, section: Any, kind: str) -> Any:
        if self._count(name):
            return self._value(name)
        return _config_value(section, name, kind)

    def _are_cmd_arguments_correct(self, unmatched: List[str]) -> bool:
        correct = True
        checked = [CONFIG_PATH, VERBOSE, OSM_MAP, OSM_ROUTE, LOG_PATH, MODULE_GATEWAY_IP,
                   MODULE_GATEWAY_PORT, OSM_STOP_WAIT_TIME, STATUS_MESSAGE_PERIOD, OSM_SPEED_OVERRIDE,
                   VEHICLE_PROVIDER, GPS_PROVIDER, RUT_IP, RUT_PORT, RUT_SLAVE_ID, FLEET_PROVIDER,
                   STOP_RADIUS, CONFIG_PATH]
        for name in checked:
            if self._count(name) > 1:
                correct = False
                print(f"[ERROR] Found duplicate --{name} cmdline parameter!", file=sys.stderr)

        if unmatched:
            message = ("Unmatched arguments! use -h to see arguments, arguments should be in format "
                       "-<short name> <value> or --<long name>=<value>, unmatched arguments: ")
            message += "".join(f"{arg} " for arg in unmatched)
            print(f"[ERROR] {message}", file=sys.stderr)
            correct = False

        if self._count(CONFIG_PATH) < 1:
            correct = False
            print(f"Please provide {CONFIG_PATH} argument", file=sys.stderr)
        return correct

    def _are_settings_correct(self) -> bool:
        settings = self.settings
        assert settings is not None
        correct = True
        if settings.vehicle_provider is VehicleProvider.INVALID:
            print("Invalid vehicle provider", file=sys.stderr)
            correct = False
        if not settings.log_path.exists():
            print(f"Given log path ({_quoted(settings.log_path)}) does not exist.", file=sys.stderr)
            correct = False
        if settings.vehicle_provider is VehicleProvider.SIMULATION and not settings.map_file_path.exists():
            print(f"Given map path ({_quoted(settings.map_file_path)}) does not exist.", file=sys.stderr)
            correct = False
        if settings.vehicle_provider is VehicleProvider.GPS and settings.gps_provider is GpsProvider.INVALID:
            print("Invalid gps provider", file=sys.stderr)
            correct = False
        if settings.fleet_provider is FleetProvider.INVALID:
            print("Invalid fleet provider", file=sys.stderr)
            correct = False
        return correct

    def _fill_settings(self) -> None:
        config_path = self._value(CONFIG_PATH)
        try:
            with open(config_path, encoding="utf-8") as stream:
                data = json.load(stream)
        except OSError as error:
            raise SettingsError(f"Cannot read configuration file {config_path}: {error}") from error
        except json.JSONDecodeError as error:
            raise SettingsError(f"Cannot parse configuration file {config_path}: {error}") from error
        if not isinstance(data, dict):
            raise SettingsError(f"Configuration file {config_path} must hold a JSON object")

        self.settings = Settings(config=Path(config_path))
        self._fill_general_settings(data.get(GENERAL_SETTINGS))
        self._fill_vehicle_settings(data.get(VEHICLE_SETTINGS))
        self._fill_fleet_settings(data.get(FLEET_SETTINGS))
        self._fill_map_settings(data.get(MAP_SETTINGS))

    def _fill_general_settings(self, section: Any) -> None:
        settings = self.settings
        settings.log_path = Path(self._override(LOG_PATH, section, "str"))
        if self._count(VERBOSE):
            settings.verbose = self._count(VERBOSE) == 1
        else:
            settings.verbose = _config_value(section, VERBOSE, "bool")
        settings.message_period_ms = self._override(STATUS_MESSAGE_PERIOD, section, "uint")

    def _fill_vehicle_settings(self, section: Any) -> None:
        settings = self.settings
        settings.vehicle_provider = VehicleProvider.from_string(
            self._override(VEHICLE_PROVIDER, section, "str"))
        if settings.vehicle_provider is VehicleProvider.GPS:
            self._fill_gps_settings(_sub(section, GPS_SETTINGS))
        if settings.vehicle_provider is VehicleProvider.SIMULATION:
            self._fill_simulation_settings(_sub(section, SIMULATION_SETTINGS))

    def _fill_gps_settings(self, section: Any) -> None:
        settings = self.settings
        settings.gps_provider = GpsProvider.from_string(self._override(GPS_PROVIDER, section, "str"))
        settings.stop_radius = self._override(STOP_RADIUS, section, "int")
        if settings.gps_provider is GpsProvider.RUTX09:
            self._fill_rutx09_settings(_sub(section, RUTX_09_SETTINGS))

    def _fill_rutx09_settings(self, section: Any) -> None:
        settings = self.settings
        settings.rutx_ip = self._override(RUT_IP, section, "str")
        settings.rutx_port = self._override(RUT_PORT, section, "int")
        settings.rutx_slave_id = self._override(RUT_SLAVE_ID, section, "int")

    def _fill_simulation_settings(self, section: Any) -> None:
        settings = self.settings
        settings.stop_wait_time = self._override(OSM_STOP_WAIT_TIME, section, "uint")
        if self._count(OSM_SPEED_OVERRIDE):
            settings.speed_override = True
            settings.speed_override_mps = self._value(OSM_SPEED_OVERRIDE)
        else:
            settings.speed_override = _config_value(section, OSM_SPEED_OVERRIDE, "bool")
            settings.speed_override_mps = _config_value(section, OSM_SPEED_OVERRIDE_MPS, "uint")

    def _fill_fleet_settings(self, section: Any) -> None:
        settings = self.settings
        settings.fleet_provider = FleetProvider.from_string(self._override(FLEET_PROVIDER, section, "str"))
        if settings.fleet_provider is FleetProvider.INTERNAL_PROTOCOL:
            self._fill_internal_protocol_settings(_sub(section, INTERNAL_PROTOCOL_SETTINGS))

    def _fill_internal_protocol_settings(self, section: Any) -> None:
        settings = self.settings
        settings.module_gateway_ip = self._override(MODULE_GATEWAY_IP, section, "str")
        settings.module_gateway_port = self._override(MODULE_GATEWAY_PORT, section, "int")
        settings.device_name = _config_value(section, DEVICE_NAME, "str")
        settings.device_role = _config_value(section, DEVICE_ROLE, "str")
        settings.device_priority = _config_value(section, DEVICE_PRIORITY, "uint")
        settings.reconnect_period_s = _config_value(section, RECONNECT_PERIOD, "int")

    def _fill_map_settings(self, section: Any) -> None:
        settings = self.settings
        settings.map_file_path = Path(self._override(OSM_MAP, section, "str"))
        settings.route_name = self._override(OSM_ROUTE, section, "str")

    def formatted_settings(self) -> str:
        """Human-readable summary of the parsed settings."""
        settings = self.settings
        if settings is None:
            raise SettingsError("Settings have not been parsed")
        lines = [
            f"config-file: {_quoted(settings.config)}",
            f"verbose: {'TRUE' if settings.verbose else 'FALSE'}",
            f"log-path: {_quoted(settings.log_path)}",
            f"period-ms: {settings.message_period_ms}",
        ]
        if settings.fleet_provider is FleetProvider.INTERNAL_PROTOCOL:
            lines += [
                "fleet-providerr: INTERNAL_PROTOCOL",
                f"\tmodule-gateway-ip: {settings.module_gateway_ip}",
                f"\tmodule-gateway-port: {settings.module_gateway_port}",
                f"\tdevice-role: {settings.device_role}",
                f"\tdevice-name: {settings.device_name}",
                f"\tdevice-priority: {settings.device_priority}",
                f"\treconnect-period-s: {settings.reconnect_period_s}",
            ]
        elif settings.fleet_provider is FleetProvider.NO_CONNECTION:
            lines.append("Fleet provider: NO-CONNECTION")
        else:
            lines.append("fleet-provider: INVALID")

        if settings.vehicle_provider is VehicleProvider.SIMULATION:
            lines.append("vehicle-provider: SIMULATION")
            if settings.speed_override:
                lines.append("\tspeed-override: TRUE")
                lines.append(f"\tspeed-override-mps: {settings.speed_override_mps}")
            else:
                lines.append("\tspeed-override: FALSE")
            lines.append(f"\twait-at-stop-s: {settings.stop_wait_time}")
        elif settings.vehicle_provider is VehicleProvider.GPS:
            lines.append("vehicle-provider: GPS")
            if settings.gps_provider is GpsProvider.RUTX09:
                lines += [
                    "\tgps-provider: RUTX09",
                    f"\trutx-ip: {settings.rutx_ip}",
                    f"\trutx-port: {settings.rutx_port}",
                    f"\trutx-slave-id: {settings.rutx_slave_id}",
                ]
            elif settings.gps_provider is GpsProvider.UBLOX:
                lines.append("\tgps-provider: UBLOX")
            elif settings.gps_provider is GpsProvider.MAP:
                lines.append("\tgps-provider: MAP")
            else:
                lines.append("\tgps-provider: INVALID")
        else:
            lines.append("vehicle-provider: INVALID")

        lines.append(f"map: {_quoted(settings.map_file_path)}")
        route = settings.route_name if settings.route_name else '""'
        return "\n".join(lines) + "\n" + f"default-route: {route}"