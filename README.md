# virtual-vehicle

A virtual vehicle for testing fleet software without a real car. It
either drives along a route taken from an OpenStreetMap `.osm` file or
follows positions reported by a GPS source. On every step it builds a
status (position, speed, state, next stop), hands it to the fleet
communication, and acts on the latest command: start, stop, or a new
mission and route.

## Installation

```
pip install .
```

Python 3.10 or later is needed. The package has no third-party
dependencies.

## Running

```
virtual-vehicle --config config.json
```

Without arguments, or with `-h`/`--help`, the program prints its usage
and exits with code 0. Invalid arguments or configuration make it print
an error to standard error and exit with code 1. The configuration file
is JSON with these sections:

```json
{
  "general-settings": {
    "log-path": "/tmp/",
    "verbose": false,
    "period-ms": 1000
  },
  "vehicle-settings": {
    "vehicle-provider": "simulation",
    "simulation-settings": {
      "speed-override": false,
      "speed-override-mps": 3,
      "wait-at-stop-s": 10
    },
    "gps-settings": {
      "gps-provider": "rutx09",
      "stop-radius-m": 5,
      "rutx09-settings": {
        "rutx-ip": "192.168.1.1",
        "rutx-port": 502,
        "rutx-slave-id": 1
      }
    }
  },
  "fleet-settings": {
    "fleet-provider": "no-connection"
  },
  "map-settings": {
    "map": "map.osm",
    "default-route": ""
  }
}
```

The log path must exist, and for the `simulation` provider so must the
map file. Provider names are matched without regard to case.

Most values can be overridden on the command line, for example
`-c/--config`, `--log-path`, `-v/--verbose`, `--period-ms=500`,
`--vehicle-provider=gps`, `--gps-provider=map`, `--rutx-ip`,
`--rutx-port`, `--rutx-slave-id`, `--stop-radius-m`,
`--speed-override=4`, `--wait-at-stop-s=3`, `--fleet-provider`,
`--module-gateway-ip`, `--module-gateway-port`, `--map=other.osm` and
`--default-route=loop`. Giving an option twice is an error.

Vehicle providers:

- `simulation`: drives along a route of the map, waits at stops of the
  mission, and turns around at the end of a route that is not circular.
- `gps`: reads its position from a GPS source: `rutx09` (a router read
  over Modbus TCP), `map` (steps through the points of a map route) or
  `ublox`. The map is loaded in this mode too, to look up routes and
  stops.

If `default-route` is empty, the first route of the map is used.

Logging goes to `virtual-vehicle-utility.log` in the log path, rotated
at 50 MiB with five old files kept; with `verbose` it also goes to the
console. The program runs until it receives SIGINT or SIGTERM.

## What it does not do

- The `internal-protocol` fleet provider is accepted in the settings,
  but the package has no client for it; choosing it ends the run with
  an error. Only `no-connection`, which logs each status and never
  receives a command, is available.
- The `ublox` GPS source is not implemented: it logs an error and
  reports a zero position and speed.

## Maps

Maps are OSM XML files, optionally compressed as `.gz` or `.bz2`. Nodes
tagged `stop=true` with a `name` are stops; a `speed` tag gives the
speed in m/s, which carries forward to the following nodes of a route
(5 m/s if the first node has none). Each relation with a `name` tag is
a route made of its member ways, in order.

## Library use

```python
from virtual_vehicle.mapping import Map

world = Map()
world.load_map_from_file("map.osm")
world.prepare_routes()
route = world.get_route("loop")
print(route.position)
route.set_next_position()
```

- `virtual_vehicle.osm`: `Point`, `Way`, `Route` and `Station`.
- `virtual_vehicle.mapping`: `read_osm_file`, `OsmHandler` and `Map`.
- `virtual_vehicle.messages`: `Status`, `Command`, `AutonomyState`,
  `AutonomyAction`.
- `virtual_vehicle.settings`: `Settings`, `SettingsParser`,
  `SettingsError` and the provider enums.
- `virtual_vehicle.gps`: `MapGps`, `Rutx09`, `UBlox`, `ModbusTcpClient`,
  `unpack_float`, `unpack_unsigned_int`.
- `virtual_vehicle.vehicles`: `SimVehicle` and `GpsVehicle`.
- `virtual_vehicle.utils`: `haversine_distance`, `distance_between`,
  `time_to_drive_ms`, `compare_missions`, `construct_mission_string`,
  `export_route_to_fleet_init_format`.

## Tests

```
pip install .[test]
pytest
```