import json
from pathlib import Path

import pytest

from virtual_vehicle.settings import (
    FleetProvider,
    GpsProvider,
    Settings,
    SettingsError,
    SettingsParser,
    VehicleProvider,
)


@pytest.fixture
def config(tmp_path):
    map_file = tmp_path / "map.osm"
    map_file.write_text("<osm/>", encoding="utf-8")
    return {
        "general-settings": {"log-path": str(tmp_path), "verbose": False, "period-ms": 1000},
        "vehicle-settings": {
            "vehicle-provider": "simulation",
            "gps-settings": {
                "gps-provider": "rutx09",
                "stop-radius-m": 5,
                "rutx09-settings": {"rutx-ip": "127.0.0.1", "rutx-port": 502, "rutx-slave-id": 1},
            },
            "simulation-settings": {"speed-override": False, "speed-override-mps": 3, "wait-at-stop-s": 10},
        },
        "fleet-settings": {
            "fleet-provider": "internal-protocol",
            "internal-protocol-settings": {
                "module-gateway-ip": "localhost",
                "module-gateway-port": 1636,
                "device-name": "virtual_vehicle",
                "device-role": "autonomy",
                "device-priority": 1,
                "reconnect-period-s": 30,
            },
        },
        "map-settings": {"map": str(map_file), "default-route": ""},
    }


def _write(tmp_path: Path, data) -> str:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def test_provider_from_string_is_case_insensitive():
    assert VehicleProvider.from_string("simulation") is VehicleProvider.SIMULATION
    assert VehicleProvider.from_string("Gps") is VehicleProvider.GPS
    assert GpsProvider.from_string("rutx09") is GpsProvider.RUTX09
    assert GpsProvider.from_string("UbLoX") is GpsProvider.UBLOX
    assert GpsProvider.from_string("map") is GpsProvider.MAP
    assert FleetProvider.from_string("internal-protocol") is FleetProvider.INTERNAL_PROTOCOL
    assert FleetProvider.from_string("No-Connection") is FleetProvider.NO_CONNECTION


def test_provider_from_unknown_string_is_invalid():
    assert VehicleProvider.from_string("boat") is VehicleProvider.INVALID
    assert GpsProvider.from_string("") is GpsProvider.INVALID
    assert FleetProvider.from_string("internal_protocol") is FleetProvider.INVALID


def test_provider_string_round_trip():
    for enum in (FleetProvider, VehicleProvider, GpsProvider):
        for member in enum:
            assert enum.from_string(str(member).lower()) is member
    assert str(FleetProvider.NO_CONNECTION) == "NO-CONNECTION"


def test_settings_defaults():
    settings = Settings()
    assert settings.stop_wait_time == 5
    assert settings.device_priority == 10
    assert settings.reconnect_period_s == 30
    assert settings.fleet_provider is FleetProvider.INVALID


def test_no_arguments_prints_help(capsys):
    parser = SettingsParser()
    assert parser.parse_settings([]) is False
    assert "VirtualVehicle" in capsys.readouterr().out
    assert parser.settings is None


def test_help_option_returns_false(tmp_path, config):
    parser = SettingsParser()
    assert parser.parse_settings(["-c", _write(tmp_path, config), "--help"]) is False
    assert parser.settings is None


def test_parse_from_config(tmp_path, config):
    parser = SettingsParser()
    assert parser.parse_settings(["--config", _write(tmp_path, config)]) is True
    settings = parser.settings
    assert settings.vehicle_provider is VehicleProvider.SIMULATION
    assert settings.fleet_provider is FleetProvider.INTERNAL_PROTOCOL
    assert settings.log_path == tmp_path
    assert settings.message_period_ms == 1000
    assert settings.stop_wait_time == 10
    assert settings.speed_override is False
    assert settings.speed_override_mps == 3
    assert settings.module_gateway_ip == "localhost"
    assert settings.module_gateway_port == 1636
    assert settings.device_name == "virtual_vehicle"
    assert settings.device_role == "autonomy"
    assert settings.device_priority == 1
    assert settings.route_name == ""
    assert settings.gps_provider is GpsProvider.INVALID


def test_command_line_overrides_config(tmp_path, config):
    parser = SettingsParser()
    argv = ["-c", _write(tmp_path, config), "-v", "--period-ms=250", "--speed-override=7",
            "--wait-at-stop-s", "2", "--module-gateway-port=4000", "--default-route", "loop"]
    assert parser.parse_settings(argv) is True
    settings = parser.settings
    assert settings.verbose is True
    assert settings.message_period_ms == 250
    assert settings.speed_override is True
    assert settings.speed_override_mps == 7
    assert settings.stop_wait_time == 2
    assert settings.module_gateway_port == 4000
    assert settings.route_name == "loop"


def test_gps_vehicle_fills_rutx_settings(tmp_path, config):
    config["vehicle-settings"]["vehicle-provider"] = "gps"
    parser = SettingsParser()
    assert parser.parse_settings(["-c", _write(tmp_path, config), "--rutx-port", "1502"]) is True
    settings = parser.settings
    assert settings.gps_provider is GpsProvider.RUTX09
    assert settings.rutx_ip == "127.0.0.1"
    assert settings.rutx_port == 1502
    assert settings.rutx_slave_id == 1
    assert settings.stop_radius == 5


def test_missing_config_argument(tmp_path):
    with pytest.raises(SettingsError):
        SettingsParser().parse_settings(["--log-path", str(tmp_path)])


def test_duplicate_argument(tmp_path, config, capsys):
    path = _write(tmp_path, config)
    with pytest.raises(SettingsError):
        SettingsParser().parse_settings(["-c", path, "--log-path", str(tmp_path), "--log-path", str(tmp_path)])
    assert "duplicate --log-path" in capsys.readouterr().err


def test_unmatched_argument(tmp_path, config, capsys):
    with pytest.raises(SettingsError):
        SettingsParser().parse_settings(["-c", _write(tmp_path, config), "stray"])
    assert "stray" in capsys.readouterr().err


def test_unknown_option(tmp_path, config):
    with pytest.raises(SettingsError):
        SettingsParser().parse_settings(["-c", _write(tmp_path, config), "--no-such-option"])


def test_non_numeric_value(tmp_path, config):
    with pytest.raises(SettingsError):
        SettingsParser().parse_settings(["-c", _write(tmp_path, config), "--rutx-port=abc"])


def test_invalid_vehicle_provider(tmp_path, config):
    config["vehicle-settings"]["vehicle-provider"] = "boat"
    with pytest.raises(SettingsError):
        SettingsParser().parse_settings(["-c", _write(tmp_path, config)])


def test_invalid_gps_provider(tmp_path, config):
    config["vehicle-settings"]["vehicle-provider"] = "gps"
    with pytest.raises(SettingsError):
        SettingsParser().parse_settings(["-c", _write(tmp_path, config), "--gps-provider", "nothing"])


def test_invalid_fleet_provider(tmp_path, config):
    with pytest.raises(SettingsError):
        SettingsParser().parse_settings(["-c", _write(tmp_path, config), "--fleet-provider", "empty"])


def test_missing_log_path(tmp_path, config):
    config["general-settings"]["log-path"] = str(tmp_path / "missing")
    with pytest.raises(SettingsError):
        SettingsParser().parse_settings(["-c", _write(tmp_path, config)])


def test_missing_map_for_simulation(tmp_path, config):
    with pytest.raises(SettingsError):
        SettingsParser().parse_settings(["-c", _write(tmp_path, config), "--map", str(tmp_path / "none.osm")])


def test_missing_config_key(tmp_path, config):
    del config["general-settings"]["period-ms"]
    with pytest.raises(SettingsError):
        SettingsParser().parse_settings(["-c", _write(tmp_path, config)])


def test_unreadable_config_file(tmp_path):
    with pytest.raises(SettingsError):
        SettingsParser().parse_settings(["-c", str(tmp_path / "absent.json")])


def test_formatted_settings(tmp_path, config):
    parser = SettingsParser()
    parser.parse_settings(["-c", _write(tmp_path, config)])
    text = parser.formatted_settings()
    lines = text.split("\n")
    assert "verbose: FALSE" in lines
    assert "fleet-providerr: INTERNAL_PROTOCOL" in lines
    assert "vehicle-provider: SIMULATION" in lines
    assert "\tspeed-override: FALSE" in lines
    assert "\twait-at-stop-s: 10" in lines
    assert lines[-1] == 'default-route: ""'


def test_formatted_settings_no_connection_gps(tmp_path, config):
    config["vehicle-settings"]["vehicle-provider"] = "gps"
    config["fleet-settings"]["fleet-provider"] = "no-connection"
    parser = SettingsParser()
    parser.parse_settings(["-c", _write(tmp_path, config), "--gps-provider", "map", "--default-route", "loop"])
    lines = parser.formatted_settings().split("\n")
    assert "Fleet provider: NO-CONNECTION" in lines
    assert "vehicle-provider: GPS" in lines
    assert "\tgps-provider: MAP" in lines
    assert lines[-1] == "default-route: loop"


def test_formatted_settings_before_parse():
    with pytest.raises(SettingsError):
        SettingsParser().formatted_settings()