import pytest

from virtual_vehicle.osm import Point, Route, Station, Way
from virtual_vehicle.utils import (
    compare_missions,
    construct_mission_string,
    distance_between,
    export_route_to_fleet_init_format,
    haversine_distance,
    time_to_drive_ms,
)


def test_distance_zero_for_same_point():
    assert haversine_distance(49.2, 16.6, 49.2, 16.6) == 0.0


def test_distance_is_symmetric():
    d1 = haversine_distance(49.2, 16.6, 49.3, 16.7)
    d2 = haversine_distance(49.3, 16.7, 49.2, 16.6)
    assert d1 == pytest.approx(d2)
    assert d1 > 0


def test_one_degree_of_latitude_is_about_111_km():
    d = haversine_distance(0.0, 0.0, 1.0, 0.0)
    assert 111_000 < d < 111_400


def test_distance_between_points_matches_coordinates():
    a = Point(1, 10.0, 10.0)
    b = Point(2, 10.01, 10.02)
    assert distance_between(a, b) == pytest.approx(haversine_distance(10.0, 10.0, 10.01, 10.02))


def test_mission_string_empty():
    assert construct_mission_string([]) == "[]"


def test_mission_string_lists_names():
    mission = [Station("a", 1.0, 2.0), Station("b", 3.0, 4.0)]
    assert construct_mission_string(mission) == '["a","b"]'


def test_time_to_drive_zero_speed():
    assert time_to_drive_ms(100.0, 0.0) == 0


def test_time_to_drive_scales_with_distance():
    assert time_to_drive_ms(100.0, 10.0) == 10000
    assert time_to_drive_ms(200.0, 10.0) == 2 * time_to_drive_ms(100.0, 10.0)


def test_time_to_drive_truncates():
    assert time_to_drive_ms(1.0, 3.0) == int(1000 / 3)


def test_compare_missions_equal_within_precision():
    m1 = [Station("a", 1.0, 2.0)]
    m2 = [Station("a", 1.0 + 1e-7, 2.0 - 1e-7)]
    assert compare_missions(m1, m2) is True


def test_compare_missions_differences():
    base = [Station("a", 1.0, 2.0)]
    assert compare_missions(base, []) is False
    assert compare_missions(base, [Station("b", 1.0, 2.0)]) is False
    assert compare_missions(base, [Station("a", 1.001, 2.0)]) is False
    assert compare_missions(base, [Station("a", 1.0, 2.001)]) is False


def test_export_route_none():
    assert export_route_to_fleet_init_format(None) == ""


def test_export_route_format():
    way = Way(0)
    p1 = Point(1, 0.0, 0.0, speed=1.0)
    p2 = Point(2, 0.0, 0.001, True, "stop")
    p3 = Point(3, 0.0, 0.002)
    for p in (p1, p2, p3):
        way.append_point(p)
    route = Route(0, "r")
    route.append_way(way)
    exported = export_route_to_fleet_init_format(route)
    e2 = '{ "latitude":0.0000000, "longitude":0.0010000, "stationName": "stop"},'
    e3 = '{ "latitude":0.0000000, "longitude":0.0020000, "stationName": null},'
    assert exported == e2 + e3 + e2