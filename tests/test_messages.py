from virtual_vehicle.messages import AutonomyAction, AutonomyState, Command, Status
from virtual_vehicle.osm import Station


def test_enum_strings():
    assert str(Status(state=AutonomyState.IN_STOP)).startswith("state: IN_STOP ")
    assert str(Command(action=AutonomyAction.NO_ACTION)).startswith("action: NO_ACTION,")
    assert str(Status()).startswith("state: INVALID ")


def test_command_defaults():
    command = Command()
    assert command.action is AutonomyAction.INVALID
    assert command.route == ""
    assert command.mission == []


def test_command_equal_within_precision():
    first = Command([Station("A", 49.2, 16.6)], AutonomyAction.START, "r")
    second = Command([Station("A", 49.2 + 1e-8, 16.6)], AutonomyAction.START, "r")
    assert first == second


def test_command_differs_on_position():
    first = Command([Station("A", 49.2, 16.6)], AutonomyAction.START, "r")
    second = Command([Station("A", 49.201, 16.6)], AutonomyAction.START, "r")
    assert not first == second
    assert first != second


def test_command_differs_on_action_and_route():
    base = Command([Station("A", 49.2, 16.6)], AutonomyAction.START, "r")
    assert base != Command([Station("A", 49.2, 16.6)], AutonomyAction.STOP, "r")
    assert base != Command([Station("A", 49.2, 16.6)], AutonomyAction.START, "other")
    assert base != Command([], AutonomyAction.START, "r")


def test_command_str():
    command = Command([Station("A", 1.5, 2.5), Station("B", 3.0, 4.0)],
                      AutonomyAction.START, "route")
    assert str(command) == "action: START, route: route mission stops: [A;1.5;2.5],[B;3;4],"


def test_command_str_without_mission():
    assert str(Command(action=AutonomyAction.STOP, route="r")).endswith("mission stops: ")


def test_status_defaults():
    status = Status()
    assert status.state is AutonomyState.INVALID
    assert (status.latitude, status.longitude, status.speed) == (0.0, 0.0, 0.0)
    assert status.next_stop.name == ""


def test_status_str():
    status = Status(longitude=16.25, latitude=49.5, speed=3.0,
                    state=AutonomyState.IDLE, next_stop=Station("A", 49.5, 16.25))
    assert str(status) == "state: IDLE latitude: 49.5 longitude: 16.25 next stop: A"


def test_status_is_mutable():
    status = Status()
    status.state = AutonomyState.DRIVE
    status.next_stop = Station("B", 1.0, 2.0)
    assert str(status).startswith("state: DRIVE")
    assert str(status).endswith("next stop: B")