"""Reading OpenStreetMap XML files into points, ways and routes."""

from __future__ import annotations

import bz2
import gzip
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import IO, Dict, List, Mapping, Optional, Sequence, Union

from virtual_vehicle.osm import Point, Route, Way

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# OSM stores coordinates as fixed-point numbers with this many decimal places.
_COORDINATE_DECIMALS = 7


class OsmHandler:
    """Collects nodes, ways and relations into points, ways and routes."""

    def __init__(self) -> None:
        self.points: List[Point] = []
        self.ways: List[Way] = []
        self.routes: List[Route] = []
        self._points_by_id: Dict[int, Point] = {}
        self._ways_by_id: Dict[int, Way] = {}

    def node(self, node_id: int, latitude: float, longitude: float,
             tags: Mapping[str, str]) -> None:
        """Record a node as a point, with its stop flag, name and speed if tagged."""
        stop = tags.get("stop") == "true"
        stop_name = ""
        if stop:
            if "name" not in tags:
                logger.warning("Warning! Found unnamed stop that will be ignored!")
                stop = False
            else:
                stop_name = tags["name"]
        speed = float(tags["speed"]) if "speed" in tags else 0.0
        point = Point(node_id,
                      round(float(latitude), _COORDINATE_DECIMALS),
                      round(float(longitude), _COORDINATE_DECIMALS),
                      stop, stop_name, speed)
        self.points.append(point)
        self._points_by_id.setdefault(node_id, point)

    def way(self, way_id: int, node_refs: Sequence[int]) -> None:
        """Build a way from copies of already recorded points."""
        current = Way(way_id)
        for ref in node_refs:
            found = self._points_by_id.get(ref)
            if found is None:
                raise ValueError(f"Point {ref} in way was not found points")
            point = found.copy()
            current.append_point(point)
            if found.is_stop:
                current.append_stop(point)
        self.ways.append(current)
        self._ways_by_id.setdefault(way_id, current)

    def relation(self, relation_id: int, member_refs: Sequence[int],
                 tags: Mapping[str, str]) -> None:
        """Build a named route from the ways a relation refers to."""
        if not member_refs:
            raise ValueError(f"Relation {relation_id} does not have a way")
        if "name" not in tags:
            raise ValueError(f"Relation {relation_id} has no name")
        route = Route(relation_id, tags["name"])
        for ref in member_refs:
            way = self._ways_by_id.get(ref)
            if way is None:
                raise ValueError(f"Way {ref} was not found in relations")
            route.append_way(way)
        self.routes.append(route)


def _open(path: Path) -> IO[bytes]:
    suffix = path.suffix.lower()
    if suffix == ".gz":
        return gzip.open(path, "rb")
    if suffix == ".bz2":
        return bz2.open(path, "rb")
    return open(path, "rb")


def _tags(element: ET.Element) -> Dict[str, str]:
    return {tag.get("k", ""): tag.get("v", "") for tag in element.iter("tag")}


def _required(element: ET.Element, attribute: str) -> str:
    value = element.get(attribute)
    if value is None:
        raise ValueError(f"OSM {element.tag} is missing the '{attribute}' attribute")
    return value


def read_osm_file(path: PathLike) -> OsmHandler:
    """Parse an .osm file (optionally .gz or .bz2) and return the filled handler."""
    path = Path(path)
    with _open(path) as stream:
        try:
            root = ET.parse(stream).getroot()
        except ET.ParseError as error:
            raise ValueError(f"Cannot parse OSM file {path}: {error}") from error
    if root.tag != "osm":
        raise ValueError(f"File {path} is not an OSM XML file")

    handler = OsmHandler()
    for element in root:
        if element.tag == "node":
            handler.node(int(_required(element, "id")),
                         float(_required(element, "lat")),
                         float(_required(element, "lon")),
                         _tags(element))
        elif element.tag == "way":
            handler.way(int(_required(element, "id")),
                        [int(_required(nd, "ref")) for nd in element.iter("nd")])
        elif element.tag == "relation":
            handler.relation(int(_required(element, "id")),
                             [int(_required(member, "ref")) for member in element.iter("member")],
                             _tags(element))
    return handler


class Map:
    """Routes and points of a map used for simulated driving."""

    def __init__(self) -> None:
        self.routes: List[Route] = []
        self.points: List[Point] = []

    def load_map_from_file(self, path: PathLike) -> None:
        """Load points and routes from an .osm file."""
        handler = read_osm_file(path)
        self.routes = handler.routes
        self.points = handler.points

    def get_route(self, route_name: str) -> Optional[Route]:
        """Return the first route with the given name, or None."""
        return next((route for route in self.routes if route.route_name == route_name), None)

    def prepare_routes(self) -> None:
        """Prepare every route for driving."""
        for route in self.routes:
            route.prepare_route()

    def speed_override(self, speed: float) -> None:
        """Set the same speed, in m/s, on every point of every route."""
        for route in self.routes:
            route.speed_override(speed)