"""Virtual vehicle driving routes from OSM maps or following a GPS source."""

__version__ = "3.1.4"