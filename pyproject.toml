[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "virtual-vehicle"
version = "3.1.4"
description = "Virtual vehicle that drives routes from .osm maps or follows a GPS source and reports its status to a fleet"
requires-python = ">=3.10"
dependencies = []
keywords = ["vehicle", "simulation", "openstreetmap", "osm", "gps", "modbus", "fleet", "autonomy"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: GIS",
    "Topic :: Software Development :: Testing",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
virtual-vehicle = "virtual_vehicle.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["virtual_vehicle"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
