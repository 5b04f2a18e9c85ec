"""Command-line entry point: read the settings, set up logging and drive the vehicle."""

from __future__ import annotations

import logging
import logging.handlers
import signal
import sys
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Sequence, Union

from virtual_vehicle.communication import Communication, GlobalContext, TerminalOutput
from virtual_vehicle.settings import FleetProvider, Settings, SettingsParser, VehicleProvider
from virtual_vehicle.vehicles import GpsVehicle, SimVehicle, VirtualVehicle

VERSION = "3.1.4"
LOG_FILE_NAME = "virtual-vehicle-utility.log"
LOGGER_NAME = "virtual_vehicle"
MAX_LOG_FILE_SIZE = 50 * 1024 * 1024
ROTATED_LOG_FILES = 5

_LOG_FORMAT = "[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s"

logger = logging.getLogger(__name__)


def init_logger(log_path: Union[str, Path], verbose: bool) -> logging.Logger:
    """Log the package to a rotating file in ``log_path`` and, if verbose, to the console."""
    package_logger = logging.getLogger(LOGGER_NAME)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(_LOG_FORMAT)
    if verbose:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        console.setLevel(logging.DEBUG)
        package_logger.addHandler(console)

    file_handler = logging.handlers.RotatingFileHandler(
        Path(log_path) / LOG_FILE_NAME,
        maxBytes=MAX_LOG_FILE_SIZE,
        backupCount=ROTATED_LOG_FILES,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.DEBUG)
    package_logger.addHandler(file_handler)
    package_logger.setLevel(logging.DEBUG)
    return package_logger


@contextmanager
def _stop_on_signals(context: GlobalContext) -> Iterator[None]:
    """Stop the run context on SIGINT or SIGTERM while inside the block."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handler(_signum, _frame) -> None:
        context.stop()

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, handler)
    try:
        yield
    finally:
        for signum, old in previous.items():
            signal.signal(signum, old)


def _create_communication(settings: Settings, context: GlobalContext) -> Communication:
    if settings.fleet_provider is FleetProvider.NO_CONNECTION:
        return TerminalOutput(context)
    if settings.fleet_provider is FleetProvider.INTERNAL_PROTOCOL:
        raise RuntimeError("Internal protocol fleet provider is not supported")
    raise RuntimeError("Unsupported fleet provider")


def _create_vehicle(settings: Settings, com: Communication, context: GlobalContext) -> VirtualVehicle:
    if settings.vehicle_provider is VehicleProvider.SIMULATION:
        return SimVehicle(com, context)
    if settings.vehicle_provider is VehicleProvider.GPS:
        return GpsVehicle(com, context)
    raise RuntimeError("Unsupported vehicle provider")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the virtual vehicle; return the process exit code."""
    parser = SettingsParser()
    try:
        if not parser.parse_settings(argv):
            return 0
        settings = parser.settings
        context = GlobalContext(settings=settings)
        init_logger(settings.log_path, settings.verbose)
        logger.info("Version: %s Settings:\n%s", VERSION, parser.formatted_settings())
    except Exception as error:
        print(f"[ERROR] Error occurred during initialization: {error}", file=sys.stderr)
        return 1

    exit_code = 0
    with _stop_on_signals(context):
        try:
            com = _create_communication(settings, context)
            vehicle = _create_vehicle(settings, com, context)
            vehicle.initialize()
            vehicle.drive()
        except Exception as error:
            exit_code = 1
            logger.error("%s", error)
        finally:
            context.stop()
    return exit_code


if __name__ == "__main__":
    sys.exit(main())