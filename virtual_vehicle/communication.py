"""Shared run context and the fleet communication interfaces."""

from __future__ import annotations

import copy
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from virtual_vehicle.messages import Command, Status
from virtual_vehicle.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class GlobalContext:
    """State shared by every part of a run: the settings and the stop signal."""

    settings: Optional[Settings] = None
    _stop_event: threading.Event = field(default_factory=threading.Event, repr=False)

    def stop(self) -> None:
        """Ask every loop of the run to finish."""
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        """True once :meth:`stop` has been called."""
        return self._stop_event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds, waking early on stop; return whether stopped."""
        return self._stop_event.wait(max(0.0, timeout))


class Communication(ABC):
    """Connection to the fleet: sends statuses and keeps the latest command."""

    def __init__(self, context: GlobalContext) -> None:
        self.context = context
        self._command = Command()
        self._connected = False

    @abstractmethod
    def initialize_connection(self) -> bool:
        """Connect to the server; return True on success."""

    @abstractmethod
    def make_request(self, status: Status) -> bool:
        """Send ``status`` and receive a command; return True on success."""

    @property
    def command(self) -> Command:
        """A copy of the most recent command received."""
        return copy.deepcopy(self._command)

    @property
    def is_connected(self) -> bool:
        """True while the connection is alive."""
        return self._connected


class TerminalOutput(Communication):
    """Communication with no fleet behind it: statuses are only logged."""

    def initialize_connection(self) -> bool:
        logger.info("Empty connection established")
        return True

    def make_request(self, status: Status) -> bool:
        logger.info("Moved to position lat: %s lon: %s speed: %s",
                    status.latitude, status.longitude, status.speed)
        logger.info("Sending status")
        logger.info("Received command")
        return True