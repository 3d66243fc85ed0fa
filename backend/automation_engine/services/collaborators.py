"""Interfaces of the platform services the engine reads from and writes to."""

from abc import ABC, abstractmethod
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Any, Deque, Dict

from automation_engine.core.exceptions import ReadingUnavailable


@dataclass(frozen=True)
class Reading:
    deployment_id: int
    value: float
    timestamp: datetime


class ReadingSource(ABC):
    @abstractmethod
    def get_latest_value(self, deployment_id: int) -> Reading:
        """Return the current reading or raise ReadingUnavailable."""


class AlertSink(ABC):
    @abstractmethod
    def create_alert(self, payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        """Create an alert and return the created entity (must contain ``id``)."""


class ActuatorCommandSink(ABC):
    @abstractmethod
    def send_command(self, deployment_id: int, payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        """Send a command to an actuator deployment and return ``{id, status}``."""


class InMemoryReadingSource(ReadingSource):
    """Reading source fed by a value stream, for simulation and tests.

    ``push`` appends readings per deployment; ``get_latest_value`` returns the
    newest one. With ``consume=True`` each read pops the oldest pending
    reading instead, replaying the stream one value per evaluation.
    """

    def __init__(self, consume: bool = False, history: int = 100) -> None:
        self._consume = consume
        self._streams: Dict[int, Deque[Reading]] = defaultdict(lambda: deque(maxlen=history))
        self._last: Dict[int, Reading] = {}
        self._lock = Lock()

    def push(self, deployment_id: int, value: float, timestamp: datetime) -> Reading:
        reading = Reading(deployment_id=deployment_id, value=float(value), timestamp=timestamp)
        with self._lock:
            self._streams[deployment_id].append(reading)
            self._last[deployment_id] = reading
        return reading

    def get_latest_value(self, deployment_id: int) -> Reading:
        with self._lock:
            stream = self._streams.get(deployment_id)
            if self._consume:
                if not stream:
                    raise ReadingUnavailable(deployment_id, "no pending reading")
                return stream.popleft()
            reading = self._last.get(deployment_id)
        if reading is None:
            raise ReadingUnavailable(deployment_id)
        return reading
