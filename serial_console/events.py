"""
Frames and the ordered event channel between the core and its consumer.
"""

from __future__ import annotations

import queue
from dataclasses import dataclass
from datetime import datetime
from enum import Enum, auto
from typing import Any, List, Optional


class Direction(Enum):
    SENT = "SENT"
    RECEIVED = "RECV"


@dataclass(frozen=True)
class Frame:
    """One timestamped chunk of bytes sent to or received from a port."""
    data: bytes
    timestamp: datetime
    direction: Direction
    port: str = ""


class EventType(Enum):
    FRAME = auto()
    STATUS = auto()
    ERROR = auto()
    LOG_ERROR = auto()


@dataclass(frozen=True)
class Event:
    """
    Event with optional data payload.
    FRAME: data is a Frame, text the decoded payload (None if decoding failed)
    STATUS: data is the new PortState
    ERROR / LOG_ERROR: data is the exception
    """
    type: EventType
    port: str = ""
    data: Optional[Any] = None
    text: Optional[str] = None

    @classmethod
    def frame(cls, frame: Frame, text: Optional[str] = None) -> "Event":
        return cls(EventType.FRAME, frame.port, frame, text)

    @classmethod
    def status(cls, port: str, state: Any) -> "Event":
        return cls(EventType.STATUS, port, state)

    @classmethod
    def error(cls, port: str, error: BaseException) -> "Event":
        return cls(EventType.ERROR, port, error, str(error))

    @classmethod
    def log_error(cls, error: BaseException) -> "Event":
        return cls(EventType.LOG_ERROR, "", error, str(error))


class EventBus:
    """
    Unbounded FIFO of events.

    Producers (the reader threads and the caller's thread) publish; the
    presentation layer consumes. Events from one producer arrive in the
    order they were published.
    """

    def __init__(self) -> None:
        self._queue: "queue.Queue[Event]" = queue.Queue()

    def publish(self, event: Event) -> None:
        self._queue.put(event)

    def get(self, timeout: Optional[float] = None) -> Optional[Event]:
        """Block for the next event; None once timeout expires."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def get_nowait(self) -> Optional[Event]:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def drain(self) -> List[Event]:
        out: List[Event] = []
        while True:
            event = self.get_nowait()
            if event is None:
                return out
            out.append(event)

    def empty(self) -> bool:
        return self._queue.empty()
