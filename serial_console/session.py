from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .clock import SessionClock
from .codec import EncodingMode
from .config import PortConfig, Settings
from .connection import Connection, ConnectionRegistry, TransportFactory, open_serial
from .discovery import PortDescriptor, list_ports, scan_ports
from .errors import EnumerationError, NotOpen
from .events import Event, EventBus, Frame
from .history import HistoryBuffer, HistoryEntry, RecallDirection
from .session_log import SessionLog
from .writer import Writer

_logger = logging.getLogger(__name__)


class SerialSession:
    """
    In-process command interface for a presentation layer.

    Calls in: list_ports, open, close, send, recall.
    Events out: next_event() / events() drain one ordered EventBus carrying
    frames, status changes and errors for every port in the session.
    Args:
        settings (Settings, optional): Loaded configuration, defaults to Settings()
        log_dir (str | Path, optional): Overrides settings.log_dir
        log_name (str, optional): Log file prefix, e.g. the port being monitored
        transport_factory: Callable (port, config) -> serial.Serial-like object
    """

    def __init__(self, settings: Optional[Settings] = None, *, log_dir: Optional[Union[str, Path]] = None,
                 log_name: Optional[str] = None, transport_factory: TransportFactory = open_serial) -> None:
        self.settings = settings or Settings()
        self.bus = EventBus()
        self.clock = SessionClock()
        self.history = HistoryBuffer(self.settings.history_capacity, dedupe=self.settings.history_dedupe)
        self.log: Optional[SessionLog] = None
        if self.settings.log_enabled:
            self.log = SessionLog(log_dir or self.settings.log_dir, started=self.clock.started,
                                  name=log_name, bus=self.bus)
        self.registry = ConnectionRegistry(bus=self.bus, clock=self.clock, log=self.log,
                                           transport_factory=transport_factory)
        self.writer = Writer(self.history)

    def __enter__(self) -> "SerialSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close_all()

    @staticmethod
    def list_ports(*, usb_only: bool = False) -> List[PortDescriptor]:
        return list_ports(usb_only=usb_only)

    def scan_ports(self, *, usb_only: bool = False) -> Tuple[List[PortDescriptor], Optional[EnumerationError]]:
        """Like list_ports() but reports a failure as an ERROR event instead of raising."""
        ports, error = scan_ports(usb_only=usb_only)
        if error is not None:
            self.bus.publish(Event.error("", error))
        return ports, error

    def open(self, port: Union[str, PortDescriptor], config: Optional[PortConfig] = None, *,
             mode: Optional[EncodingMode] = None) -> Connection:
        return self.registry.open(port, config or self.settings.port, mode=mode or self.settings.mode)

    def connection(self, port: Union[str, PortDescriptor]) -> Connection:
        connection = self.registry.get(port)
        if connection is None:
            name = port.name if isinstance(port, PortDescriptor) else str(port)
            raise NotOpen(name, "closed")
        return connection

    def close(self, port: Union[str, PortDescriptor]) -> None:
        connection = self.registry.get(port)
        if connection is not None:
            connection.close()

    def send(self, port: Union[str, PortDescriptor], text: str, mode: Optional[EncodingMode] = None,
             append_line_feed: Optional[bool] = None) -> Optional[Frame]:
        if append_line_feed is None:
            append_line_feed = self.settings.line_feed
        return self.writer.send(self.connection(port), text, mode or self.settings.mode, append_line_feed)

    def recall(self, direction: RecallDirection) -> Optional[HistoryEntry]:
        return self.history.recall(direction)

    def next_event(self, timeout: Optional[float] = None) -> Optional[Event]:
        return self.bus.get(timeout=timeout)

    def events(self) -> List[Event]:
        return self.bus.drain()

    def close_all(self) -> None:
        """End the session: close every connection, then the log file."""
        try:
            self.registry.close_all()
        finally:
            if self.log is not None:
                self.log.close()
