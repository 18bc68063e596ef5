"""
Per-port connection state machine and the registry enforcing one live
connection per port name.

    CLOSED --open--> OPENING --ok--> OPEN --close--> CLOSING --> CLOSED
                     OPENING --platform failure--> ERROR
                                     OPEN --I/O fault--> ERROR --reset/close--> CLOSED
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

import serial  # type: ignore

from .clock import SessionClock
from .codec import EncodingMode
from .config import PortConfig
from .discovery import PortDescriptor
from .errors import (
    AlreadyOpen,
    Busy,
    InvalidConfig,
    NotOpen,
    PlatformFailure,
    PortIOError,
    SerialConsoleError,
)
from .events import Direction, Event, EventBus, Frame
from .reader import ReaderTask
from .session_log import SessionLog

_logger = logging.getLogger(__name__)

WRITE_TIMEOUT: float = 1.0

TransportFactory = Callable[[str, PortConfig], Any]


class PortState(Enum):
    CLOSED = "closed"
    OPENING = "opening"
    OPEN = "open"
    CLOSING = "closing"
    ERROR = "error"


def open_serial(port: str, config: PortConfig) -> serial.Serial:
    """Open a real serial port with the given line settings."""
    return serial.Serial(port=port, write_timeout=WRITE_TIMEOUT, **config.to_serial_kwargs())


class Connection:
    """
    One port, its settings, its transport handle and its reader thread.

    Created by ConnectionRegistry.open(); not constructed directly.
    All state transitions happen under one lock. Writes are serialized
    by a second lock which close() also takes before releasing the transport.
    """

    _transport: Optional[Any]
    _reader: Optional[ReaderTask]

    def __init__(self, descriptor: PortDescriptor, config: PortConfig, *, registry: "ConnectionRegistry",
                 bus: EventBus, clock: SessionClock, log: Optional[SessionLog] = None,
                 mode: EncodingMode = EncodingMode.UTF8,
                 transport_factory: TransportFactory = open_serial) -> None:
        self.descriptor = descriptor
        self.config = config
        self.mode = mode
        self.bus = bus
        self.clock = clock
        self.log = log
        self._registry = registry
        self._factory = transport_factory
        self._state = PortState.CLOSED
        self._tearing_down = False
        self._transport = None
        self._reader = None
        self._lock = threading.RLock()
        self._write_lock = threading.Lock()

    def __repr__(self) -> str:
        return f"<Connection {self.port} {self._state.value}>"

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def port(self) -> str:
        return self.descriptor.name

    @property
    def state(self) -> PortState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is PortState.OPEN

    @property
    def reader(self) -> Optional[ReaderTask]:
        return self._reader

    def _set_state(self, state: PortState) -> None:
        # Caller holds self._lock
        previous, self._state = self._state, state
        _logger.debug("%s: %s -> %s", self.port, previous.value, state.value)
        self.bus.publish(Event.status(self.port, state))

    def _report(self, error: SerialConsoleError) -> None:
        _logger.error("%s", error)
        self.bus.publish(Event.error(self.port, error))
        if self.log is not None:
            self.log.record_error(str(error), self.clock.now())

    def _begin_open(self) -> None:
        with self._lock:
            if self._state is not PortState.CLOSED:
                raise Busy(self.port, self._state.value)
            self._set_state(PortState.OPENING)

    def _open(self) -> None:
        try:
            transport = self._factory(self.port, self.config)
        except Exception as exc:
            # Drivers surface refusals as assorted exception types
            error = PlatformFailure(self.port, str(exc), connection=self)
            with self._lock:
                self._report(error)
                self._set_state(PortState.ERROR)
            raise error from exc

        with self._lock:
            self._transport = transport
            self._reader = ReaderTask(self, transport)
            self._set_state(PortState.OPEN)
            self._reader.start()
        _logger.info("opened %s at %d baud", self.port, self.config.baud_rate)

    def _write(self, data: bytes) -> int:
        # Caller holds self._write_lock
        with self._lock:
            if self._state is not PortState.OPEN or self._transport is None:
                raise NotOpen(self.port, self._state.value)
            transport = self._transport
        try:
            written = transport.write(data)
        except (serial.SerialException, OSError) as exc:
            error = PortIOError(self.port, str(exc))
            self.fault(error)
            raise error from exc
        return len(data) if written is None else int(written)

    def write(self, data: bytes) -> int:
        """
        Write raw bytes to the port.
        Returns:
            int: Number of bytes written
        Raises:
            NotOpen: If the connection is not OPEN
            PortIOError: On transport failure; the connection is now in ERROR
        """
        with self._write_lock:
            return self._write(data)

    def transmit(self, data: bytes, text: Optional[str] = None,
                 mode: EncodingMode = EncodingMode.UTF8) -> Frame:
        """
        Write data and report it as one SENT frame.

        The frame is stamped, logged and published while the write lock is
        still held, so concurrent senders publish in timestamp order.
        Args:
            data (bytes): Encoded payload
            text (str, optional): Command as entered, used for the log and the event
            mode (EncodingMode): Mode the command was entered in
        Returns:
            Frame: The SENT frame
        Raises:
            NotOpen: If the connection is not OPEN
            PortIOError: On transport failure; nothing is logged or published
        """
        with self._write_lock:
            self._write(data)
            frame = Frame(bytes(data), self.clock.now(), Direction.SENT, self.port)
            if self.log is not None:
                self.log.record(frame, mode, text=text)
            self.bus.publish(Event.frame(frame, text))
        return frame

    def fault(self, error: PortIOError) -> bool:
        """
        Move OPEN -> ERROR after a transport failure and stop the reader.
        Returns:
            bool: False if the connection was not OPEN (nothing changed)
        """
        with self._lock:
            if self._state is not PortState.OPEN:
                return False
            self._report(error)
            self._set_state(PortState.ERROR)
            if self._reader is not None:
                self._reader.cancel()
        return True

    def _teardown(self) -> None:
        # State has already left OPEN, so no new read or write can start.
        reader = self._reader
        if reader is not None:
            reader.cancel()
            if reader is not threading.current_thread():
                reader.join()
        with self._write_lock:
            transport, self._transport = self._transport, None
            if transport is not None:
                try:
                    transport.close()
                except (serial.SerialException, OSError) as exc:
                    _logger.warning("closing %s failed: %s", self.port, exc)
        self._reader = None

    def close(self) -> None:
        """
        Stop the reader, release the port and return to CLOSED.

        The reader thread has exited before CLOSED is reported. Closing a
        connection in ERROR acknowledges the error. No-op when already CLOSED.
        Raises:
            Busy: If the connection is OPENING or CLOSING
        """
        with self._lock:
            if self._state is PortState.CLOSED:
                return
            if self._state in (PortState.OPENING, PortState.CLOSING) or self._tearing_down:
                raise Busy(self.port, self._state.value)
            self._tearing_down = True
            if self._state is PortState.OPEN:
                self._set_state(PortState.CLOSING)
        try:
            self._teardown()
        finally:
            with self._lock:
                self._tearing_down = False
                self._set_state(PortState.CLOSED)
            self._registry._release(self)
        _logger.info("closed %s", self.port)

    def reset(self) -> None:
        """Acknowledge an ERROR and return to CLOSED. Never happens automatically."""
        with self._lock:
            if self._state is PortState.CLOSED:
                return
            if self._state is not PortState.ERROR or self._tearing_down:
                raise Busy(self.port, self._state.value)
        self.close()


class ConnectionRegistry:
    """
    Live connections keyed by port name.

    Holding an entry here is the exclusivity token for a port: a second open
    of the same name is refused until the first connection is CLOSED.
    Args:
        bus (EventBus, optional): Channel for frames, status changes and errors
        clock (SessionClock, optional): Timestamp source shared by every connection
        log (SessionLog, optional): Session log shared by every connection
        transport_factory: Callable (port, config) -> serial.Serial-like object
    """

    def __init__(self, *, bus: Optional[EventBus] = None, clock: Optional[SessionClock] = None,
                 log: Optional[SessionLog] = None, transport_factory: TransportFactory = open_serial) -> None:
        self.bus = bus or EventBus()
        self.clock = clock or SessionClock()
        self.log = log
        self._factory = transport_factory
        self._live: Dict[str, Connection] = {}
        self._lock = threading.Lock()

    def open(self, port: Union[str, PortDescriptor], config: Optional[PortConfig] = None, *,
             mode: EncodingMode = EncodingMode.UTF8) -> Connection:
        """
        Open a port and start its reader.
        Args:
            port (str | PortDescriptor): Port to open
            config (PortConfig, optional): Line settings, defaults to PortConfig()
            mode (EncodingMode): Mode the reader decodes received bytes with
        Returns:
            Connection: The OPEN connection
        Raises:
            InvalidConfig: If config fails validation
            Busy: If a connection for the port is OPENING or CLOSING
            AlreadyOpen: If a connection for the port is OPEN or in ERROR
            PlatformFailure: If the OS refused; the connection is left in ERROR
        """
        descriptor = port if isinstance(port, PortDescriptor) else PortDescriptor(str(port))
        config = config or PortConfig()
        try:
            config.validate()
        except InvalidConfig as exc:
            raise InvalidConfig(exc.reason, port=descriptor.name) from None

        with self._lock:
            existing = self._live.get(descriptor.name)
            if existing is not None and existing.state is not PortState.CLOSED:
                if existing.state in (PortState.OPENING, PortState.CLOSING):
                    raise Busy(descriptor.name, existing.state.value)
                raise AlreadyOpen(descriptor.name)
            connection = Connection(descriptor, config, registry=self, bus=self.bus, clock=self.clock,
                                    log=self.log, mode=mode, transport_factory=self._factory)
            self._live[descriptor.name] = connection
            # OPENING before the registry lock is released, so a racing open sees Busy
            connection._begin_open()

        connection._open()
        return connection

    def _release(self, connection: Connection) -> None:
        with self._lock:
            if self._live.get(connection.port) is connection:
                del self._live[connection.port]

    def get(self, port: Union[str, PortDescriptor]) -> Optional[Connection]:
        name = port.name if isinstance(port, PortDescriptor) else str(port)
        with self._lock:
            return self._live.get(name)

    def connections(self) -> List[Connection]:
        with self._lock:
            return list(self._live.values())

    def close_all(self) -> None:
        for connection in self.connections():
            try:
                connection.close()
            except Busy as exc:
                _logger.warning("%s", exc)
