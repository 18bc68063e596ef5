"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, List, Optional, Set

import pytest

import serial  # type: ignore

from serial_console.config import PortConfig
from serial_console.connection import ConnectionRegistry
from serial_console.events import Event, EventBus


class FakeSerial:
    """
    In-memory stand-in for serial.Serial.

    Bytes fed with feed() are returned by read(); writes are recorded.
    read() blocks up to the timeout like a real port and honours cancel_read().
    """

    def __init__(self, port: str = "", timeout: float = 0.05, **kwargs) -> None:
        self.port = port
        self.timeout = timeout
        self.kwargs = kwargs
        self.is_open = True
        self.writes: List[bytes] = []
        self.read_error: Optional[Exception] = None
        self.write_error: Optional[Exception] = None
        self.reads_after_close = 0
        self._buf = bytearray()
        self._cancelled = False
        self._cond = threading.Condition()

    @property
    def written(self) -> bytes:
        return b"".join(self.writes)

    def feed(self, data: bytes) -> None:
        with self._cond:
            self._buf += data
            self._cond.notify_all()

    def fail_reads(self, exc: Exception) -> None:
        with self._cond:
            self.read_error = exc
            self._cond.notify_all()

    @property
    def in_waiting(self) -> int:
        with self._cond:
            return len(self._buf)

    def read(self, size: int = 1) -> bytes:
        with self._cond:
            if not self.is_open:
                self.reads_after_close += 1
                raise serial.SerialException("Attempting to use a port that is not open")
            self._cond.wait_for(lambda: self._buf or self._cancelled or self.read_error, timeout=self.timeout)
            if self.read_error is not None:
                raise self.read_error
            self._cancelled = False
            out = bytes(self._buf[:size])
            del self._buf[:size]
            return out

    def cancel_read(self) -> None:
        with self._cond:
            self._cancelled = True
            self._cond.notify_all()

    def write(self, data: bytes) -> int:
        if not self.is_open:
            raise serial.SerialException("Attempting to use a port that is not open")
        if self.write_error is not None:
            raise self.write_error
        self.writes.append(bytes(data))
        return len(data)

    def close(self) -> None:
        with self._cond:
            self.is_open = False
            self._cond.notify_all()


class FakeFactory:
    """Transport factory handing out FakeSerial instances, keyed by port name."""

    def __init__(self) -> None:
        self.ports: Dict[str, FakeSerial] = {}
        self.refuse: Set[str] = set()
        self.configs: Dict[str, PortConfig] = {}

    def __call__(self, port: str, config: PortConfig) -> FakeSerial:
        if port in self.refuse:
            raise serial.SerialException(f"could not open port {port}: [Errno 2] No such file or directory")
        kwargs = config.to_serial_kwargs()
        fake = FakeSerial(port, **kwargs)
        self.ports[port] = fake
        self.configs[port] = config
        return fake


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def collect_events(bus: EventBus, predicate: Callable[[List[Event]], bool], timeout: float = 2.0) -> List[Event]:
    """Drain the bus until predicate(all events so far) holds or timeout expires."""
    events: List[Event] = []
    deadline = time.monotonic() + timeout
    while not predicate(events):
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        event = bus.get(timeout=min(remaining, 0.05))
        if event is not None:
            events.append(event)
    return events


@pytest.fixture
def fake_factory() -> FakeFactory:
    return FakeFactory()


@pytest.fixture
def port_config() -> PortConfig:
    return PortConfig(baud_rate=115200, read_timeout=0.05)


@pytest.fixture
def registry(fake_factory):
    reg = ConnectionRegistry(bus=EventBus(), transport_factory=fake_factory)
    yield reg
    reg.close_all()
