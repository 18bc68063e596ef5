from __future__ import annotations

import logging
import threading
from typing import Any, TYPE_CHECKING

import serial  # type: ignore

from .codec import Codec, EncodingMode, Utf8StreamDecoder
from .errors import CodecError, PortIOError
from .events import Direction, Event, Frame

if TYPE_CHECKING:
    from .connection import Connection

_logger = logging.getLogger(__name__)

MAX_CHUNK: int = 4096


class ReaderTask(threading.Thread):
    """
    Background read loop for one open connection.

    Each read blocks for at most the connection's read timeout, then also
    takes the bytes that arrived with the first one. Every non-empty read
    becomes one RECEIVED Frame, which is published on the bus together with
    its decoded text and appended to the session log. In UTF-8 mode a
    character split across reads is completed by the next read.
    An empty read is a timeout and the loop simply continues.

    A decode failure is reported as an ERROR event but leaves the connection
    alone. A transport failure faults the connection and ends the thread.
    """

    def __init__(self, connection: "Connection", transport: Any, *, chunk_size: int = MAX_CHUNK) -> None:
        super().__init__(name=f"reader-{connection.port}", daemon=True)
        self._connection = connection
        self._transport = transport
        self._chunk_size = int(chunk_size)
        self._cancelled = threading.Event()
        self._utf8 = Utf8StreamDecoder()
        self._decoder_mode = connection.mode

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """
        Ask the loop to exit. A blocking read is interrupted where the
        transport supports cancel_read(), otherwise it ends at its timeout.
        """
        if self._cancelled.is_set():
            return
        self._cancelled.set()
        cancel_read = getattr(self._transport, "cancel_read", None)
        if callable(cancel_read):
            try:
                cancel_read()
            except (serial.SerialException, OSError) as exc:
                _logger.debug("cancel_read on %s failed: %s", self._connection.port, exc)

    def _read_chunk(self) -> bytes:
        # Block for the first byte, then take whatever arrived with it
        n = self._transport.in_waiting or 1
        chunk = self._transport.read(min(n, self._chunk_size))
        if chunk:
            more = min(self._transport.in_waiting, self._chunk_size - len(chunk))
            if more > 0:
                chunk += self._transport.read(more)
        return bytes(chunk)

    def run(self) -> None:
        port = self._connection.port
        _logger.debug("reader for %s started", port)
        try:
            while not self._cancelled.is_set():
                try:
                    chunk = self._read_chunk()
                except (serial.SerialException, OSError) as exc:
                    if self._cancelled.is_set():
                        break
                    error = PortIOError(port, str(exc))
                    error.__cause__ = exc
                    self._connection.fault(error)
                    break
                if not chunk:
                    continue
                self._emit(chunk)
        finally:
            _logger.debug("reader for %s stopped", port)

    def _decode(self, data: bytes, mode: EncodingMode) -> str:
        if mode is not self._decoder_mode:
            self._utf8.reset()
            self._decoder_mode = mode
        if mode is EncodingMode.HEX:
            return Codec.to_text(data, mode)
        return self._utf8.decode(data)

    def _emit(self, data: bytes) -> None:
        connection = self._connection
        frame = Frame(data, connection.clock.now(), Direction.RECEIVED, connection.port)
        mode = connection.mode
        try:
            text = self._decode(data, mode)
            decode_error = None
        except CodecError as exc:
            text = None
            decode_error = exc

        connection.bus.publish(Event.frame(frame, text))
        if decode_error is not None:
            _logger.debug("%s: %s", connection.port, decode_error)
            connection.bus.publish(Event.error(connection.port, decode_error))
        if connection.log is not None:
            # Chunks ending mid-sequence decode to "" and are logged as hex
            connection.log.record(frame, mode, text=text or None)
