from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import IO, Optional, Union

from .codec import EncodingMode, encode_hex
from .errors import LogError
from .events import Event, EventBus, Frame

_logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = "logs"


def sanitize_name(name: str) -> str:
    """
    Turn a port name into a file name component.
    "/dev/ttyUSB0" -> "dev_ttyUSB0", "\\\\.\\COM10" -> "._COM10"
    """
    cleaned = name.lstrip("/\\")
    for sep in ("/", "\\", ":"):
        cleaned = cleaned.replace(sep, "_")
    return cleaned or "session"


_ESCAPES = {ord("\\"): "\\\\", ord("\r"): "\\r", ord("\n"): "\\n", ord("\t"): "\\t"}
for _code in list(range(0x20)) + [0x7F, 0x85, 0x2028, 0x2029]:
    _ESCAPES.setdefault(_code, f"\\x{_code:02x}" if _code < 0x100 else f"\\u{_code:04x}")


def escape_text(text: str) -> str:
    r"""
    Backslash-escape control characters and line separators so a payload
    always fits on one log line. "OK\r\n" -> "OK\\r\\n"
    """
    return text.translate(_ESCAPES)


def format_payload(data: bytes, mode: EncodingMode) -> str:
    """
    Render received bytes for the log.
    Returns:
        str: Escaped UTF-8 text in UTF8 mode, uppercase hex in HEX mode or
            when the bytes are not valid UTF-8
    """
    if mode is EncodingMode.UTF8:
        try:
            return escape_text(data.decode("utf-8"))
        except UnicodeDecodeError:
            pass
    return encode_hex(data)


class SessionLog:
    """
    Append-only log of every frame in one session.

    Line format: "[<ISO-8601 timestamp>] <SENT|RECV>: <payload>". Frames from a
    port other than the one the log is named after carry the port name:
    "[<timestamp>] <port> <SENT|RECV>: <payload>". Payloads are escaped so
    every record is exactly one line.
    Each record is flushed immediately. Write failures never propagate to the
    caller; they are logged and published as LOG_ERROR events.
    Args:
        log_dir (str | Path): Directory receiving the session file
        started (datetime): Session start, used in the file name
        name (str, optional): File name prefix, typically a port name
        bus (EventBus, optional): Where write failures are reported
    """

    def __init__(self, log_dir: Union[str, Path] = DEFAULT_LOG_DIR, *, started: Optional[datetime] = None,
                 name: Optional[str] = None, bus: Optional[EventBus] = None) -> None:
        started = started or datetime.now()
        self.port = name or ""
        prefix = sanitize_name(name) if name else "session"
        self.path = Path(log_dir) / f"{prefix}_{started.strftime('%Y%m%d_%H%M%S')}.log"
        self._bus = bus
        self._file: Optional[IO[str]] = None
        self._closed = False
        self._lock = threading.Lock()

    def __enter__(self) -> "SessionLog":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def _handle(self) -> IO[str]:
        if self._file is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file = self.path.open("a", encoding="utf-8")
            _logger.debug("session log opened at %s", self.path)
        return self._file

    def _append(self, line: str) -> bool:
        with self._lock:
            if self._closed:
                return False
            try:
                fh = self._handle()
                fh.write(line + "\n")
                fh.flush()
                return True
            except OSError as exc:
                error = LogError(f"cannot write {self.path}: {exc}")
                error.__cause__ = exc
        _logger.warning("%s", error)
        if self._bus is not None:
            self._bus.publish(Event.log_error(error))
        return False

    def record(self, frame: Frame, mode: EncodingMode = EncodingMode.UTF8, text: Optional[str] = None) -> bool:
        """
        Append one frame.
        Args:
            frame (Frame): Frame to record
            mode (EncodingMode): Mode the payload is rendered in
            text (str, optional): Payload as the user entered it; overrides rendering
        Returns:
            bool: True if the line was written
        """
        payload = escape_text(text) if text is not None else format_payload(frame.data, mode)
        tag = frame.direction.value
        if frame.port and frame.port != self.port:
            tag = f"{frame.port} {tag}"
        return self._append(f"[{frame.timestamp.isoformat()}] {tag}: {payload}")

    def record_error(self, message: str, timestamp: Optional[datetime] = None) -> bool:
        stamp = (timestamp or datetime.now().astimezone()).isoformat()
        return self._append(f"[{stamp}] ERROR: {escape_text(message)}")

    def close(self) -> None:
        with self._lock:
            self._closed = True
            if self._file is not None:
                try:
                    self._file.close()
                except OSError as exc:
                    _logger.warning("closing %s failed: %s", self.path, exc)
                self._file = None
