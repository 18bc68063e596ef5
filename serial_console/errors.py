from __future__ import annotations

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .connection import Connection


class SerialConsoleError(Exception):
    """Base class for every error raised by serial_console."""


class EnumerationError(SerialConsoleError):
    """Listing serial ports failed at the platform layer. Retry on the next call."""


class OpenError(SerialConsoleError):
    """
    An open attempt was rejected.
    Args:
        port (str): Port name the open was attempted on, empty when not yet known
        reason (str): Human readable reason
    """

    def __init__(self, port: str, reason: str) -> None:
        super().__init__(self._describe(port, reason))
        self.port = port
        self.reason = reason

    @staticmethod
    def _describe(port: str, reason: str) -> str:
        return f"cannot open '{port}': {reason}" if port else f"cannot open port: {reason}"


class AlreadyOpen(OpenError):
    """A connection for the port is OPEN or in ERROR; it is left untouched."""

    def __init__(self, port: str) -> None:
        super().__init__(port, "a connection for this port is already live")


class Busy(OpenError):
    """The connection is mid-transition (OPENING or CLOSING)."""

    def __init__(self, port: str, state: str) -> None:
        super().__init__(port, f"connection is {state}")
        self.state = state


class InvalidConfig(OpenError):
    """
    A PortConfig or settings value is out of range.
    Args:
        reason (str): Which field is wrong and why
        port (str, optional): Port being opened, when the check happens at open time
    """

    def __init__(self, reason: str, port: str = "") -> None:
        super().__init__(port, reason)

    @staticmethod
    def _describe(port: str, reason: str) -> str:
        if port:
            return f"cannot open '{port}': invalid configuration: {reason}"
        return f"invalid configuration: {reason}"


class PlatformFailure(OpenError):
    """
    The operating system refused to open the port.
    The connection is left in ERROR and must be reset before the port can be reopened.
    """

    def __init__(self, port: str, reason: str, connection: Optional["Connection"] = None) -> None:
        super().__init__(port, reason)
        self.connection = connection


class NotOpen(SerialConsoleError):
    """Write or send attempted on a connection that is not OPEN."""

    def __init__(self, port: str, state: str) -> None:
        super().__init__(f"port '{port}' is not open (state: {state})")
        self.port = port
        self.state = state


class PortIOError(SerialConsoleError):
    """Transport failure during read or write. Fatal to the affected connection."""

    def __init__(self, port: str, reason: str) -> None:
        super().__init__(f"I/O error on '{port}': {reason}")
        self.port = port
        self.reason = reason


class CodecError(SerialConsoleError, ValueError):
    """Text or bytes that cannot be converted in the selected EncodingMode."""


class OddHexLength(CodecError):
    """Hex input whose digit count, ignoring whitespace, is odd."""

    def __init__(self, digits: int) -> None:
        super().__init__(f"hex input has an odd number of digits ({digits})")
        self.digits = digits


class InvalidHexDigit(CodecError):
    """A character other than 0-9, a-f, A-F or whitespace in hex input."""

    def __init__(self, char: str, position: int) -> None:
        super().__init__(f"invalid hex digit {char!r} at position {position}")
        self.char = char
        self.position = position


class InvalidUtf8(CodecError):
    """
    Received bytes are not valid UTF-8.
    Args:
        data (bytes): The offending payload
        position (int): Offset of the first bad byte in data
    """

    def __init__(self, data: bytes, position: int) -> None:
        super().__init__(f"invalid UTF-8 sequence at byte {position}")
        self.data = data
        self.position = position


class LogError(SerialConsoleError):
    """Writing the session log failed. Reported as an event, never raised to senders."""
