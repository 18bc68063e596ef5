"""Serial console package.

Serial port communication core for a terminal front end: port discovery,
connection lifecycle, background reading, hex/UTF-8 codec, command history
and timestamped session logs, built on pyserial.
"""

__all__ = [
    "Codec",
    "Connection",
    "ConnectionRegistry",
    "Direction",
    "EncodingMode",
    "Event",
    "EventBus",
    "EventType",
    "Frame",
    "HistoryBuffer",
    "HistoryEntry",
    "PortConfig",
    "PortDescriptor",
    "PortState",
    "RecallDirection",
    "SerialSession",
    "SessionLog",
    "Settings",
    "Writer",
    "list_ports",
    "load_settings",
    "scan_ports",
]

from .codec import Codec, EncodingMode
from .config import PortConfig, Settings, load_settings
from .connection import Connection, ConnectionRegistry, PortState
from .discovery import PortDescriptor, list_ports, scan_ports
from .events import Direction, Event, EventBus, EventType, Frame
from .history import HistoryBuffer, HistoryEntry, RecallDirection
from .session import SerialSession
from .session_log import SessionLog
from .writer import Writer

__version__ = "0.1.0"
