from __future__ import annotations

import logging
from typing import Optional

from .codec import Codec, EncodingMode
from .connection import Connection, PortState
from .errors import NotOpen
from .events import Frame
from .history import HistoryBuffer, HistoryEntry

_logger = logging.getLogger(__name__)

LINE_FEED: bytes = b"\n"


class Writer:
    """
    Encodes command text and sends it through an open connection.

    On success the frame goes to the session log and the event bus, and the
    command is pushed to history. Nothing is recorded when encoding or the
    write fails.
    Args:
        history (HistoryBuffer): Receives one entry per successful send
    """

    def __init__(self, history: HistoryBuffer) -> None:
        self.history = history

    def send(self, connection: Connection, text: str, mode: EncodingMode = EncodingMode.UTF8,
             append_line_feed: bool = False) -> Optional[Frame]:
        """
        Send one command.
        Args:
            connection (Connection): Must be OPEN
            text (str): Command as entered
            mode (EncodingMode): HEX parses text as hex digits, UTF8 sends it verbatim
            append_line_feed (bool): Append a 0x0A byte
        Returns:
            Frame: The SENT frame, or None if there was nothing to send
        Raises:
            NotOpen: If the connection is not OPEN
            CodecError: If text is not valid in the given mode; nothing is written
            PortIOError: On transport failure; the connection is now in ERROR
        """
        if connection.state is not PortState.OPEN:
            raise NotOpen(connection.port, connection.state.value)

        data = Codec.to_bytes(text, mode)
        if append_line_feed:
            data += LINE_FEED
        if not data:
            _logger.debug("%s: empty command, nothing sent", connection.port)
            return None

        frame = connection.transmit(data, text, mode)
        self.history.push(HistoryEntry(text, mode))
        return frame
