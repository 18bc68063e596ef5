from __future__ import annotations

import codecs
import string
from enum import Enum
from typing import Final

from .errors import InvalidHexDigit, InvalidUtf8, OddHexLength

HEX_DIGITS: Final[frozenset] = frozenset(string.hexdigits)


class EncodingMode(Enum):
    """
    How command text maps to bytes and received bytes map back to text.
    HEX = "hex": text is pairs of hex digits
    UTF8 = "utf8": text is sent as its UTF-8 bytes
    """
    HEX = "hex"
    UTF8 = "utf8"

    @classmethod
    def parse(cls, value: "str | EncodingMode") -> "EncodingMode":
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower().replace("-", "")
        for mode in cls:
            if mode.value == name:
                return mode
        raise ValueError(f"unknown encoding mode: {value!r}")


def decode_hex(text: str) -> bytes:
    """
    Parse hex digits into bytes.
    Whitespace anywhere is ignored and digits are case-insensitive.
    Args:
        text (str): e.g. "48 65 6c 6C 6f"
    Returns:
        bytes: Parsed bytes
    Raises:
        InvalidHexDigit: On the first character that is not a hex digit
        OddHexLength: If the number of digits is odd
    """
    digits = []
    for pos, ch in enumerate(text):
        if ch.isspace():
            continue
        if ch not in HEX_DIGITS:
            raise InvalidHexDigit(ch, pos)
        digits.append(ch)
    if len(digits) % 2:
        raise OddHexLength(len(digits))
    return bytes.fromhex("".join(digits))


def encode_hex(data: bytes) -> str:
    """Two uppercase hex digits per byte, no separators."""
    return bytes(data).hex().upper()


def decode_utf8(data: bytes) -> str:
    """
    Strict UTF-8 decode of a complete payload.
    Args:
        data (bytes): Raw bytes
    Returns:
        str: Decoded text
    Raises:
        InvalidUtf8: At the first byte that does not start or continue a valid sequence
    """
    try:
        return bytes(data).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidUtf8(bytes(data), exc.start) from exc


def encode_utf8(text: str) -> bytes:
    """UTF-8 bytes of text. Never fails for text typed by a user."""
    return text.encode("utf-8")


class Codec:
    """
    Stateless conversion between entered text and raw bytes.
    to_bytes() is used for outgoing commands, to_text() for received data.
    """

    @staticmethod
    def to_bytes(text: str, mode: EncodingMode) -> bytes:
        """
        Encode a command as entered.
        Args:
            text (str): Command text
            mode (EncodingMode): HEX parses hex digits, UTF8 takes the text verbatim
        Returns:
            bytes: Payload to write
        Raises:
            OddHexLength, InvalidHexDigit: In HEX mode for malformed input
        """
        if mode is EncodingMode.HEX:
            return decode_hex(text)
        return encode_utf8(text)

    @staticmethod
    def to_text(data: bytes, mode: EncodingMode) -> str:
        """
        Render a complete payload for display.
        Args:
            data (bytes): Raw bytes
            mode (EncodingMode): HEX gives uppercase digits, UTF8 decodes strictly
        Returns:
            str: Display text
        Raises:
            InvalidUtf8: In UTF8 mode for undecodable bytes
        """
        if mode is EncodingMode.HEX:
            return encode_hex(data)
        return decode_utf8(data)


class Utf8StreamDecoder:
    """
    UTF-8 decoder for a byte stream cut into arbitrary chunks.

    A multibyte sequence split across chunks is held back and completed by
    the next chunk, so only bytes that can never form valid UTF-8 fail.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="strict")

    @property
    def pending(self) -> bytes:
        """Bytes of an incomplete trailing sequence waiting for the next chunk."""
        return self._decoder.getstate()[0]

    def decode(self, data: bytes) -> str:
        """
        Decode the next chunk.
        Args:
            data (bytes): Chunk as read from the port
        Returns:
            str: Text completed by this chunk, possibly empty
        Raises:
            InvalidUtf8: If the held-back bytes plus data contain an invalid sequence;
                the decoder is reset afterwards
        """
        held = self.pending
        try:
            return self._decoder.decode(bytes(data))
        except UnicodeDecodeError as exc:
            self._decoder.reset()
            raise InvalidUtf8(held + bytes(data), exc.start) from exc

    def reset(self) -> None:
        self._decoder.reset()
