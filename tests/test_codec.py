from __future__ import annotations

import unittest

from hypothesis import given
from hypothesis import strategies as st

from serial_console.codec import (
    Codec,
    EncodingMode,
    decode_hex,
    decode_utf8,
    encode_hex,
    encode_utf8,
    Utf8StreamDecoder,
)
from serial_console.errors import CodecError, InvalidHexDigit, InvalidUtf8, OddHexLength


class TestHex(unittest.TestCase):
    def test_decode_simple(self):
        self.assertEqual(decode_hex("48656C6C6F"), b"Hello")

    def test_decode_ignores_whitespace_and_case(self):
        self.assertEqual(decode_hex("48 65 6c\t6C\n6f"), b"Hello")
        self.assertEqual(decode_hex("  "), b"")

    def test_odd_length_rejected(self):
        with self.assertRaises(OddHexLength) as cm:
            decode_hex("abc")
        self.assertEqual(cm.exception.digits, 3)

    def test_single_digit_rejected(self):
        # no implicit leading zero padding
        with self.assertRaises(OddHexLength):
            decode_hex("F")

    def test_invalid_digit_rejected(self):
        with self.assertRaises(InvalidHexDigit) as cm:
            decode_hex("48 6G")
        self.assertEqual(cm.exception.char, "G")
        self.assertEqual(cm.exception.position, 4)

    def test_invalid_digit_reported_before_odd_length(self):
        with self.assertRaises(InvalidHexDigit):
            decode_hex("0x1")

    def test_codec_errors_are_value_errors(self):
        with self.assertRaises(ValueError):
            decode_hex("zz")
        self.assertTrue(issubclass(OddHexLength, CodecError))

    def test_encode_uppercase_no_separator(self):
        self.assertEqual(encode_hex(b"\x48\x65\x6c\x6c\x6f"), "48656C6C6F")
        self.assertEqual(encode_hex(b"\x00\xff"), "00FF")
        self.assertEqual(encode_hex(b""), "")


class TestUtf8(unittest.TestCase):
    def test_decode_valid(self):
        self.assertEqual(decode_utf8("héllo ✓".encode("utf-8")), "héllo ✓")

    def test_decode_invalid_start_byte(self):
        with self.assertRaises(InvalidUtf8) as cm:
            decode_utf8(b"\xff\xfe")
        self.assertEqual(cm.exception.position, 0)
        self.assertEqual(cm.exception.data, b"\xff\xfe")

    def test_decode_bad_continuation_byte(self):
        with self.assertRaises(InvalidUtf8) as cm:
            decode_utf8(b"ok\xc3\x28")
        self.assertEqual(cm.exception.position, 2)

    def test_encode_is_identity_bytes(self):
        self.assertEqual(encode_utf8("Hello"), b"Hello")


class TestUtf8Stream(unittest.TestCase):
    def test_split_character_is_completed(self):
        d = Utf8StreamDecoder()
        data = "温度".encode("utf-8")
        self.assertEqual(d.decode(data[:1]), "")
        self.assertEqual(d.pending, data[:1])
        self.assertEqual(d.decode(data[1:4]), "温")
        self.assertEqual(d.decode(data[4:]), "度")
        self.assertEqual(d.pending, b"")

    def test_invalid_bytes_raise_and_reset(self):
        d = Utf8StreamDecoder()
        d.decode(b"\xc3")
        with self.assertRaises(InvalidUtf8) as cm:
            d.decode(b"(")
        self.assertEqual(cm.exception.data, b"\xc3(")
        self.assertEqual(cm.exception.position, 0)
        self.assertEqual(d.pending, b"")
        self.assertEqual(d.decode("é".encode("utf-8")), "é")


class TestCodecDispatch(unittest.TestCase):
    def test_to_bytes(self):
        self.assertEqual(Codec.to_bytes("48656c6c6f", EncodingMode.HEX), b"Hello")
        self.assertEqual(Codec.to_bytes("48656c6c6f", EncodingMode.UTF8), b"48656c6c6f")

    def test_to_text(self):
        self.assertEqual(Codec.to_text(b"Hi", EncodingMode.HEX), "4869")
        self.assertEqual(Codec.to_text(b"Hi", EncodingMode.UTF8), "Hi")

    def test_mode_parse(self):
        self.assertIs(EncodingMode.parse("HEX"), EncodingMode.HEX)
        self.assertIs(EncodingMode.parse("utf-8"), EncodingMode.UTF8)
        self.assertIs(EncodingMode.parse(EncodingMode.UTF8), EncodingMode.UTF8)
        with self.assertRaises(ValueError):
            EncodingMode.parse("gbk")


@given(st.text(max_size=64), st.integers(min_value=1, max_value=8))
def test_utf8_stream_any_chunking(text: str, size: int) -> None:
    try:
        data = text.encode("utf-8")
    except UnicodeEncodeError:
        return
    d = Utf8StreamDecoder()
    out = "".join(d.decode(data[i:i + size]) for i in range(0, len(data), size))
    assert out == text
    assert d.pending == b""


@given(st.binary(max_size=512))
def test_hex_roundtrip(data: bytes) -> None:
    assert decode_hex(encode_hex(data)) == data


@given(st.binary(max_size=64))
def test_hex_roundtrip_lowercase_spaced(data: bytes) -> None:
    spaced = " ".join(f"{b:02x}" for b in data)
    assert decode_hex(spaced) == data


@given(st.text(max_size=256))
def test_utf8_never_fails_for_encoded_text(text: str) -> None:
    # surrogates cannot be encoded, hypothesis text() may emit them
    try:
        data = text.encode("utf-8")
    except UnicodeEncodeError:
        return
    assert decode_utf8(data) == text


@given(st.binary(max_size=32), st.integers(min_value=0xC2, max_value=0xDF), st.integers(min_value=0x00, max_value=0x7F))
def test_utf8_invalid_continuation_fails(prefix: bytes, lead: int, bad: int) -> None:
    # a two-byte lead followed by an ASCII byte is never valid
    data = prefix.decode("utf-8", "ignore").encode("utf-8") + bytes([lead, bad])
    try:
        decode_utf8(data)
    except InvalidUtf8:
        return
    raise AssertionError(f"{data!r} decoded without error")


if __name__ == "__main__":
    unittest.main()
