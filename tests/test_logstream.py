import pytest

from edgeweb.logstream import (
    SMALL_BUFFER,
    FixedBuffer,
    LogStream,
    format_value,
)


def test_fixed_buffer_append_and_length():
    buf = FixedBuffer(10)
    buf.append(b"abc")
    assert buf.getvalue() == b"abc"
    assert len(buf) == 3
    assert buf.avail() == buf.size - 3


def test_fixed_buffer_drops_data_that_does_not_strictly_fit():
    buf = FixedBuffer(4)
    buf.append(b"abcd")
    assert buf.getvalue() == b""
    buf.append(b"abc")
    assert buf.getvalue() == b"abc"


def test_fixed_buffer_reset_and_bzero():
    buf = FixedBuffer(16)
    buf.append(b"xyz")
    buf.bzero()
    assert buf.getvalue() == b"\x00" * 3
    buf.reset()
    assert len(buf) == 0
    assert buf.avail() == 16


def test_fixed_buffer_rejects_bad_size():
    with pytest.raises(ValueError):
        FixedBuffer(0)


def test_format_value_types():
    assert format_value(True) == b"1"
    assert format_value(False) == b"0"
    assert format_value(None) == b"(null)"
    assert format_value(1.0) == b"1"
    assert format_value(3.1415926) == b"3.1415926"
    assert format_value(-42) == b"-42"
    assert format_value("abcdefg") == b"abcdefg"
    assert format_value(b"raw") == b"raw"


def test_stream_chains_values():
    stream = LogStream()
    result = stream << "fddsa" << "c" << 0 << 3.666 << "This is a string"
    assert result is stream
    assert stream.buffer.getvalue() == b"fddsac03.666This is a string"


def test_stream_drops_numbers_when_little_room_left():
    stream = LogStream()
    stream.append(b"x" * (SMALL_BUFFER - 30))
    before = len(stream.buffer)
    stream << 12345
    assert len(stream.buffer) == before
    stream << "ab"
    assert stream.buffer.getvalue().endswith(b"ab")


def test_stream_reset_buffer():
    stream = LogStream()
    stream << 1234567890123
    assert stream.buffer.getvalue() == b"1234567890123"
    stream.reset_buffer()
    assert stream.buffer.getvalue() == b""