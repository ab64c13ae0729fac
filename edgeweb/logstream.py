"""Fixed-size byte buffers and a stream that formats values into them."""

from __future__ import annotations

SMALL_BUFFER = 4000
LARGE_BUFFER = 4000 * 1000
MAX_NUMERIC_SIZE = 32


class FixedBuffer:
    """A byte buffer that never grows past its capacity.

    Data that does not fit is dropped whole, never truncated.
    """

    def __init__(self, size: int = SMALL_BUFFER) -> None:
        if size <= 0:
            raise ValueError("buffer size must be positive")
        self.size = size
        self._data = bytearray()

    def append(self, data: bytes) -> None:
        """Append ``data`` if it fits strictly inside the free space."""
        if self.avail() > len(data):
            self._data += data

    def avail(self) -> int:
        return self.size - len(self._data)

    def getvalue(self) -> bytes:
        return bytes(self._data)

    def reset(self) -> None:
        self._data.clear()

    def bzero(self) -> None:
        """Zero the stored bytes without moving the write position."""
        self._data[:] = bytes(len(self._data))

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"FixedBuffer(size={self.size}, length={len(self)})"


def format_value(value: object) -> bytes:
    """Render a value the way the log stream writes it."""
    if value is None:
        return b"(null)"
    if isinstance(value, bool):
        return b"1" if value else b"0"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, int):
        return str(value).encode("ascii")
    if isinstance(value, float):
        return ("%.12g" % value).encode("ascii")
    return str(value).encode("utf-8")


class LogStream:
    """Accumulates formatted values into a small fixed buffer via ``<<``."""

    def __init__(self) -> None:
        self._buffer = FixedBuffer(SMALL_BUFFER)

    @property
    def buffer(self) -> FixedBuffer:
        return self._buffer

    def __lshift__(self, value: object) -> "LogStream":
        is_number = isinstance(value, (int, float)) and not isinstance(value, bool)
        if is_number and self._buffer.avail() < MAX_NUMERIC_SIZE:
            return self
        self._buffer.append(format_value(value))
        return self

    def append(self, data: bytes) -> None:
        self._buffer.append(data)

    def reset_buffer(self) -> None:
        self._buffer.reset()