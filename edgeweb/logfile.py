"""Buffered append-only files used as log sinks."""

from __future__ import annotations

import os
import sys
import threading

_FILE_BUFFER_SIZE = 64 * 1024


def _as_bytes(data: bytes | str) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else bytes(data)


class AppendFile:
    """A file opened for appending, with a 64 KiB user-space buffer."""

    def __init__(self, filename: str | os.PathLike) -> None:
        self._fp = open(filename, "ab", buffering=_FILE_BUFFER_SIZE)

    def append(self, data: bytes | str) -> None:
        try:
            self._fp.write(_as_bytes(data))
        except OSError:
            print("AppendFile.append() failed !", file=sys.stderr)

    def flush(self) -> None:
        self._fp.flush()

    def close(self) -> None:
        if not self._fp.closed:
            self._fp.close()

    def __enter__(self) -> "AppendFile":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class LogFile:
    """Thread-safe log file that flushes after every ``flush_every_n`` appends."""

    def __init__(self, basename: str | os.PathLike, flush_every_n: int = 1024) -> None:
        self.basename = basename
        self.flush_every_n = flush_every_n
        self._count = 0
        self._lock = threading.Lock()
        self._file = AppendFile(basename)

    def append(self, data: bytes | str) -> None:
        with self._lock:
            self._file.append(data)
            self._count += 1
            if self._count >= self.flush_every_n:
                self._count = 0
                self._file.flush()

    def flush(self) -> None:
        with self._lock:
            self._file.flush()

    def close(self) -> None:
        with self._lock:
            self._file.close()

    def __enter__(self) -> "LogFile":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()