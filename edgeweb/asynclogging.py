"""Double-buffered asynchronous log writer running on a background thread."""

from __future__ import annotations

import os
import threading

from edgeweb.logfile import LogFile
from edgeweb.logstream import LARGE_BUFFER, FixedBuffer
from edgeweb.sync import CountDownLatch, Thread

_MAX_PENDING_BUFFERS = 25


class AsyncLogging:
    """Collects log lines in memory and writes them to a file from a worker thread."""

    def __init__(
        self,
        basename: str | os.PathLike,
        flush_interval: float = 2,
        buffer_size: int = LARGE_BUFFER,
    ) -> None:
        if len(os.fspath(basename)) <= 1:
            raise ValueError("log file name is too short")
        self.basename = basename
        self.flush_interval = flush_interval
        self._buffer_size = buffer_size
        self._running = False
        self._cond = threading.Condition()
        self._current = FixedBuffer(buffer_size)
        self._next: FixedBuffer | None = FixedBuffer(buffer_size)
        self._buffers: list[FixedBuffer] = []
        self._latch = CountDownLatch(1)
        self._thread = Thread(self._thread_func, "Logging")

    @property
    def running(self) -> bool:
        return self._running

    def append(self, data: bytes) -> None:
        with self._cond:
            if self._current.avail() > len(data):
                self._current.append(data)
                return
            self._buffers.append(self._current)
            if self._next is not None:
                self._current, self._next = self._next, None
            else:
                self._current = FixedBuffer(self._buffer_size)
            self._current.append(data)
            self._cond.notify()

    def start(self) -> None:
        self._running = True
        self._thread.start()
        self._latch.wait()

    def stop(self) -> None:
        if not self._running:
            return
        with self._cond:
            self._running = False
            self._cond.notify()
        self._thread.join()

    def __enter__(self) -> "AsyncLogging":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _new_buffer(self) -> FixedBuffer:
        return FixedBuffer(self._buffer_size)

    def _thread_func(self) -> None:
        self._latch.count_down()
        output = LogFile(self.basename)
        spare1: FixedBuffer | None = self._new_buffer()
        spare2: FixedBuffer | None = self._new_buffer()
        to_write: list[FixedBuffer] = []
        try:
            while self._running:
                with self._cond:
                    if not self._buffers:
                        self._cond.wait(self.flush_interval)
                    self._buffers.append(self._current)
                    self._current = spare1 or self._new_buffer()
                    spare1 = None
                    to_write, self._buffers = self._buffers, to_write
                    if self._next is None:
                        self._next = spare2 or self._new_buffer()
                        spare2 = None

                if len(to_write) > _MAX_PENDING_BUFFERS:
                    del to_write[2:]
                for buf in to_write:
                    output.append(buf.getvalue())
                del to_write[2:]

                if spare1 is None:
                    spare1 = to_write.pop() if to_write else self._new_buffer()
                    spare1.reset()
                if spare2 is None:
                    spare2 = to_write.pop() if to_write else self._new_buffer()
                    spare2.reset()
                to_write.clear()
                output.flush()

            with self._cond:
                remaining = self._buffers + [self._current]
                self._buffers = []
                self._current = self._new_buffer()
            for buf in remaining:
                if len(buf):
                    output.append(buf.getvalue())
            output.flush()
        finally:
            output.close()