"""Thread helpers: a count-down latch, named threads and per-thread identity."""

from __future__ import annotations

import threading
from typing import Callable

_local = threading.local()


def current_tid() -> int:
    """Return the OS thread id of the calling thread, cached per thread."""
    tid = getattr(_local, "tid", 0)
    if not tid:
        tid = threading.get_native_id()
        _local.tid = tid
    return tid


def current_thread_name() -> str:
    """Return the name set by :class:`Thread`, or ``"default"``."""
    return getattr(_local, "name", "default")


class CountDownLatch:
    """Blocks waiters until the count reaches zero."""

    def __init__(self, count: int) -> None:
        self._count = count
        self._cond = threading.Condition()

    @property
    def count(self) -> int:
        with self._cond:
            return self._count

    def wait(self) -> None:
        with self._cond:
            while self._count > 0:
                self._cond.wait()

    def count_down(self) -> None:
        with self._cond:
            self._count -= 1
            if self._count == 0:
                self._cond.notify_all()


class Thread:
    """A named thread whose ``start`` returns only once it is running."""

    def __init__(self, func: Callable[[], object], name: str = "") -> None:
        self._func = func
        self._name = name or "Thread"
        self._started = False
        self._joined = False
        self._tid = 0
        self._latch = CountDownLatch(1)
        self._thread: threading.Thread | None = None

    @property
    def started(self) -> bool:
        return self._started

    @property
    def tid(self) -> int:
        return self._tid

    @property
    def name(self) -> str:
        return self._name

    def start(self) -> None:
        if self._started:
            raise RuntimeError("thread already started")
        self._started = True
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        try:
            self._thread.start()
        except RuntimeError:
            self._started = False
            raise
        self._latch.wait()

    def join(self) -> None:
        if not self._started:
            raise RuntimeError("thread not started")
        if self._joined:
            raise RuntimeError("thread already joined")
        self._joined = True
        assert self._thread is not None
        self._thread.join()

    def _run(self) -> None:
        self._tid = current_tid()
        self._latch.count_down()
        _local.name = self._name
        try:
            self._func()
        finally:
            _local.name = "finished"