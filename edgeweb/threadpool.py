"""A fixed-size worker pool fed from a bounded task queue."""

from __future__ import annotations

import enum
import threading
from collections import deque
from typing import Any, Callable

MAX_THREADS = 1024
MAX_QUEUE = 65535
DEFAULT_THREADS = 4
DEFAULT_QUEUE_SIZE = 1024


class ShutdownOption(enum.IntEnum):
    IMMEDIATE = 1
    GRACEFUL = 2


class ThreadPoolError(Exception):
    """Base class for thread pool failures."""


class QueueFullError(ThreadPoolError):
    """The task queue has no free slot."""


class PoolShutdownError(ThreadPoolError):
    """The pool has been shut down."""


class ThreadPool:
    """Runs ``func(arg)`` tasks on worker threads.

    Out-of-range sizes fall back to 4 threads and a queue of 1024 tasks.
    """

    def __init__(
        self, thread_count: int = DEFAULT_THREADS, queue_size: int = DEFAULT_QUEUE_SIZE
    ) -> None:
        if not (0 < thread_count <= MAX_THREADS) or not (0 < queue_size <= MAX_QUEUE):
            thread_count, queue_size = DEFAULT_THREADS, DEFAULT_QUEUE_SIZE
        self.thread_count = thread_count
        self.queue_size = queue_size
        self._queue: deque[tuple[Callable[[Any], object], Any]] = deque()
        self._cond = threading.Condition()
        self._shutdown: ShutdownOption | None = None
        self._started = 0
        self._threads: list[threading.Thread] = []
        for index in range(thread_count):
            worker = threading.Thread(
                target=self._worker, name=f"ThreadPool-{index}", daemon=True
            )
            worker.start()
            self._threads.append(worker)
            with self._cond:
                self._started += 1

    @property
    def started(self) -> int:
        """Number of worker threads still running."""
        with self._cond:
            return self._started

    def add(self, func: Callable[[Any], object], arg: Any = None) -> None:
        with self._cond:
            if len(self._queue) == self.queue_size:
                raise QueueFullError("task queue is full")
            if self._shutdown is not None:
                raise PoolShutdownError("thread pool is shut down")
            self._queue.append((func, arg))
            self._cond.notify()

    def destroy(self, option: ShutdownOption = ShutdownOption.GRACEFUL) -> None:
        """Stop the workers and wait for them.

        A graceful shutdown drains the queue first; an immediate one drops
        the tasks still waiting.
        """
        with self._cond:
            if self._shutdown is not None:
                raise PoolShutdownError("thread pool is already shut down")
            self._shutdown = ShutdownOption(option)
            self._cond.notify_all()
        for worker in self._threads:
            worker.join()

    def __enter__(self) -> "ThreadPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._shutdown is None:
            self.destroy(ShutdownOption.GRACEFUL)

    def _worker(self) -> None:
        while True:
            with self._cond:
                while not self._queue and self._shutdown is None:
                    self._cond.wait()
                if self._shutdown is ShutdownOption.IMMEDIATE or (
                    self._shutdown is ShutdownOption.GRACEFUL and not self._queue
                ):
                    self._started -= 1
                    return
                func, arg = self._queue.popleft()
            func(arg)