"""Reactor loops: one epoll loop per thread, and a pool of such threads."""

from __future__ import annotations

import os
import socket
import threading
from typing import Callable

from edgeweb.channel import Channel, Event
from edgeweb.logger import log
from edgeweb.poller import Poller
from edgeweb.sync import Thread, current_tid
from edgeweb.util import shutdown_write

Functor = Callable[[], object]

_local = threading.local()


def _create_eventfd() -> int:
    return os.eventfd(0, os.EFD_NONBLOCK | os.EFD_CLOEXEC)


class EventLoop:
    """Polls channels and runs queued callbacks on the thread that created it."""

    def __init__(self) -> None:
        self._looping = False
        self._quit = False
        self._event_handling = False
        self._calling_pending = False
        self._closed = False
        self._lock = threading.Lock()
        self._pending: list[Functor] = []
        self.thread_id = current_tid()
        self._poller = Poller()
        self._wakeup_fd = _create_eventfd()
        self._wakeup_channel = Channel(self, self._wakeup_fd)
        if getattr(_local, "loop", None) is None:
            _local.loop = self
        self._wakeup_channel.events = Event.IN | Event.ET
        self._wakeup_channel.read_handler = self._handle_read
        self._wakeup_channel.conn_handler = self._handle_conn
        self._poller.add(self._wakeup_channel, 0)

    @property
    def looping(self) -> bool:
        return self._looping

    def _handle_conn(self) -> None:
        self.update_poller(self._wakeup_channel, 0)

    def _wakeup(self) -> None:
        try:
            os.eventfd_write(self._wakeup_fd, 1)
        except OSError as exc:
            log("EventLoop wakeup failed: ", str(exc))

    def _handle_read(self) -> None:
        try:
            os.eventfd_read(self._wakeup_fd)
        except OSError as exc:
            log("EventLoop handle_read failed: ", str(exc))
        self._wakeup_channel.events = Event.IN | Event.ET

    def run_in_loop(self, cb: Functor) -> None:
        """Run ``cb`` now if called from the loop thread, else queue it."""
        if self.is_in_loop_thread():
            cb()
        else:
            self.queue_in_loop(cb)

    def queue_in_loop(self, cb: Functor) -> None:
        """Queue ``cb`` to run after the current round of event handling."""
        with self._lock:
            self._pending.append(cb)
        if not self.is_in_loop_thread() or self._calling_pending:
            self._wakeup()

    def is_in_loop_thread(self) -> bool:
        return self.thread_id == current_tid()

    def assert_in_loop_thread(self) -> None:
        if not self.is_in_loop_thread():
            raise RuntimeError("event loop used outside its own thread")

    def shutdown(self, channel: Channel) -> None:
        """Shut down the writing half of the channel's socket."""
        with socket.socket(fileno=os.dup(channel.fd)) as sock:
            shutdown_write(sock)

    def remove_from_poller(self, channel: Channel) -> None:
        self._poller.remove(channel)

    def update_poller(self, channel: Channel, timeout: int = 0) -> None:
        self._poller.modify(channel, timeout)

    def add_to_poller(self, channel: Channel, timeout: int = 0) -> None:
        self._poller.add(channel, timeout)

    def loop(self) -> None:
        """Dispatch events until :meth:`quit` is called."""
        if self._looping:
            raise RuntimeError("event loop is already running")
        self.assert_in_loop_thread()
        self._looping = True
        try:
            while not self._quit:
                ready = self._poller.poll()
                self._event_handling = True
                for channel in ready:
                    channel.handle_events()
                self._event_handling = False
                self._do_pending_functors()
                self._poller.handle_expired()
        finally:
            self._looping = False

    def _do_pending_functors(self) -> None:
        self._calling_pending = True
        with self._lock:
            functors, self._pending = self._pending, []
        try:
            for functor in functors:
                functor()
        finally:
            self._calling_pending = False

    def quit(self) -> None:
        self._quit = True
        if not self.is_in_loop_thread():
            self._wakeup()

    def close(self) -> None:
        """Release the wakeup descriptor and the poller."""
        if self._closed:
            return
        self._closed = True
        os.close(self._wakeup_fd)
        self._poller.close()
        if getattr(_local, "loop", None) is self:
            _local.loop = None

    def __enter__(self) -> "EventLoop":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"EventLoop(thread_id={self.thread_id}, looping={self._looping})"


class EventLoopThread:
    """A thread that owns and runs one :class:`EventLoop`."""

    def __init__(self) -> None:
        self._loop: EventLoop | None = None
        self._started_loop: EventLoop | None = None
        self._exiting = False
        self._joined = False
        self._cond = threading.Condition()
        self._thread = Thread(self._thread_func, "EventLoopThread")

    def start_loop(self) -> EventLoop:
        """Start the thread and return its loop once it exists."""
        if self._thread.started:
            raise RuntimeError("loop thread already started")
        self._thread.start()
        with self._cond:
            while self._started_loop is None:
                self._cond.wait()
            return self._started_loop

    def stop(self) -> None:
        """Ask the loop to quit and wait for the thread to finish."""
        self._exiting = True
        if not self._thread.started or self._joined:
            return
        with self._cond:
            loop = self._loop
        if loop is not None:
            loop.quit()
        self._joined = True
        self._thread.join()

    def _thread_func(self) -> None:
        loop = EventLoop()
        with self._cond:
            self._loop = loop
            self._started_loop = loop
            self._cond.notify_all()
        try:
            loop.loop()
        finally:
            with self._cond:
                self._loop = None
            loop.close()


class EventLoopThreadPool:
    """A fixed set of loop threads handed out round robin."""

    def __init__(self, base_loop: EventLoop, num_threads: int) -> None:
        if num_threads <= 0:
            raise ValueError("number of loop threads must be positive")
        self.base_loop = base_loop
        self.num_threads = num_threads
        self._started = False
        self._next = 0
        self._threads: list[EventLoopThread] = []
        self._loops: list[EventLoop] = []

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        self.base_loop.assert_in_loop_thread()
        self._started = True
        for _ in range(self.num_threads):
            thread = EventLoopThread()
            self._threads.append(thread)
            self._loops.append(thread.start_loop())

    def get_next_loop(self) -> EventLoop:
        self.base_loop.assert_in_loop_thread()
        if not self._started:
            raise RuntimeError("loop thread pool not started")
        loop = self.base_loop
        if self._loops:
            loop = self._loops[self._next]
            self._next = (self._next + 1) % self.num_threads
        return loop

    def stop(self) -> None:
        """Stop every loop thread in the pool."""
        for thread in self._threads:
            thread.stop()
        self._threads.clear()
        self._loops.clear()
        self._started = False