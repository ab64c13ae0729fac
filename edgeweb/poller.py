"""An epoll wrapper that maps ready descriptors back to their channels."""

from __future__ import annotations

import select
import sys
from typing import Any

from edgeweb.channel import Channel
from edgeweb.logger import log
from edgeweb.timer import TimerManager

EVENTS_NUM = 4096
EPOLL_WAIT_TIME = 10000  # milliseconds


class Poller:
    """Registers channels with epoll and tracks per-connection timeouts."""

    def __init__(self, max_events: int = EVENTS_NUM) -> None:
        self._epoll = select.epoll()
        self._max_events = max_events
        self._channels: dict[int, Channel] = {}
        self._http: dict[int, Any] = {}
        self._timers = TimerManager()

    @property
    def epoll_fd(self) -> int:
        return self._epoll.fileno()

    @property
    def closed(self) -> bool:
        return self._epoll.closed

    def add(self, channel: Channel, timeout: int = 0) -> None:
        fd = channel.fd
        if timeout > 0:
            self.add_timer(channel, timeout)
            self._http[fd] = channel.holder
        channel.equal_and_update_last_events()
        self._channels[fd] = channel
        try:
            self._epoll.register(fd, channel.events)
        except (OSError, ValueError) as exc:
            print(f"epoll_add error: {exc}", file=sys.stderr)
            self._channels.pop(fd, None)

    def modify(self, channel: Channel, timeout: int = 0) -> None:
        if timeout > 0:
            self.add_timer(channel, timeout)
        fd = channel.fd
        if not channel.equal_and_update_last_events():
            try:
                self._epoll.modify(fd, channel.events)
            except (OSError, ValueError) as exc:
                print(f"epoll_mod error: {exc}", file=sys.stderr)
                self._channels.pop(fd, None)

    def remove(self, channel: Channel) -> None:
        fd = channel.fd
        try:
            self._epoll.unregister(fd)
        except (OSError, ValueError) as exc:
            print(f"epoll_del error: {exc}", file=sys.stderr)
        self._channels.pop(fd, None)
        self._http.pop(fd, None)

    def poll(self, timeout: int = EPOLL_WAIT_TIME) -> list[Channel]:
        """Wait until at least one registered channel is ready and return them.

        ``timeout`` is the length of each wait in milliseconds; waits that
        end with nothing ready are repeated.
        """
        while True:
            ready = self._epoll.poll(timeout / 1000, self._max_events)
            channels = self._events_request(ready)
            if channels:
                return channels

    def _events_request(self, ready: list[tuple[int, int]]) -> list[Channel]:
        channels = []
        for fd, revents in ready:
            channel = self._channels.get(fd)
            if channel is None:
                log("SP cur_req is invalid")
                continue
            channel.revents = revents
            channel.events = 0
            channels.append(channel)
        return channels

    def add_timer(self, channel: Channel, timeout: int) -> None:
        holder = channel.holder
        if holder is not None:
            self._timers.add_timer(holder, timeout)
        else:
            log("timer add fail")

    def handle_expired(self) -> None:
        self._timers.handle_expired_event()

    def close(self) -> None:
        self._epoll.close()

    def __enter__(self) -> "Poller":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()