"""A file descriptor together with the events it waits for and their handlers."""

from __future__ import annotations

import enum
import weakref
from typing import Any, Callable, Optional

Callback = Optional[Callable[[], object]]


class Event(enum.IntFlag):
    """Readiness bits as used by epoll."""

    NONE = 0
    IN = 0x001
    PRI = 0x002
    OUT = 0x004
    ERR = 0x008
    HUP = 0x010
    RDHUP = 0x2000
    ONESHOT = 1 << 30
    ET = 1 << 31


class Channel:
    """Dispatches ready events on one descriptor to its handlers."""

    def __init__(self, loop: Any = None, fd: int = -1) -> None:
        self.loop = loop
        self.fd = fd
        self.events = 0
        self.revents = 0
        self.last_events = 0
        self.read_handler: Callback = None
        self.write_handler: Callback = None
        self.error_handler: Callback = None
        self.conn_handler: Callback = None
        self._holder: weakref.ReferenceType | None = None

    @property
    def holder(self) -> Any:
        """The object owning this channel, or ``None`` once it is gone."""
        return self._holder() if self._holder is not None else None

    @holder.setter
    def holder(self, value: Any) -> None:
        self._holder = weakref.ref(value) if value is not None else None

    def handle_events(self) -> None:
        self.events = 0
        revents = self.revents
        if revents & Event.HUP and not revents & Event.IN:
            return
        if revents & Event.ERR:
            if self.error_handler:
                self.error_handler()
            self.events = 0
            return
        if revents & (Event.IN | Event.PRI | Event.RDHUP):
            self.handle_read()
        if revents & Event.OUT:
            self.handle_write()
        self.handle_conn()

    def handle_read(self) -> None:
        if self.read_handler:
            self.read_handler()

    def handle_write(self) -> None:
        if self.write_handler:
            self.write_handler()

    def handle_conn(self) -> None:
        if self.conn_handler:
            self.conn_handler()

    def equal_and_update_last_events(self) -> bool:
        """Report whether the events are unchanged, then remember them."""
        same = self.last_events == self.events
        self.last_events = self.events
        return same

    def __repr__(self) -> str:
        return f"Channel(fd={self.fd}, events={self.events:#x})"