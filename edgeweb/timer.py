"""Connection timeouts kept in a lazily cleaned priority queue."""

from __future__ import annotations

import heapq
import itertools
import time
from typing import Any, Callable

Clock = Callable[[], int]


def _now_ms() -> int:
    return int(time.monotonic() * 1000)


class TimerNode:
    """A deadline for one connection.

    A node that expires while still attached to its connection closes it
    when the manager discards the node.
    """

    def __init__(self, http_data: Any, timeout: int, clock: Clock | None = None) -> None:
        self._clock = clock or _now_ms
        self.http_data = http_data
        self._deleted = False
        self.expired_time = self._clock() + timeout

    @property
    def deleted(self) -> bool:
        return self._deleted

    def update(self, timeout: int) -> None:
        self.expired_time = self._clock() + timeout

    def is_valid(self) -> bool:
        """Return whether the deadline lies ahead; mark the node deleted if not."""
        if self._clock() < self.expired_time:
            return True
        self.set_deleted()
        return False

    def clear_request(self) -> None:
        """Detach the connection so discarding the node leaves it open."""
        self.http_data = None
        self.set_deleted()

    def set_deleted(self) -> None:
        self._deleted = True

    def _discard(self) -> None:
        http_data, self.http_data = self.http_data, None
        if http_data is not None:
            http_data.handle_close()

    def __repr__(self) -> str:
        return f"TimerNode(expired_time={self.expired_time}, deleted={self._deleted})"


class TimerManager:
    """Orders timer nodes by deadline and drops expired or deleted ones.

    Deleted nodes are not removed at once; they leave the queue when they
    reach its front, either by expiring or because everything before them
    has gone.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock
        self._heap: list[tuple[int, int, TimerNode]] = []
        self._seq = itertools.count()

    def add_timer(self, http_data: Any, timeout: int) -> TimerNode:
        node = TimerNode(http_data, timeout, self._clock)
        heapq.heappush(self._heap, (node.expired_time, next(self._seq), node))
        http_data.link_timer(node)
        return node

    def handle_expired_event(self) -> None:
        while self._heap:
            node = self._heap[0][2]
            if node.deleted or not node.is_valid():
                heapq.heappop(self._heap)
                node._discard()
            else:
                break

    def __len__(self) -> int:
        return len(self._heap)