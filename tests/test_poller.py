import socket
import time

import pytest

from edgeweb.channel import Channel, Event
from edgeweb.poller import Poller


class Holder:
    def __init__(self):
        self.timer = None
        self.closed = 0

    def link_timer(self, timer):
        self.timer = timer

    def handle_close(self):
        self.closed += 1


@pytest.fixture
def pair():
    a, b = socket.socketpair()
    a.setblocking(False)
    b.setblocking(False)
    yield a, b
    a.close()
    b.close()


@pytest.fixture
def poller():
    with Poller() as p:
        yield p


def test_poll_returns_ready_channel(poller, pair):
    a, b = pair
    channel = Channel(None, b.fileno())
    channel.events = Event.IN
    poller.add(channel, 0)
    a.sendall(b"x")
    ready = poller.poll(1000)
    assert ready == [channel]
    assert channel.revents & Event.IN
    assert channel.events == 0
    assert channel.last_events == Event.IN


def test_modify_switches_interest(poller, pair):
    _, b = pair
    channel = Channel(None, b.fileno())
    channel.events = Event.IN
    poller.add(channel, 0)
    channel.events = Event.OUT
    poller.modify(channel, 0)
    assert channel.last_events == Event.OUT
    ready = poller.poll(1000)
    assert ready == [channel]
    assert channel.revents & Event.OUT
    assert not channel.revents & Event.IN


def test_removed_channel_is_not_reported(poller):
    first = socket.socketpair()
    second = socket.socketpair()
    try:
        gone = Channel(None, first[1].fileno())
        kept = Channel(None, second[1].fileno())
        gone.events = kept.events = Event.IN
        poller.add(gone, 0)
        poller.add(kept, 0)
        poller.remove(gone)
        first[0].sendall(b"a")
        second[0].sendall(b"b")
        assert poller.poll(1000) == [kept]
    finally:
        for s in (*first, *second):
            s.close()


def test_add_with_timeout_links_timer(poller, pair):
    _, b = pair
    holder = Holder()
    channel = Channel(None, b.fileno())
    channel.holder = holder
    channel.events = Event.IN
    poller.add(channel, 100000)
    assert holder.timer is not None
    assert holder.timer.http_data is holder
    poller.handle_expired()
    assert holder.closed == 0


def test_expired_timer_closes_holder(poller, pair):
    _, b = pair
    holder = Holder()
    channel = Channel(None, b.fileno())
    channel.holder = holder
    channel.events = Event.IN
    poller.add(channel, 1)
    time.sleep(0.02)
    poller.handle_expired()
    assert holder.closed == 1


def test_modify_with_timeout_adds_new_timer(poller, pair):
    _, b = pair
    holder = Holder()
    channel = Channel(None, b.fileno())
    channel.holder = holder
    channel.events = Event.IN
    poller.add(channel, 100000)
    first = holder.timer
    poller.modify(channel, 100000)
    assert holder.timer is not first


def test_close_marks_poller_closed():
    p = Poller()
    p.close()
    assert p.closed is True