import pytest

from edgeweb.timer import TimerManager, TimerNode


class FakeClock:
    def __init__(self, now=1000):
        self.now = now

    def __call__(self):
        return self.now


class FakeHttpData:
    def __init__(self):
        self.timer = None
        self.closed = 0

    def link_timer(self, timer):
        self.timer = timer

    def handle_close(self):
        self.closed += 1


@pytest.fixture
def clock():
    return FakeClock()


def test_node_deadline_is_now_plus_timeout(clock):
    node = TimerNode(FakeHttpData(), 50, clock)
    assert node.expired_time == clock.now + 50


def test_node_validity_and_deletion(clock):
    node = TimerNode(FakeHttpData(), 50, clock)
    assert node.is_valid() is True
    assert node.deleted is False
    clock.now += 50
    assert node.is_valid() is False
    assert node.deleted is True


def test_node_update_moves_deadline(clock):
    node = TimerNode(FakeHttpData(), 50, clock)
    clock.now += 40
    node.update(100)
    assert node.expired_time == clock.now + 100
    clock.now += 60
    assert node.is_valid() is True


def test_clear_request_detaches(clock):
    data = FakeHttpData()
    node = TimerNode(data, 50, clock)
    node.clear_request()
    assert node.http_data is None
    assert node.deleted is True


def test_add_timer_links_node(clock):
    manager = TimerManager(clock)
    data = FakeHttpData()
    node = manager.add_timer(data, 100)
    assert data.timer is node
    assert len(manager) == 1


def test_unexpired_timer_is_kept(clock):
    manager = TimerManager(clock)
    data = FakeHttpData()
    manager.add_timer(data, 100)
    clock.now += 99
    manager.handle_expired_event()
    assert len(manager) == 1
    assert data.closed == 0


def test_expired_timer_closes_connection(clock):
    manager = TimerManager(clock)
    data = FakeHttpData()
    node = manager.add_timer(data, 100)
    clock.now += 100
    manager.handle_expired_event()
    assert len(manager) == 0
    assert data.closed == 1
    assert node.deleted is True


def test_cleared_timer_dropped_without_close(clock):
    manager = TimerManager(clock)
    data = FakeHttpData()
    node = manager.add_timer(data, 100)
    node.clear_request()
    manager.handle_expired_event()
    assert len(manager) == 0
    assert data.closed == 0


def test_expiry_stops_at_first_valid_timer(clock):
    manager = TimerManager(clock)
    early, late = FakeHttpData(), FakeHttpData()
    manager.add_timer(late, 500)
    manager.add_timer(early, 100)
    clock.now += 200
    manager.handle_expired_event()
    assert len(manager) == 1
    assert (early.closed, late.closed) == (1, 0)


def test_deleted_timer_behind_valid_one_stays(clock):
    manager = TimerManager(clock)
    first, second = FakeHttpData(), FakeHttpData()
    manager.add_timer(first, 100)
    node = manager.add_timer(second, 500)
    node.clear_request()
    manager.handle_expired_event()
    assert len(manager) == 2
    assert second.closed == 0