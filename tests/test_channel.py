import gc

from edgeweb.channel import Channel, Event


def make_channel():
    calls = []
    channel = Channel(None, 7)
    channel.read_handler = lambda: calls.append("read")
    channel.write_handler = lambda: calls.append("write")
    channel.error_handler = lambda: calls.append("error")
    channel.conn_handler = lambda: calls.append("conn")
    return channel, calls


def test_read_event_runs_read_then_conn():
    channel, calls = make_channel()
    channel.events = Event.IN
    channel.revents = Event.IN
    channel.handle_events()
    assert calls == ["read", "conn"]
    assert channel.events == 0


def test_write_event_runs_write_then_conn():
    channel, calls = make_channel()
    channel.revents = Event.OUT
    channel.handle_events()
    assert calls == ["write", "conn"]


def test_read_and_write_together():
    channel, calls = make_channel()
    channel.revents = Event.IN | Event.OUT
    channel.handle_events()
    assert calls == ["read", "write", "conn"]


def test_rdhup_counts_as_read():
    channel, calls = make_channel()
    channel.revents = Event.RDHUP
    channel.handle_events()
    assert calls == ["read", "conn"]


def test_hangup_without_input_does_nothing():
    channel, calls = make_channel()
    channel.events = Event.IN
    channel.revents = Event.HUP
    channel.handle_events()
    assert calls == []
    assert channel.events == 0


def test_hangup_with_input_still_reads():
    channel, calls = make_channel()
    channel.revents = Event.HUP | Event.IN
    channel.handle_events()
    assert calls == ["read", "conn"]


def test_error_event_runs_only_error_handler():
    channel, calls = make_channel()
    channel.revents = Event.ERR | Event.IN
    channel.handle_events()
    assert calls == ["error"]


def test_equal_and_update_last_events():
    channel = Channel(None, 3)
    channel.events = Event.IN | Event.ET
    assert channel.equal_and_update_last_events() is False
    assert channel.last_events == Event.IN | Event.ET
    assert channel.equal_and_update_last_events() is True
    channel.events = Event.OUT
    assert channel.equal_and_update_last_events() is False


def test_holder_is_weak():
    class Owner:
        pass

    channel = Channel()
    owner = Owner()
    channel.holder = owner
    assert channel.holder is owner
    del owner
    gc.collect()
    assert channel.holder is None


def test_missing_handlers_are_skipped():
    channel = Channel(None, 1)
    seen = []
    channel.conn_handler = lambda: seen.append("conn")
    channel.revents = Event.IN | Event.OUT
    channel.handle_events()
    assert seen == ["conn"]