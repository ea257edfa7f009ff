import json
from types import SimpleNamespace

import pytest
from websockets.protocol import State

from ytm_rpc.models import PlaybackSnapshot, RepeatMode
from ytm_rpc.page_agent import PageAgent, should_send


def _snapshot(**overrides):
    data = dict(title="Song", artist="Band", playing=True, current_time=10, duration=200)
    data.update(overrides)
    return PlaybackSnapshot(**data)


class FakeClock:
    def __init__(self):
        self.t = 100.0

    def __call__(self):
        return self.t


class FakeReader:
    def __init__(self, snapshot=None, url="https://music.youtube.com/"):
        self.snapshot = snapshot
        self.url = url
        self.reads = 0

    def read(self):
        self.reads += 1
        if isinstance(self.snapshot, Exception):
            raise self.snapshot
        return self.snapshot

    def current_url(self):
        return self.url


class FakeSocket:
    def __init__(self):
        self.sent = []
        self.send_error = None
        self.protocol = SimpleNamespace(state=State.OPEN)

    def send(self, data):
        if self.send_error:
            raise self.send_error
        self.sent.append(json.loads(data))

    def close(self):
        self.protocol.state = State.CLOSED


class FakeConnector:
    def __init__(self):
        self.outcomes = []
        self.sockets = []

    def __call__(self, url):
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
        ws = FakeSocket()
        self.sockets.append(ws)
        return ws


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def reader():
    return FakeReader()


@pytest.fixture
def agent(reader, connector, clock):
    return PageAgent(reader, "ws://localhost:8080", connect_fn=connector, clock=clock, sleep=lambda s: None)


def test_should_send_rules():
    assert should_send(None, None) is False
    assert should_send(None, _snapshot(title="")) is False
    assert should_send(None, _snapshot()) is True

    last = _snapshot()
    assert should_send(last, _snapshot(artist="Other", current_time=99, album="X")) is False
    assert should_send(last, _snapshot(playing=False)) is True
    assert should_send(last, _snapshot(title="Next")) is True
    assert should_send(last, _snapshot(repeat_mode=RepeatMode.ONE)) is True


def test_connect_sends_current_snapshot_immediately(agent, reader, connector):
    reader.snapshot = _snapshot()

    assert agent.connect() is True

    (ws,) = connector.sockets
    assert [m["title"] for m in ws.sent] == ["Song"]
    assert agent.last_sent == reader.snapshot


def test_connect_without_song_sends_nothing(agent, connector):
    assert agent.connect() is True
    assert connector.sockets[0].sent == []


def test_only_watched_changes_are_sent(agent, reader, connector):
    agent.connect()
    ws = connector.sockets[0]

    reader.snapshot = _snapshot()
    assert agent.poll() is True

    reader.snapshot = _snapshot(artist="Someone else", current_time=42)
    assert agent.poll() is False

    reader.snapshot = _snapshot(playing=False)
    assert agent.poll() is True

    assert [m["isPlaying"] for m in ws.sent] == [True, False]


def test_empty_title_is_never_sent(agent, reader, connector):
    agent.connect()
    reader.snapshot = _snapshot(title="")

    assert agent.poll() is False
    assert connector.sockets[0].sent == []


def test_reader_errors_mean_no_snapshot(agent, reader, connector):
    agent.connect()
    reader.snapshot = RuntimeError("player bar missing")

    assert agent.poll() is False
    assert agent.ws is not None


def test_reconnect_delays_grow_linearly_and_cap(agent, connector, clock):
    connector.outcomes = [ConnectionRefusedError("refused")] * 8
    delays = []

    for _ in range(8):
        assert agent.connect() is False
        delays.append(agent._next_connect - clock.t)

    assert delays == [5.0, 10.0, 15.0, 20.0, 25.0, 30.0, 30.0, 30.0]

    assert agent.connect() is True
    assert agent.attempts == 0


def test_send_failure_drops_connection(agent, reader, connector, clock):
    agent.connect()
    ws = connector.sockets[0]
    ws.send_error = OSError("broken pipe")
    reader.snapshot = _snapshot()

    assert agent.poll() is False
    assert agent.ws is None
    assert agent.attempts == 1
    assert agent.last_sent is None
    assert agent._next_connect == clock.t + 5.0


def test_step_reconnects_after_server_closes(agent, reader, connector, clock):
    reader.snapshot = _snapshot()
    agent.step()
    first = connector.sockets[0]

    first.close()
    clock.t += 2.0
    agent.step()
    assert agent.ws is None
    assert agent.attempts == 1

    clock.t += 5.0
    agent.step()
    assert agent.ws is connector.sockets[1]
    # a fresh connection repeats the current state
    assert connector.sockets[1].sent[0]["title"] == "Song"


def test_polls_on_interval(agent, reader, connector, clock):
    agent.step()
    assert reader.reads == 2  # connect + first tick

    clock.t += 1.0
    agent.step()
    assert reader.reads == 2

    clock.t += 1.0
    agent.step()
    assert reader.reads == 3


def test_navigation_triggers_extra_poll(agent, reader, connector, clock):
    agent.step()
    reads = reader.reads

    reader.url = "https://music.youtube.com/watch?v=next"
    clock.t += 2.0
    agent.step()
    assert reader.reads == reads + 1
    assert agent.seconds_until_next() == pytest.approx(1.0)

    clock.t += 1.0
    agent.step()
    assert reader.reads == reads + 2


def test_first_url_is_not_a_navigation(agent, clock):
    agent.step()
    assert agent.seconds_until_next() == pytest.approx(2.0)


def test_run_stops_and_closes(reader, connector, clock):
    steps = []

    def fake_sleep(seconds):
        steps.append(seconds)
        clock.t += seconds
        if len(steps) == 3:
            agent.stop()

    agent = PageAgent(reader, "ws://localhost:8080", connect_fn=connector, clock=clock, sleep=fake_sleep)
    reader.snapshot = _snapshot()
    agent.run()

    assert steps == [2.0, 2.0, 2.0]
    assert agent.ws is None
    assert connector.sockets[0].protocol.state is State.CLOSED
    assert len(connector.sockets[0].sent) == 1
