# ytm_rpc/page_agent.py
import json
import time
from typing import Optional

from websockets.exceptions import WebSocketException
from websockets.protocol import State
from websockets.sync.client import connect

from .backoff import AGENT_RETRY_BASE, AGENT_RETRY_MAX, linear_backoff
from .debug import debug_log, log
from .models import PlaybackSnapshot


POLL_SECONDS = 2.0
NAVIGATION_DELAY = 1.0


def should_send(last: Optional[PlaybackSnapshot], np: Optional[PlaybackSnapshot]) -> bool:
    """Only title, play state and repeat mode changes are worth a message."""
    if np is None or not np.title:
        return False
    return last is None or last.watched() != np.watched()


class PageAgent:
    """
    Polls a page reader and pushes changed snapshots to the bridge.

    The reader needs two methods: read() -> Optional[PlaybackSnapshot] and
    current_url() -> Optional[str]. Everything runs on the calling thread;
    run() is a plain sleep loop driven by three deadlines (poll, navigation
    re-poll, reconnect).

    Navigation detection is coarse: the URL is only compared on a poll tick,
    and that tick polls anyway, so the extra re-poll lands navigation_delay
    after the tick that noticed the change, up to poll_seconds plus
    navigation_delay after the real navigation.
    """

    def __init__(self, reader, url: str, *, connect_fn=connect,
                 poll_seconds: float = POLL_SECONDS, navigation_delay: float = NAVIGATION_DELAY,
                 clock=time.monotonic, sleep=time.sleep):
        self.reader = reader
        self.url = url
        self.poll_seconds = poll_seconds
        self.navigation_delay = navigation_delay
        self._connect = connect_fn
        self._clock = clock
        self._sleep = sleep

        self.ws = None
        self.attempts = 0
        self.last_sent: Optional[PlaybackSnapshot] = None

        self._last_url: Optional[str] = None
        self._next_connect = 0.0
        self._next_poll = 0.0
        self._navigation_poll_at: Optional[float] = None
        self._running = False

    # --- page ---

    def read_snapshot(self) -> Optional[PlaybackSnapshot]:
        try:
            return self.reader.read()
        except Exception as e:
            log("Agent", f"Error extracting song info: {e}")
            return None

    def check_navigation(self):
        try:
            url = self.reader.current_url()
        except Exception as e:
            debug_log(f"Agent: URL check failed: {e}")
            return

        if not url or url == self._last_url:
            return
        if self._last_url is not None:
            self._navigation_poll_at = self._clock() + self.navigation_delay
        self._last_url = url

    # --- bridge connection ---

    def connect(self) -> bool:
        try:
            self.ws = self._connect(self.url)
        except (OSError, WebSocketException) as e:
            log("Agent", f"Failed to connect to bridge: {e}")
            self._connection_lost()
            return False

        self.attempts = 0
        log("Agent", "Connected to bridge server")

        np = self.read_snapshot()
        if np is not None and np.title:
            self.send(np)
        return True

    def _connection_lost(self):
        ws, self.ws = self.ws, None
        if ws is not None:
            ws.close()

        self.attempts += 1
        delay = linear_backoff(self.attempts, AGENT_RETRY_BASE, AGENT_RETRY_MAX)
        self._next_connect = self._clock() + delay
        log("Agent", f"Disconnected, retrying in {delay:g}s...")

    def send(self, np: PlaybackSnapshot) -> bool:
        if self.ws is None:
            return False

        try:
            self.ws.send(json.dumps(np.to_message()))
        except (OSError, WebSocketException) as e:
            log("Agent", f"Failed to send data: {e}")
            self._connection_lost()
            return False

        self.last_sent = np
        return True

    def poll(self) -> bool:
        if self.ws is None:
            return False

        np = self.read_snapshot()
        if not should_send(self.last_sent, np):
            return False

        log("Agent", f"Song update: {np.title} - {np.artist} ({'playing' if np.playing else 'paused'})")
        return self.send(np)

    # --- loop ---

    def step(self):
        now = self._clock()

        if self.ws is not None and self.ws.protocol.state is not State.OPEN:
            self._connection_lost()

        if self.ws is None and now >= self._next_connect:
            self.connect()

        if now >= self._next_poll:
            self._next_poll = now + self.poll_seconds
            self.check_navigation()
            self.poll()

        if self._navigation_poll_at is not None and now >= self._navigation_poll_at:
            self._navigation_poll_at = None
            self.poll()

    def seconds_until_next(self) -> float:
        deadlines = [self._next_poll]
        if self._navigation_poll_at is not None:
            deadlines.append(self._navigation_poll_at)
        if self.ws is None:
            deadlines.append(self._next_connect)
        return max(0.0, min(deadlines) - self._clock())

    def run(self):
        self._running = True
        log("Agent", f"Sending updates to {self.url}")
        try:
            while self._running:
                self.step()
                self._sleep(self.seconds_until_next())
        finally:
            if self.ws is not None:
                self.ws.close()
                self.ws = None

    def stop(self):
        self._running = False
