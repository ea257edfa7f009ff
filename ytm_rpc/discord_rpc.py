# ytm_rpc/discord_rpc.py
import asyncio
import contextlib
import inspect
import time
from enum import Enum
from typing import Callable, Optional, Tuple

from pypresence import AioPresence
from pypresence.exceptions import PipeClosed
from pypresence.types import ActivityType

from .backoff import BRIDGE_RETRY_BASE, BRIDGE_RETRY_MAX, linear_backoff
from .debug import debug_log, log
from .models import PlaybackSnapshot, RepeatMode
from .player_bar import UNKNOWN_ARTIST


PLACEHOLDER_IMAGE = "ytmusic"
PLACEHOLDER_TEXT = "YouTube Music"

PLAY_GLYPH = "▶"
PAUSE_GLYPH = "⏸"

# Lowercased fragments of error messages that mean the IPC pipe is gone.
CONNECTION_HINTS = ("connect", "pipe", "closed", "reset", "socket")


def elapsed_window(np: PlaybackSnapshot, now_ms: int) -> Optional[Tuple[int, Optional[int]]]:
    """
    (start_ms, end_ms) for the progress bar, or None when it should be hidden.
    end_ms is None on repeat-one, since a countdown would be wrong after the loop.
    """
    if not np.playing or np.current_time is None or not np.duration or np.duration <= 0:
        return None

    delay_ms = now_ms - np.capture_timestamp if np.capture_timestamp is not None else 0
    elapsed = np.current_time + delay_ms / 1000
    start = int(now_ms - elapsed * 1000)

    if np.repeat_mode is RepeatMode.ONE:
        return start, None
    return start, start + np.duration * 1000


def build_presence(np: PlaybackSnapshot, now_ms: Optional[int] = None, show_glyph: bool = False) -> dict:
    if now_ms is None:
        now_ms = int(time.time() * 1000)

    details = np.title
    if show_glyph:
        details = f"{PLAY_GLYPH if np.playing else PAUSE_GLYPH} {details}"

    payload = {
        "details": details[:128],
        "state": f"by {np.artist or UNKNOWN_ARTIST}"[:128],
        "instance": False,
        "activity_type": ActivityType.LISTENING,
    }

    # Discord accepts external image URLs as keys
    if np.thumbnail:
        payload["large_image"] = np.thumbnail
        payload["large_text"] = (np.album or PLACEHOLDER_TEXT)[:128]
    else:
        payload["large_image"] = PLACEHOLDER_IMAGE
        payload["large_text"] = PLACEHOLDER_TEXT

    if np.playing:
        payload["small_image"] = "play"
        payload["small_text"] = "Playing"
    else:
        payload["small_image"] = "pause"
        payload["small_text"] = "Paused"

    window = elapsed_window(np, now_ms)
    if window:
        start, end = window
        payload["start"] = start
        if end is not None:
            payload["end"] = end

    return payload


def looks_disconnected(error: BaseException) -> bool:
    if isinstance(error, (ConnectionError, PipeClosed)):
        return True
    text = str(error).lower()
    return any(hint in text for hint in CONNECTION_HINTS)


def display_name(user: Optional[dict]) -> str:
    user = user or {}
    name = user.get("username", "Unknown")
    disc = user.get("discriminator", "")
    return f"{name}#{disc}" if disc and disc != "0" else name


class RpcState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"


class RpcEvent(str, Enum):
    CONNECT = "connect"
    READY = "ready"
    LOGIN_FAILED = "login_failed"
    DISCONNECTED = "disconnected"


TRANSITIONS = {
    (RpcState.DISCONNECTED, RpcEvent.CONNECT): RpcState.CONNECTING,
    (RpcState.CONNECTING, RpcEvent.READY): RpcState.READY,
    (RpcState.CONNECTING, RpcEvent.LOGIN_FAILED): RpcState.DISCONNECTED,
    (RpcState.CONNECTING, RpcEvent.DISCONNECTED): RpcState.DISCONNECTED,
    (RpcState.READY, RpcEvent.DISCONNECTED): RpcState.DISCONNECTED,
}


def next_state(state: RpcState, event: RpcEvent) -> Optional[RpcState]:
    return TRANSITIONS.get((state, event))


class DiscordClient:
    """
    pypresence AioPresence behind the small surface RpcConnection needs.
    PipeClosed from any call is reported through on_disconnected before re-raising.
    """

    def __init__(self, client_id: str, on_disconnected: Optional[Callable] = None):
        self._rpc = AioPresence(client_id)
        self._on_disconnected = on_disconnected

    @property
    def user(self) -> dict:
        return getattr(self._rpc, "user", None) or {}

    async def connect(self):
        await self._rpc.connect()

    async def update(self, **activity):
        return await self._call(self._rpc.update(**activity))

    async def clear(self):
        return await self._call(self._rpc.clear())

    async def close(self):
        result = self._rpc.close()
        if inspect.isawaitable(result):
            await result

    async def _call(self, coro):
        try:
            return await coro
        except PipeClosed:
            if self._on_disconnected:
                self._on_disconnected(self)
            raise


class RpcConnection:
    """
    Owns the Discord IPC handle and keeps it alive.

    disconnected -> connecting -> ready, and back to disconnected on a failed
    login or a disconnect. Every drop schedules a fresh client after a linear
    backoff (5s, 10s, ... capped at 60s); a successful login resets the count.
    Presence updates outside the ready state are dropped, not queued.
    """

    def __init__(self, client_id: str, client_factory: Callable = DiscordClient, *, sleep=asyncio.sleep):
        self.client_id = client_id
        self._client_factory = client_factory
        self._sleep = sleep

        self.state = RpcState.DISCONNECTED
        self.client = None
        self.attempts = 0
        self.last_presence: Optional[dict] = None

        self._reconnect_task: Optional[asyncio.Task] = None
        self._closed = False

    def _fire(self, event: RpcEvent) -> bool:
        new = next_state(self.state, event)
        if new is None:
            debug_log(f"RPC: ignoring '{event.value}' while {self.state.value}")
            return False
        debug_log(f"RPC: {self.state.value} -> {new.value} ({event.value})")
        self.state = new
        return True

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    async def login(self) -> bool:
        if not self._fire(RpcEvent.CONNECT):
            return False

        await self._discard_client()

        try:
            client = self._client_factory(self.client_id, on_disconnected=self.handle_disconnected)
            self.client = client
            await client.connect()
        except Exception as e:
            log("RPC", f"Failed to connect to Discord: {e}")
            log("RPC", "Make sure Discord is running!")
            if self._fire(RpcEvent.LOGIN_FAILED):
                self._schedule_reconnect()
            return False

        if not self._fire(RpcEvent.READY):
            # dropped while the handshake was in flight; a reconnect is already queued
            return False

        self.attempts = 0
        log("RPC", f"Connected to Discord as {display_name(getattr(client, 'user', None))}")
        return True

    def handle_disconnected(self, client=None):
        if client is not None and client is not self.client:
            debug_log("RPC: disconnect from a stale client ignored")
            return
        if not self._fire(RpcEvent.DISCONNECTED):
            return
        log("RPC", "Disconnected from Discord")
        self._schedule_reconnect()

    def _schedule_reconnect(self):
        if self._closed or self.reconnect_pending:
            return

        self.attempts += 1
        delay = linear_backoff(self.attempts, BRIDGE_RETRY_BASE, BRIDGE_RETRY_MAX)
        log("RPC", f"Reconnecting in {delay:g}s (attempt {self.attempts})")
        self._reconnect_task = asyncio.ensure_future(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float):
        await self._sleep(delay)
        self._reconnect_task = None
        if self._closed:
            return
        await self.login()

    async def update_presence(self, activity: dict) -> bool:
        if self.state is not RpcState.READY or self.client is None:
            log("RPC", f"Discord not ready ({self.state.value}), skipping update")
            return False

        client = self.client
        try:
            await client.update(**activity)
        except Exception as e:
            log("RPC", f"Failed to update presence: {e}")
            if looks_disconnected(e):
                self.handle_disconnected(client)
            return False

        self.last_presence = activity
        return True

    async def _discard_client(self):
        client, self.client = self.client, None
        if client is None:
            return
        try:
            await client.close()
        except Exception as e:
            debug_log(f"RPC: closing old client failed: {e}")

    async def close(self):
        self._closed = True

        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if self.state is RpcState.READY and self.client is not None:
            try:
                await self.client.clear()
                log("RPC", "Presence cleared")
            except Exception as e:
                log("RPC", f"Failed to clear presence: {e}")

        await self._discard_client()
        self._fire(RpcEvent.DISCONNECTED)
