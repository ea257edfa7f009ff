# ytm_rpc/bridge.py
import asyncio
import time
from typing import Callable, Optional

from websockets.asyncio.server import serve
from websockets.exceptions import ConnectionClosed

from .config import BridgeConfig
from .debug import debug_log, log
from .discord_rpc import RpcConnection, build_presence
from .models import MessageError, PlaybackSnapshot


class PresenceBridge:
    """
    WebSocket listener that turns every inbound snapshot into a presence update.

    Any number of page agents may connect; messages are applied in arrival
    order, so the latest one wins.
    """

    def __init__(
        self,
        config: BridgeConfig,
        connection: Optional[RpcConnection] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.connection = connection or RpcConnection(config.client_id)
        self._clock = clock
        self.clients = set()

    async def handle_message(self, raw) -> bool:
        try:
            np = PlaybackSnapshot.from_json(raw)
        except MessageError as e:
            log("Bridge", f"Discarding message: {e}")
            debug_log(f"Bridge: bad payload {raw!r}")
            return False

        log("Bridge", f"Received: {np.title} - {np.artist} ({'playing' if np.playing else 'paused'})")

        activity = build_presence(
            np,
            now_ms=int(self._clock() * 1000),
            show_glyph=self.config.show_status_glyph,
        )
        updated = await self.connection.update_presence(activity)
        if updated:
            log("Bridge", "Updated Discord presence")
        return updated

    async def handle_client(self, websocket):
        self.clients.add(websocket)
        log("Bridge", f"Client connected ({len(self.clients)} active)")
        try:
            async for message in websocket:
                await self.handle_message(message)
        except ConnectionClosed:
            pass
        finally:
            self.clients.discard(websocket)
            log("Bridge", "Client disconnected")

    async def run(self, stop: asyncio.Event):
        try:
            async with serve(self.handle_client, self.config.host, self.config.port):
                log("Bridge", f"WebSocket server started on ws://{self.config.host}:{self.config.port}")
                # agents may connect while the Discord handshake is in flight
                await self.connection.login()
                await stop.wait()

                # presence goes before the listening socket
                log("Bridge", "Shutting down...")
                await self.connection.close()
        finally:
            # no-op after a clean shutdown
            await self.connection.close()
