# ytm_rpc/cdp_reader.py
"""
Reads the YouTube Music player bar from a running Chromium browser through the
Chrome DevTools Protocol. Start the browser with --remote-debugging-port=9222.
"""
import itertools
import json
import time
from typing import Optional

import requests
from websockets.exceptions import WebSocketException
from websockets.sync.client import connect

from .debug import debug_log
from .models import PlaybackSnapshot
from .player_bar import snapshot_from_player_bar


# Raw text only; all parsing happens in player_bar.py
PLAYER_BAR_JS = r'''
(() => {
    const text = (sel) => document.querySelector(sel)?.textContent?.trim() || '';
    const bar = document.querySelector('ytmusic-player-bar');
    const repeat = document.querySelector('.repeat.style-scope.ytmusic-player-bar');
    return {
        url: location.href,
        title: text('.title.style-scope.ytmusic-player-bar'),
        byline: text('.byline.style-scope.ytmusic-player-bar'),
        thumbnail: document.querySelector('img.style-scope.ytmusic-player-bar')?.src || '',
        playLabel: document.querySelector('#play-pause-button')?.getAttribute('aria-label') || '',
        timeInfo: text('.time-info.style-scope.ytmusic-player-bar'),
        repeatLabel: bar?.getAttribute('repeat-mode') || repeat?.getAttribute('title') || '',
    };
})()
'''

READ_ERRORS = (requests.RequestException, WebSocketException, OSError, ValueError, KeyError, TypeError)


class CdpPageReader:
    def __init__(self, port: int = 9222, url_match: str = "music.youtube.com",
                 session: Optional[requests.Session] = None, connect_fn=connect, timeout: float = 5.0):
        self.port = port
        self.url_match = url_match
        self.timeout = timeout
        self._http = session or requests.Session()
        self._connect = connect_fn
        self._ids = itertools.count(1)

    def find_tab(self) -> Optional[dict]:
        r = self._http.get(f"http://127.0.0.1:{self.port}/json", timeout=self.timeout)
        r.raise_for_status()
        for tab in r.json():
            url = tab.get("url") or ""
            if tab.get("type", "page") != "page" or self.url_match not in url:
                continue
            if tab.get("webSocketDebuggerUrl"):
                return tab
        return None

    def evaluate(self, ws_url: str, expression: str):
        msg_id = next(self._ids)
        request = {
            "id": msg_id,
            "method": "Runtime.evaluate",
            "params": {"expression": expression, "returnByValue": True},
        }

        with self._connect(ws_url, open_timeout=self.timeout, max_size=None) as ws:
            ws.send(json.dumps(request))
            # Chrome may interleave events before our reply
            while True:
                obj = json.loads(ws.recv(timeout=self.timeout))
                if obj.get("id") == msg_id:
                    break

        if "error" in obj:
            raise ValueError(f"CDP error: {obj['error'].get('message', obj['error'])}")
        result = obj["result"]
        if "exceptionDetails" in result:
            raise ValueError(f"page script failed: {result['exceptionDetails'].get('text', '')}")
        return result["result"].get("value")

    def current_url(self) -> Optional[str]:
        try:
            tab = self.find_tab()
        except READ_ERRORS as e:
            debug_log(f"CDP tab lookup failed: {e}")
            return None
        return tab.get("url") if tab else None

    def read(self) -> Optional[PlaybackSnapshot]:
        try:
            tab = self.find_tab()
            if not tab:
                return None
            fields = self.evaluate(tab["webSocketDebuggerUrl"], PLAYER_BAR_JS)
        except READ_ERRORS as e:
            debug_log(f"CDP read failed: {e}")
            return None

        return snapshot_from_player_bar(fields, captured_at=int(time.time() * 1000))
