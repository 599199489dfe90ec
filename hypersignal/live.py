"""Live dashboard WebSocket, served on the same port as the HTTP API.

LiveSocketMiddleware wraps the Flask WSGI app. Requests carrying a WebSocket
upgrade are accepted with simple-websocket on the werkzeug request thread and
handed to the BroadcastHub; everything else goes to Flask unchanged.

Each connection keeps its request thread: it blocks in receive() (inbound
frames are ignored) until the client or close_all() ends it.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

import simple_websocket

from hypersignal.hub import BroadcastHub

log = logging.getLogger(__name__)


def is_websocket_request(environ: dict) -> bool:
    upgrade = environ.get("HTTP_UPGRADE", "").lower()
    connection = environ.get("HTTP_CONNECTION", "").lower()
    return upgrade == "websocket" and "upgrade" in connection


class SocketClient:
    """Async face of a blocking simple-websocket connection for the hub.

    Sends run in the loop's executor. The asyncio lock is FIFO, so frames
    leave in the order the hub queued them.
    """

    def __init__(self, ws: simple_websocket.Server):
        self._ws = ws
        self._send_lock = asyncio.Lock()

    @property
    def closed(self) -> bool:
        return not self._ws.connected

    async def send(self, payload: str) -> None:
        async with self._send_lock:
            await asyncio.get_running_loop().run_in_executor(None, self._ws.send, payload)

    async def close(self) -> None:
        if self._ws.connected:
            await asyncio.get_running_loop().run_in_executor(None, self.close_blocking)

    def close_blocking(self) -> None:
        try:
            self._ws.close()
        except simple_websocket.ConnectionClosed:
            pass


def serve_client(hub: BroadcastHub, ws: simple_websocket.Server) -> None:
    """Register `ws` with the hub and hold it until the connection ends."""
    conn = SocketClient(ws)
    if not hub.connect_threadsafe(conn):
        if ws.connected:
            conn.close_blocking()
        return
    try:
        while True:
            ws.receive()
    except simple_websocket.ConnectionClosed:
        pass
    except Exception as e:
        hub.on_error(conn, e)
    finally:
        hub.on_close(conn)


class LiveSocketMiddleware:
    """WSGI middleware: WebSocket upgrades to the hub, the rest to `wsgi_app`."""

    def __init__(self, wsgi_app: Callable, hub_provider: Callable[[], BroadcastHub]):
        self.wsgi_app = wsgi_app
        self._hub_provider = hub_provider

    def __call__(self, environ: dict, start_response: Callable) -> Any:
        if not is_websocket_request(environ):
            return self.wsgi_app(environ, start_response)

        try:
            ws = simple_websocket.Server(environ)
        except Exception as e:
            log.warning("[LIVE] WebSocket handshake failed: %s", str(e)[:200])
            start_response("400 Bad Request", [("Content-Type", "text/plain")])
            return [b"WebSocket handshake failed"]

        serve_client(self._hub_provider(), ws)

        # The socket belongs to the websocket now; the server must not write
        # an HTTP response on it
        if ws.mode == "werkzeug":
            raise ConnectionError()
        if ws.mode == "gunicorn":
            raise StopIteration()
        return []
