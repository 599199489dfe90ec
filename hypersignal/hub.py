"""WebSocket broadcast hub: live dashboard connections and fanout.

Every message is the envelope {"type": ..., "data": ...}:
  dashboard_update  after every successful scheduler cycle, and once to
                    each new connection before anything else
  settings_update   right after a successful settings write

Fanout is best effort. A client whose send fails is dropped from the live
set and the rest still get the message. Nothing is queued or retried for
clients that are gone, and clients never see error frames.

A connection joins the live set only once its priming payload is ready, and
the priming send is queued before control returns to the loop, so no
broadcast can reach a new client ahead of it. If a dashboard_update went out
while the snapshot was being built, the client is primed with that newer
payload instead.

The membership lock is held only while the set changes, never across a
send, so a slow client cannot stall connects or disconnects.
"""
from __future__ import annotations

import asyncio
import inspect
import json
import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional

log = logging.getLogger(__name__)

DASHBOARD_UPDATE = "dashboard_update"
SETTINGS_UPDATE = "settings_update"

# Upper bound on a single client send; a stuck client is dropped after this
SEND_TIMEOUT_SECONDS = 10.0


def dashboard_update(snapshot: dict) -> dict:
    return {"type": DASHBOARD_UPDATE, "data": snapshot}


def settings_update(settings: dict) -> dict:
    return {"type": SETTINGS_UPDATE, "data": settings}


def _is_closed(conn: Any) -> bool:
    state = getattr(conn, "state", None)
    if state is not None and getattr(state, "name", "") in ("CLOSING", "CLOSED"):
        return True
    return getattr(conn, "closed", False) is True


class BroadcastHub:
    """Owns the set of live client connections."""

    def __init__(self, snapshot_provider: Callable[[], Any]):
        self._snapshot_provider = snapshot_provider
        self._clients: set[Any] = set()
        self._lock = threading.Lock()
        self._accepting = True
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        # Last dashboard_update payload and how many have gone out
        self._last_dashboard: Optional[str] = None
        self._dashboard_seq = 0

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        """Remember the event loop that owns the connections."""
        self._loop = loop

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    @property
    def accepting(self) -> bool:
        return self._accepting

    # ── Membership ──

    async def on_connect(self, conn: Any) -> bool:
        """Prime `conn` with the current snapshot and register it."""
        if not self._accepting:
            await conn.close()
            return False

        seq = self._dashboard_seq
        payload: Optional[str] = None
        try:
            payload = json.dumps(dashboard_update(await self._snapshot()), default=str)
        except Exception as e:
            # Client still joins; it gets data on the next cycle
            log.error("[HUB] Snapshot for new client failed: %s", str(e)[:200])

        if not self._accepting:
            await conn.close()
            return False
        if self._dashboard_seq != seq and self._last_dashboard is not None:
            payload = self._last_dashboard

        # No await between joining the set and queueing the priming send
        with self._lock:
            self._clients.add(conn)
            live = len(self._clients)
        log.info("[HUB] Client connected (%d live)", live)
        if payload is None:
            return True

        prime = asyncio.ensure_future(conn.send(payload))
        try:
            await asyncio.wait_for(prime, SEND_TIMEOUT_SECONDS)
        except Exception as e:
            self._discard(conn)
            log.debug("[HUB] Initial send failed, dropping client: %s", str(e)[:100])
            return False
        return True

    def connect_threadsafe(self, conn: Any, timeout: float = 2 * SEND_TIMEOUT_SECONDS) -> bool:
        """on_connect() for callers on another thread. Blocks until primed."""
        loop = self._loop
        if loop is None or loop.is_closed() or not loop.is_running():
            log.warning("[HUB] No running loop, refusing client")
            return False
        future = asyncio.run_coroutine_threadsafe(self.on_connect(conn), loop)
        try:
            return future.result(timeout)
        except Exception as e:
            future.cancel()
            self._discard(conn)
            log.warning("[HUB] Client registration failed: %s", str(e)[:200])
            return False

    def on_close(self, conn: Any) -> None:
        if self._discard(conn):
            log.info("[HUB] Client disconnected (%d live)", self.client_count)

    def on_error(self, conn: Any, error: BaseException) -> None:
        log.warning("[HUB] Client error: %s", str(error)[:200])
        self._discard(conn)

    def _discard(self, conn: Any) -> bool:
        with self._lock:
            if conn in self._clients:
                self._clients.discard(conn)
                return True
        return False

    # ── Fanout ──

    async def broadcast(self, message: dict) -> int:
        """Send `message` to every live client. Returns successful deliveries."""
        if not self._accepting:
            log.debug("[HUB] Shutting down, dropping %s", message.get("type"))
            return 0
        payload = json.dumps(message, default=str)
        if message.get("type") == DASHBOARD_UPDATE:
            self._last_dashboard = payload
            self._dashboard_seq += 1
        with self._lock:
            targets = list(self._clients)
        if not targets:
            return 0

        results = await asyncio.gather(*(self._send(conn, payload) for conn in targets))
        delivered = sum(1 for ok in results if ok)
        log.debug("[HUB] %s -> %d/%d clients", message.get("type"), delivered, len(targets))
        return delivered

    async def _send(self, conn: Any, payload: str) -> bool:
        if _is_closed(conn):
            self._discard(conn)
            return False
        try:
            await asyncio.wait_for(conn.send(payload), SEND_TIMEOUT_SECONDS)
            return True
        except Exception as e:
            self._discard(conn)
            log.debug("[HUB] Send failed, dropping client: %s", str(e)[:100])
            return False

    def publish_threadsafe(self, message: dict) -> Optional[Future]:
        """Schedule broadcast() on the hub's loop from another thread."""
        loop = self._loop
        if loop is None or loop.is_closed() or not loop.is_running():
            log.debug("[HUB] No running loop, %s not sent", message.get("type"))
            return None
        return asyncio.run_coroutine_threadsafe(self.broadcast(message), loop)

    # ── Shutdown ──

    def stop(self) -> None:
        """Refuse new connections and further broadcasts."""
        self._accepting = False

    async def close_all(self) -> int:
        """Close every live connection. Returns how many were closed."""
        with self._lock:
            targets = list(self._clients)
            self._clients.clear()
        if targets:
            await asyncio.gather(*(conn.close() for conn in targets), return_exceptions=True)
            log.info("[HUB] Closed %d client connections", len(targets))
        return len(targets)

    # ── Internal ──

    async def _snapshot(self) -> Any:
        provider = self._snapshot_provider
        if inspect.iscoroutinefunction(provider):
            return await provider()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, provider)
