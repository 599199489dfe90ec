import asyncio
import threading

from hypersignal.hub import (
    DASHBOARD_UPDATE,
    SETTINGS_UPDATE,
    BroadcastHub,
    dashboard_update,
    settings_update,
)

from conftest import FakeConn


def test_new_client_is_primed_with_snapshot():
    hub = BroadcastHub(lambda: {"totalPnl": 1.5})
    conn = FakeConn()

    assert asyncio.run(hub.on_connect(conn)) is True
    assert conn.messages() == [{"type": DASHBOARD_UPDATE, "data": {"totalPnl": 1.5}}]
    assert hub.client_count == 1


def test_async_snapshot_provider():
    async def provider():
        return {"activeSignals": 3}

    hub = BroadcastHub(provider)
    conn = FakeConn()
    asyncio.run(hub.on_connect(conn))

    assert conn.messages()[0]["data"] == {"activeSignals": 3}


def test_snapshot_failure_keeps_client_without_message():
    def provider():
        raise RuntimeError("store unreadable")

    hub = BroadcastHub(provider)
    conn = FakeConn()

    assert asyncio.run(hub.on_connect(conn)) is True
    assert conn.sent == []
    assert hub.client_count == 1


def test_broadcast_skips_and_drops_dead_clients():
    hub = BroadcastHub(dict)
    live = [FakeConn() for _ in range(3)]
    dead = [FakeConn() for _ in range(2)]

    async def main():
        for conn in live + dead:
            await hub.on_connect(conn)
        dead[0].closed = True
        dead[1].fail = True
        return await hub.broadcast(settings_update({"minWalletCount": 4}))

    assert asyncio.run(main()) == 3
    assert hub.client_count == 3
    for conn in live:
        assert conn.messages()[-1] == {"type": SETTINGS_UPDATE, "data": {"minWalletCount": 4}}
    assert dead[1].messages() == [{"type": DASHBOARD_UPDATE, "data": {}}]


def test_broadcast_with_no_clients():
    hub = BroadcastHub(dict)
    assert asyncio.run(hub.broadcast(dashboard_update({}))) == 0


def test_priming_happens_before_any_broadcast():
    hub = BroadcastHub(lambda: {"n": 0})
    conn = FakeConn()

    async def main():
        await hub.on_connect(conn)
        await hub.broadcast(dashboard_update({"n": 1}))

    asyncio.run(main())
    assert [m["data"]["n"] for m in conn.messages()] == [0, 1]


def test_stopped_hub_refuses_connections_and_broadcasts():
    hub = BroadcastHub(dict)
    existing = FakeConn()
    late = FakeConn()

    async def main():
        await hub.on_connect(existing)
        hub.stop()
        accepted = await hub.on_connect(late)
        delivered = await hub.broadcast(dashboard_update({}))
        return accepted, delivered

    assert asyncio.run(main()) == (False, 0)
    assert late.closed is True
    assert hub.accepting is False
    assert len(existing.sent) == 1


def test_close_all():
    hub = BroadcastHub(dict)
    conns = [FakeConn(), FakeConn()]

    async def main():
        for conn in conns:
            await hub.on_connect(conn)
        hub.stop()
        return await hub.close_all()

    assert asyncio.run(main()) == 2
    assert all(c.closed for c in conns)
    assert hub.client_count == 0


def test_on_error_removes_client():
    hub = BroadcastHub(dict)
    conn = FakeConn()
    asyncio.run(hub.on_connect(conn))

    hub.on_error(conn, RuntimeError("reset"))

    assert hub.client_count == 0


def test_publish_threadsafe_without_loop_is_noop():
    hub = BroadcastHub(dict)
    assert hub.publish_threadsafe(dashboard_update({})) is None


def test_publish_threadsafe_from_worker_thread():
    hub = BroadcastHub(dict)
    conn = FakeConn()

    async def main():
        hub.bind(asyncio.get_running_loop())
        await hub.on_connect(conn)
        loop = asyncio.get_running_loop()
        future = await loop.run_in_executor(
            None, hub.publish_threadsafe, settings_update({"a": 1}))
        return await asyncio.wrap_future(future)

    assert asyncio.run(main()) == 1
    assert conn.messages()[-1]["type"] == SETTINGS_UPDATE


class SlowProvider:
    """Snapshot provider that blocks in the executor until released."""

    def __init__(self, snapshot):
        self.snapshot = snapshot
        self.entered = threading.Event()
        self.release = threading.Event()

    def __call__(self):
        self.entered.set()
        self.release.wait(5)
        return self.snapshot


async def _wait_for(event):
    while not event.is_set():
        await asyncio.sleep(0.01)


def test_cycle_broadcast_during_slow_snapshot_does_not_overtake_prime():
    provider = SlowProvider({"n": "stale-prime"})
    hub = BroadcastHub(provider)
    conn = FakeConn()

    async def main():
        connecting = asyncio.create_task(hub.on_connect(conn))
        await _wait_for(provider.entered)
        await hub.broadcast(dashboard_update({"n": "fresh-cycle"}))
        provider.release.set()
        assert await connecting is True
        await hub.broadcast(dashboard_update({"n": "next-cycle"}))

    asyncio.run(main())
    assert [m["data"]["n"] for m in conn.messages()] == ["fresh-cycle", "next-cycle"]


def test_settings_update_during_slow_snapshot_does_not_precede_prime():
    provider = SlowProvider({"n": "prime"})
    hub = BroadcastHub(provider)
    conn = FakeConn()

    async def main():
        connecting = asyncio.create_task(hub.on_connect(conn))
        await _wait_for(provider.entered)
        await hub.broadcast(settings_update({"minWalletCount": 2}))
        provider.release.set()
        await connecting

    asyncio.run(main())
    assert conn.messages() == [{"type": DASHBOARD_UPDATE, "data": {"n": "prime"}}]


def test_hub_stopped_while_snapshot_builds_refuses_client():
    provider = SlowProvider({})
    hub = BroadcastHub(provider)
    conn = FakeConn()

    async def main():
        connecting = asyncio.create_task(hub.on_connect(conn))
        await _wait_for(provider.entered)
        hub.stop()
        provider.release.set()
        return await connecting

    assert asyncio.run(main()) is False
    assert conn.closed is True
    assert hub.client_count == 0


def test_connect_threadsafe_from_request_thread():
    loop = asyncio.new_event_loop()
    runner = threading.Thread(target=loop.run_forever, daemon=True)
    runner.start()
    try:
        hub = BroadcastHub(lambda: {"ok": True})
        hub.bind(loop)
        conn = FakeConn()

        assert hub.connect_threadsafe(conn) is True
        assert conn.messages() == [{"type": DASHBOARD_UPDATE, "data": {"ok": True}}]
        assert hub.client_count == 1
    finally:
        loop.call_soon_threadsafe(loop.stop)
        runner.join(5)
        loop.close()


def test_connect_threadsafe_without_loop_refuses():
    hub = BroadcastHub(dict)
    assert hub.connect_threadsafe(FakeConn()) is False
