"""HyperSignal service: Flask API, WebSocket hub and scheduler in one process.

  HTTP + WS  (PORT, default 3001)  Flask app on a werkzeug server thread;
                                   WebSocket upgrades go to the hub
  Scheduler                        detect + reprice on the asyncio loop

Flask handlers reach the hub through publish_threadsafe(); blocking task
work runs in the loop's default executor.
"""
from __future__ import annotations

import asyncio
import logging
import signal
import sys
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from flask import Flask
from werkzeug.serving import make_server

from hypersignal.aggregator import compute_snapshot
from hypersignal.config import HyperSignalConfig
from hypersignal.detector import SignalDetector
from hypersignal.exchange import HyperliquidClient
from hypersignal.http_session import close_session
from hypersignal.live import LiveSocketMiddleware
from hypersignal.hub import BroadcastHub, dashboard_update
from hypersignal.notifier import TelegramNotifier
from hypersignal.routes import register_all_blueprints
from hypersignal.scheduler import Scheduler
from hypersignal.settings import SettingsStore
from hypersignal.storage import SignalStore, WalletStore

log = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Everything the route blueprints need."""
    settings: SettingsStore
    signals: SignalStore
    wallets: WalletStore
    client: HyperliquidClient
    hub: BroadcastHub
    build_snapshot: Callable[[], dict]
    scheduler: Optional[Scheduler] = None


def create_app(ctx: AppContext, config: Optional[dict] = None) -> Flask:
    app = Flask(__name__)
    if config:
        app.config.update(config)
    app.extensions["hypersignal"] = ctx
    register_all_blueprints(app)
    # Live dashboard WebSocket shares the HTTP port
    app.wsgi_app = LiveSocketMiddleware(app.wsgi_app, lambda: ctx.hub)

    @app.after_request
    def _cors(resp):
        resp.headers["Access-Control-Allow-Origin"] = "*"
        resp.headers["Access-Control-Allow-Headers"] = "Content-Type"
        resp.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        return resp

    return app


class HyperSignalService:
    """Wires stores, exchange client, detector, hub and scheduler together."""

    def __init__(self, cfg: Optional[HyperSignalConfig] = None):
        self._cfg = cfg or HyperSignalConfig()
        self.settings = SettingsStore(self._cfg.settings_file)
        self.signals = SignalStore(self._cfg.signals_file)
        self.wallets = WalletStore(self._cfg.wallets_file)
        self.client = HyperliquidClient(self._cfg)
        self.notifier = TelegramNotifier(self.settings.get_settings)
        self.detector = SignalDetector(
            self.client, self.signals, self.wallets,
            self.settings.get_settings, notifier=self.notifier,
        )
        self.hub = BroadcastHub(self.build_snapshot)
        self.scheduler = Scheduler(
            self.detector.detect_and_save,
            self.detector.update_prices,
            self.settings.get,
            publish=self.publish,
            reload_seconds=self._cfg.reload_seconds,
            tick_seconds=self._cfg.tick_seconds,
        )
        self.app = create_app(AppContext(
            settings=self.settings,
            signals=self.signals,
            wallets=self.wallets,
            client=self.client,
            hub=self.hub,
            build_snapshot=self.build_snapshot,
            scheduler=self.scheduler,
        ))
        self._http_server = None
        self._stopping: Optional[asyncio.Event] = None

    def build_snapshot(self) -> dict:
        return compute_snapshot(self.signals.list(), self.wallets.active())

    async def publish(self) -> int:
        """Fresh snapshot to every dashboard client."""
        loop = asyncio.get_running_loop()
        snapshot = await loop.run_in_executor(None, self.build_snapshot)
        return await self.hub.broadcast(dashboard_update(snapshot))

    # ── Main Entry ──

    async def run(self) -> None:
        self._setup_logging()
        loop = asyncio.get_running_loop()
        self._stopping = asyncio.Event()

        # Bootstrap failure is fatal
        intervals = await self.scheduler.load_initial()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._shutdown)

        log.info("=" * 60)
        log.info("  HYPERSIGNAL — %s", "TESTNET" if self._cfg.hl_testnet else "MAINNET")
        log.info("  HTTP + WS: %s:%d", self._cfg.host, self._cfg.port)
        log.info("  Detect: %.0fs | Reprice: %.0fs | Data: %s",
                 intervals.detect, intervals.reprice, self._cfg.data_dir)
        log.info("=" * 60)

        self.hub.bind(loop)
        self._http_server = make_server(self._cfg.host, self._cfg.port, self.app, threaded=True)
        threading.Thread(target=self._http_server.serve_forever,
                         name="hypersignal-http", daemon=True).start()
        log.info("[INIT] HTTP API + WebSocket listening on %d", self._cfg.port)

        sched_task = asyncio.create_task(self.scheduler.run(), name="scheduler")
        await self._stopping.wait()
        await sched_task
        await self._teardown()

    def _shutdown(self) -> None:
        log.info("[SHUTDOWN] Signal received")
        inflight = self.scheduler.stop()
        if inflight:
            log.info("[SHUTDOWN] Not waiting for: %s", ", ".join(inflight))
        self.hub.stop()
        if self._stopping is not None:
            self._stopping.set()

    async def _teardown(self) -> None:
        closed = await self.hub.close_all()
        if self._http_server is not None:
            await asyncio.get_running_loop().run_in_executor(None, self._http_server.shutdown)
        close_session()
        log.info("[SHUTDOWN] Done | %d clients closed", closed)

    def _setup_logging(self) -> None:
        level = getattr(logging, self._cfg.log_level.upper(), logging.INFO)
        root_log = logging.getLogger("hypersignal")
        root_log.setLevel(level)

        fmt = logging.Formatter(
            "%(asctime)s [%(name)s] %(levelname)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        ch = logging.StreamHandler(sys.stdout)
        ch.setLevel(level)
        ch.setFormatter(fmt)
        root_log.addHandler(ch)

        fh = logging.FileHandler(self._cfg.data_dir / "hypersignal.log")
        fh.setLevel(level)
        fh.setFormatter(fmt)
        root_log.addHandler(fh)

        for lib in ("urllib3", "requests", "simple_websocket", "werkzeug"):
            logging.getLogger(lib).setLevel(logging.WARNING)
