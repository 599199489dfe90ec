"""Dual-cadence task scheduler: detection and repricing, never overlapping.

  detect   every walletPollInterval (floor 10s), first run 5s after start
  reprice  every pricePollInterval  (floor 5s),  first run 2s after start
  reload   settings re-read every 5 min; POST /api/settings also pushes
           new intervals immediately via apply_settings()

Each task has a TaskState. A firing that finds its task RUNNING is a no-op,
so one task type never runs twice at once; detect and reprice are
independent and may run concurrently. After every successful run the publish
callback (snapshot + broadcast) is awaited. Failures are logged and the loop
carries on at its normal cadence.

Clock and sleep are injectable so tests can drive tick() deterministically.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from hypersignal.settings import Settings

log = logging.getLogger(__name__)

DETECT = "detect"
REPRICE = "reprice"

# Minimum poll intervals, whatever settings.json says
DETECT_FLOOR_SECONDS = 10.0
REPRICE_FLOOR_SECONDS = 5.0
DEFAULT_DETECT_SECONDS = 60.0
DEFAULT_REPRICE_SECONDS = 30.0

# Staggered first runs
DETECT_START_DELAY = 5.0
REPRICE_START_DELAY = 2.0

RELOAD_SECONDS = 300.0


class TaskState(Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass(frozen=True)
class PollIntervals:
    detect: float = DEFAULT_DETECT_SECONDS
    reprice: float = DEFAULT_REPRICE_SECONDS

    @classmethod
    def from_settings(cls, settings: Settings | dict) -> "PollIntervals":
        if isinstance(settings, dict):
            settings = Settings.from_dict(settings)
        detect = settings.wallet_poll_interval or DEFAULT_DETECT_SECONDS
        reprice = settings.price_poll_interval or DEFAULT_REPRICE_SECONDS
        return cls(
            detect=max(DETECT_FLOOR_SECONDS, detect),
            reprice=max(REPRICE_FLOOR_SECONDS, reprice),
        )


@dataclass
class ScheduledTask:
    name: str
    fn: Callable[[], Any]
    start_delay: float
    state: TaskState = TaskState.IDLE
    last_started: Optional[float] = None
    runs: int = 0
    failures: int = 0
    skipped: int = 0


async def _call(fn: Callable[[], Any]) -> Any:
    """Await coroutine functions; run plain callables in the default executor."""
    if inspect.iscoroutinefunction(fn):
        return await fn()
    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(None, fn)
    if asyncio.iscoroutine(result):
        return await result
    return result


class Scheduler:
    """Owns the detect and reprice loops and their poll intervals."""

    def __init__(
        self,
        detect: Callable[[], Any],
        reprice: Callable[[], Any],
        load_settings: Callable[[], Any],
        publish: Optional[Callable[[], Awaitable[Any]]] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        reload_seconds: float = RELOAD_SECONDS,
        tick_seconds: float = 1.0,
        intervals: Optional[PollIntervals] = None,
    ):
        self._tasks = {
            DETECT: ScheduledTask(DETECT, detect, DETECT_START_DELAY),
            REPRICE: ScheduledTask(REPRICE, reprice, REPRICE_START_DELAY),
        }
        self._load_settings = load_settings
        self._publish = publish
        self._clock = clock
        self._sleep = sleep
        self._reload_seconds = reload_seconds
        self._tick_seconds = tick_seconds
        self._intervals = intervals or PollIntervals()
        self._started_at: Optional[float] = None
        self._last_reload: Optional[float] = None
        self._running = False
        self._inflight: set[asyncio.Task] = set()

    # ── State ──

    @property
    def intervals(self) -> PollIntervals:
        return self._intervals

    @property
    def running(self) -> bool:
        return self._running

    def state(self, name: str) -> TaskState:
        return self._tasks[name].state

    def task(self, name: str) -> ScheduledTask:
        return self._tasks[name]

    def interval_for(self, name: str) -> float:
        intervals = self._intervals  # single read: reload may swap it
        return intervals.detect if name == DETECT else intervals.reprice

    # ── Configuration ──

    def apply_settings(self, settings: Settings | dict) -> PollIntervals:
        """Swap in intervals derived from `settings`. Safe from any thread."""
        new = PollIntervals.from_settings(settings)
        old = self._intervals
        if new != old:
            log.info("[SCHED] Intervals updated: detect %.0fs -> %.0fs | reprice %.0fs -> %.0fs",
                     old.detect, new.detect, old.reprice, new.reprice)
        self._intervals = new
        return new

    async def load_initial(self) -> PollIntervals:
        """Bootstrap read of settings. Unlike reload(), failure propagates."""
        settings = await _call(self._load_settings)
        intervals = self.apply_settings(settings)
        self._mark_started()
        log.info("[SCHED] Intervals set: detect=%.0fs reprice=%.0fs", intervals.detect, intervals.reprice)
        return intervals

    async def reload(self) -> bool:
        """Re-read settings; on failure keep the current intervals."""
        try:
            settings = await _call(self._load_settings)
            self.apply_settings(settings)
            return True
        except Exception as e:
            log.warning("[SCHED] Settings reload failed, keeping detect=%.0fs reprice=%.0fs: %s",
                        self._intervals.detect, self._intervals.reprice, str(e)[:200])
            return False

    # ── Driving ──

    async def tick(self) -> list[str]:
        """One scheduling pass. Returns the names of tasks launched."""
        now = self._clock()
        if self._started_at is None:
            self._mark_started(now)

        if now - self._last_reload >= self._reload_seconds:
            self._last_reload = now
            await self.reload()

        launched = []
        for task in self._tasks.values():
            if not self._is_due(task, now):
                continue
            if task.state is TaskState.RUNNING:
                task.skipped += 1
                log.debug("[SCHED] %s still in progress — skipping", task.name)
                continue
            self._launch(task, now)
            launched.append(task.name)
        return launched

    def trigger(self, name: str) -> bool:
        """Start `name` now unless it is already running. Never queues."""
        task = self._tasks[name]
        if task.state is TaskState.RUNNING:
            task.skipped += 1
            log.info("[SCHED] %s already in progress — trigger ignored", name)
            return False
        self._launch(task, self._clock())
        return True

    async def run(self) -> None:
        """Tick until stop()."""
        self._running = True
        if self._started_at is None:
            self._mark_started()
        log.info("[SCHED] Running | detect=%.0fs reprice=%.0fs reload=%.0fs",
                 self._intervals.detect, self._intervals.reprice, self._reload_seconds)
        while self._running:
            try:
                await self.tick()
            except Exception as e:
                log.error("[SCHED] Tick error: %s", str(e)[:200])
            await self._sleep(self._tick_seconds)
        log.info("[SCHED] Stopped")

    def stop(self) -> list[str]:
        """Stop ticking. In-flight runs are not cancelled; returns their names."""
        self._running = False
        inflight = [t.name for t in self._tasks.values() if t.state is TaskState.RUNNING]
        for name in inflight:
            log.warning("[SCHED] Abandoning in-flight %s run", name)
        return inflight

    # ── Internal ──

    def _mark_started(self, now: Optional[float] = None) -> None:
        now = self._clock() if now is None else now
        if self._started_at is None:
            self._started_at = now
        self._last_reload = now

    def _is_due(self, task: ScheduledTask, now: float) -> bool:
        if task.last_started is None:
            return now - self._started_at >= task.start_delay
        return now - task.last_started >= self.interval_for(task.name)

    def _launch(self, task: ScheduledTask, now: float) -> None:
        # State flips before the coroutine is scheduled so a second firing
        # in the same loop iteration already sees RUNNING
        task.state = TaskState.RUNNING
        task.last_started = now
        handle = asyncio.create_task(self._run_task(task), name=f"sched-{task.name}")
        self._inflight.add(handle)
        handle.add_done_callback(self._inflight.discard)

    async def _run_task(self, task: ScheduledTask) -> None:
        started = self._clock()
        try:
            try:
                await _call(task.fn)
            except Exception as e:
                task.failures += 1
                log.error("[SCHED] %s failed (%s): %s", task.name, type(e).__name__, str(e)[:200])
                return
            task.runs += 1
            log.info("[SCHED] %s completed in %.1fs", task.name, self._clock() - started)
            await self._publish_safely(task.name)
        finally:
            task.state = TaskState.IDLE

    async def _publish_safely(self, name: str) -> None:
        if self._publish is None:
            return
        try:
            await _call(self._publish)
        except Exception as e:
            log.error("[SCHED] Publish after %s failed: %s", name, str(e)[:200])

    async def wait_idle(self) -> None:
        """Wait for launched runs to finish (tests, graceful shutdown)."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
