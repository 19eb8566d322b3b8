"""The dashboard event loop.

One thread drives everything the user sees: tick deadlines, terminal input,
history updates and frame drawing. Sampling runs on the worker thread from
:mod:`sysgauge.sampler`, so a slow provider call only ever delays when a
sample shows up, never the loop itself.

Ticks are anchored: tick *n* is due at ``start + n * interval``. Deadlines
missed during a stall are skipped rather than replayed, so the cadence never
drifts and never bursts.
"""

from __future__ import annotations

import curses
import logging
import math
import threading
import time
from collections import deque
from collections.abc import Callable
from enum import Enum

from sysgauge.config import Config
from sysgauge.errors import FatalBackendError, TerminalError, TransientSampleError
from sysgauge.history import MetricHistory
from sysgauge.models import MetricSample, SystemInfo
from sysgauge.render import Page, render
from sysgauge.sampler import LatestSlot, MetricSampler, SampleOutcome, SamplingWorker
from sysgauge.terminal import NO_KEY, CursesSession, TerminalSession

logger = logging.getLogger(__name__)

POLL_SLICE = 0.05  # longest a single input wait may block, in seconds
SHUTDOWN_JOIN = 0.2  # how long quit waits for an in-flight sample, in seconds
QUIT_KEYS = frozenset({ord("q"), ord("Q"), 27, 3})  # q, Q, Esc, Ctrl-C (raw mode)
ENTER_KEYS = frozenset({10, 13, curses.KEY_ENTER})
BACK_KEYS = frozenset({curses.KEY_BACKSPACE, 127, 8})


class LoopState(Enum):
    INITIALIZING = "initializing"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class TickSchedule:
    """Deadlines computed as ``start + n * interval``."""

    def __init__(self, start: float, interval: float) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.start = start
        self.interval = interval

    def deadline(self, n: int) -> float:
        return self.start + n * self.interval

    def next_index(self, current: int, now: float) -> int:
        """First tick after *current* whose deadline is still ahead of *now*."""
        n = max(current + 1, math.floor((now - self.start) / self.interval) + 1)
        while self.deadline(n) <= now:
            n += 1
        return n


class EventLoop:
    """State machine that owns the terminal for the life of the dashboard."""

    def __init__(
        self,
        config: Config,
        sampler: MetricSampler,
        *,
        info: SystemInfo | None = None,
        session_factory: Callable[[], TerminalSession] = CursesSession,
        clock: Callable[[], float] = time.monotonic,
        poll_slice: float = POLL_SLICE,
    ) -> None:
        self.config = config
        self.info = info or SystemInfo()
        self.history = MetricHistory(config.history_size)
        self.state = LoopState.INITIALIZING
        self.page = Page.METRICS
        self.selected = 0
        self.detail_pid: int | None = None
        self.stale = False
        self.exit_code = 0
        self.fatal_error: str | None = None
        self.tick_times: deque[float] = deque(maxlen=1024)

        self._sampler = sampler
        self._slot = LatestSlot()
        self._worker = SamplingWorker(sampler, self._slot)
        self._session_factory = session_factory
        self._clock = clock
        self._poll_slice = poll_slice
        self._quit = threading.Event()

        self._tick = -1
        self._pending: int | None = None
        self._pending_expiry = 0.0
        self._timed_out = False
        self._size = (0, 0)

    @property
    def latest(self) -> MetricSample | None:
        return self.history.latest()

    def request_quit(self) -> None:
        """Ask the loop to shut down; safe from signal handlers and other threads."""
        self._quit.set()

    # ── Lifecycle ─────────────────────────────────────────────────────────

    def run(self) -> int:
        """Run until quit or a fatal error. Returns the process exit code."""
        self.state = LoopState.INITIALIZING
        session = self._session_factory()
        try:
            session.open()
        except TerminalError as e:
            logger.error("terminal setup failed: %s", e)
            self.fatal_error = str(e)
            self.exit_code = 1
            self.state = LoopState.TERMINATED
            return self.exit_code

        try:
            self.state = LoopState.RUNNING
            self._worker.start()
            self._run(session)
        except Exception as e:
            logger.exception("event loop crashed")
            self.fatal_error = f"internal error: {e}"
            self.exit_code = 1
        finally:
            self.state = LoopState.SHUTTING_DOWN
            # The terminal comes back first; a hung provider call must not hold it.
            try:
                session.restore()
            finally:
                self._worker.stop(timeout=min(self.config.sample_timeout, SHUTDOWN_JOIN))
                self.state = LoopState.TERMINATED
        return self.exit_code

    def _run(self, session: TerminalSession) -> None:
        self._size = session.size()
        schedule = TickSchedule(self._clock(), self.config.interval)
        next_tick = 0
        self._draw(session)

        while not self._quit.is_set():
            now = self._clock()
            if now >= schedule.deadline(next_tick):
                was_stale = self.stale
                self._on_tick(next_tick, now)
                if self.stale and not was_stale:
                    self._draw(session)
                following = schedule.next_index(next_tick, now)
                if following > next_tick + 1:
                    logger.info("skipped %d missed tick(s)", following - next_tick - 1)
                next_tick = following

            outcome = self._slot.take()
            if outcome is not None:
                if not self._on_outcome(outcome):
                    return
                self._draw(session)

            if self._pending is not None and not self._timed_out and now >= self._pending_expiry:
                self._timed_out = True
                logger.warning(
                    "sample for tick %d still running after %d ms",
                    self._pending,
                    self.config.sample_timeout_ms,
                )
                if not self.stale:
                    self.stale = True
                    self._draw(session)

            wait = min(self._poll_slice, schedule.deadline(next_tick) - self._clock())
            if self._pending is not None and not self._timed_out:
                wait = min(wait, self._pending_expiry - self._clock())
            self._on_key(session, session.read_key(max(0.0, wait)))

    # ── Tick / sample handling ───────────────────────────────────────────

    def _on_tick(self, n: int, now: float) -> None:
        self._tick = n
        self.tick_times.append(now)
        if self._pending is None and self._worker.submit(n):
            self._pending = n
            self._pending_expiry = now + self.config.sample_timeout
            self._timed_out = False
            return
        # Previous call still outstanding: never overlap, this tick is stale
        logger.debug("tick %d skipped: sample for tick %s outstanding", n, self._pending)
        self.stale = True

    def _on_outcome(self, outcome: SampleOutcome) -> bool:
        """Apply a finished sample. Returns False when the loop must shut down."""
        self._pending = None
        self._timed_out = False
        if outcome.sample is not None:
            self.history.push(outcome.sample)
            self.stale = outcome.tick < self._tick
            return True

        error = outcome.error
        if isinstance(error, TransientSampleError):
            logger.warning("tick %d sample failed: %s", outcome.tick, error)
            self.stale = True
            return True

        if isinstance(error, FatalBackendError):
            logger.error("metrics backend failed: %s", error)
            self.fatal_error = str(error)
        else:
            logger.error("sampler crashed on tick %d", outcome.tick, exc_info=error)
            self.fatal_error = f"sampler crashed: {error!r}"
        self.exit_code = 1
        return False

    # ── Input / drawing ──────────────────────────────────────────────────

    def _set_page(self, page: Page) -> None:
        self.page = page
        self.detail_pid = None
        # Listing every process is costly; only do it while the table is shown.
        self._sampler.track_processes = page is Page.PROCESSES

    def _on_process_key(self, key: int) -> bool:
        """Table navigation on the Processes page. Returns True if *key* was used."""
        procs = self.latest.processes if self.latest is not None else ()
        if key in BACK_KEYS:
            if self.detail_pid is None:
                return False
            self.detail_pid = None
        elif self.detail_pid is not None:
            return False
        elif key == curses.KEY_UP:
            self.selected = max(0, self.selected - 1)
        elif key == curses.KEY_DOWN:
            self.selected = max(0, min(self.selected + 1, len(procs) - 1))
        elif key in ENTER_KEYS:
            if not procs:
                return False
            self.selected = min(self.selected, len(procs) - 1)
            self.detail_pid = procs[self.selected].pid
        else:
            return False
        return True

    def _on_key(self, session: TerminalSession, key: int) -> None:
        if key == NO_KEY:
            return
        if key in QUIT_KEYS:
            self.request_quit()
            return
        if key == curses.KEY_RESIZE:
            self._size = session.size()
        elif key in (ord("1"), ord("2"), ord("3")):
            self._set_page(list(Page)[key - ord("1")])
        elif key in (ord("\t"), curses.KEY_RIGHT):
            self._set_page(self.page.next())
        elif key in (curses.KEY_BTAB, curses.KEY_LEFT):
            self._set_page(self.page.previous())
        elif self.page is not Page.PROCESSES or not self._on_process_key(key):
            return
        self._draw(session)

    def _draw(self, session: TerminalSession) -> None:
        rows, cols = self._size
        frame = render(
            self.latest,
            self.history.window(self.history.capacity),
            rows,
            cols,
            config=self.config,
            page=self.page,
            stale=self.stale,
            info=self.info,
            selected=self.selected,
            detail_pid=self.detail_pid,
        )
        session.paint(frame)
