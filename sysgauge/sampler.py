"""Metric sampling and the background hand-off to the event loop.

:class:`MetricSampler` turns one pass over the provider into a
:class:`~sysgauge.models.MetricSample`. :class:`SamplingWorker` runs it on a
daemon thread so a slow or hung provider call never blocks the terminal, and
publishes each outcome into a :class:`LatestSlot` that keeps only the newest
unread value.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from sysgauge.models import ALL_KINDS, MetricKind, MetricSample
from sysgauge.provider import MetricsProvider

logger = logging.getLogger(__name__)


class MetricSampler:
    """Query the enabled metric kinds and build a normalized sample.

    Any failing provider call fails the whole sample; nothing partial is
    returned. Timestamps are strictly increasing even if the clock stalls or
    steps backwards.

    The process list is only collected while :attr:`track_processes` is set;
    the event loop turns it on for the Processes page.
    """

    def __init__(
        self,
        provider: MetricsProvider,
        kinds: Iterable[MetricKind] = ALL_KINDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._provider = provider
        self._kinds = frozenset(kinds)
        self._clock = clock
        self._last_timestamp: float | None = None
        self.track_processes = False

    @property
    def kinds(self) -> frozenset[MetricKind]:
        return self._kinds

    def _next_timestamp(self) -> float:
        ts = self._clock()
        if self._last_timestamp is not None and ts <= self._last_timestamp:
            ts = math.nextafter(self._last_timestamp, math.inf)
        return ts

    def sample(self) -> MetricSample:
        """Take one sample.

        Raises:
            TransientSampleError: a provider call failed for this tick only.
            FatalBackendError: a metric class can never be read here.
        """
        ts = self._next_timestamp()
        kinds = self._kinds
        memory = self._provider.memory() if MetricKind.MEMORY in kinds else (0, 0)
        swap = self._provider.swap() if MetricKind.SWAP in kinds else (0, 0)
        cpu = self._provider.cpu() if MetricKind.CPU in kinds else []
        disk = self._provider.disk() if MetricKind.DISK in kinds else (0, 0)
        procs = self._provider.processes() if self.track_processes else []
        self._last_timestamp = ts
        return MetricSample.create(
            ts, memory=memory, swap=swap, cpu=cpu, disk=disk, processes=procs
        )


@dataclass(slots=True, frozen=True)
class SampleOutcome:
    """Result of the sampling call started for one tick."""

    tick: int
    sample: MetricSample | None = None
    error: Exception | None = None
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.sample is not None


class LatestSlot:
    """Single-slot hand-off with overwrite semantics.

    ``put`` never blocks: an unread older value is replaced (and counted in
    :attr:`overwritten`) rather than queued.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._value: SampleOutcome | None = None
        self.overwritten = 0

    def put(self, value: SampleOutcome) -> None:
        with self._cond:
            if self._value is not None:
                self.overwritten += 1
            self._value = value
            self._cond.notify_all()

    def take(self, timeout: float | None = 0.0) -> SampleOutcome | None:
        """Remove and return the value, waiting up to *timeout* seconds for one."""
        with self._cond:
            if self._value is None and timeout != 0.0:
                self._cond.wait_for(lambda: self._value is not None, timeout=timeout)
            value, self._value = self._value, None
            return value


class SamplingWorker:
    """Runs :meth:`MetricSampler.sample` on a daemon thread, one call at a time.

    The worker never starts a new call while one is outstanding, so two samples
    never overlap. A provider call that hangs keeps the worker busy; the loop
    sees that through :attr:`busy` and marks its ticks stale instead of waiting.
    """

    def __init__(self, sampler: MetricSampler, slot: LatestSlot) -> None:
        self._sampler = sampler
        self._slot = slot
        self._lock = threading.Lock()
        self._wake = threading.Event()
        self._stop_event = threading.Event()
        self._pending_tick: int | None = None
        self._busy = False
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._busy

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="SamplingWorker",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 1.0) -> None:
        """Stop the thread. A provider call stuck past *timeout* is abandoned."""
        self._stop_event.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("sampling thread still busy after %.1fs; abandoning it", timeout or 0)
            self._thread = None

    def submit(self, tick: int) -> bool:
        """Request a sample for *tick*. Returns False if a call is still outstanding."""
        with self._lock:
            if self._busy:
                return False
            self._busy = True
            self._pending_tick = tick
        self._wake.set()
        return True

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self._wake.wait()
            self._wake.clear()
            if self._stop_event.is_set():
                break
            with self._lock:
                tick = self._pending_tick
            if tick is None:
                continue
            started = time.monotonic()
            sample: MetricSample | None = None
            error: Exception | None = None
            try:
                sample = self._sampler.sample()
            except Exception as e:
                error = e
            outcome = SampleOutcome(
                tick=tick,
                sample=sample,
                error=error,
                duration=time.monotonic() - started,
            )
            # Publish and go idle atomically: whoever has taken the outcome
            # can submit the next tick.
            with self._lock:
                self._slot.put(outcome)
                self._pending_tick = None
                self._busy = False
