"""Fixed-capacity rolling history of samples for chart rendering."""

from __future__ import annotations

import itertools
from collections import deque
from dataclasses import replace

from sysgauge.models import MetricKind, MetricSample, percent_series


class MetricHistory:
    """Ring buffer of samples, oldest evicted first once full.

    Capacity is fixed at construction (the widest chart the dashboard will
    draw). Resizing the terminal only changes how much of it is rendered.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"history capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._samples: deque[MetricSample] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._samples)

    def push(self, sample: MetricSample) -> None:
        """Append *sample*; at capacity the oldest entry is dropped first.

        Only the newest sample keeps its process list; charts never read it.
        """
        if self._samples and self._samples[-1].processes:
            self._samples[-1] = replace(self._samples[-1], processes=())
        self._samples.append(sample)

    def latest(self) -> MetricSample | None:
        return self._samples[-1] if self._samples else None

    def window(self, n: int) -> tuple[MetricSample, ...]:
        """The most recent *n* samples, oldest first (fewer if history is younger)."""
        if n <= 0:
            return ()
        if n >= len(self._samples):
            return tuple(self._samples)
        return tuple(itertools.islice(self._samples, len(self._samples) - n, None))

    def series(self, kind: MetricKind, n: int) -> list[float]:
        """Percent values of *kind* over the last *n* samples, for sparklines.

        Samples where the metric is unavailable (zero total) contribute 0.
        """
        return percent_series(self.window(n), kind)
