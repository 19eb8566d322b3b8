"""Value types passed between the sampler, history and renderer."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum


class MetricKind(Enum):
    """Resource classes the dashboard can sample."""

    MEMORY = "memory"
    SWAP = "swap"
    CPU = "cpu"
    DISK = "disk"

    @classmethod
    def parse(cls, name: str) -> MetricKind:
        """Look a kind up by its lowercase name."""
        try:
            return cls(name.strip().lower())
        except ValueError:
            valid = ", ".join(k.value for k in cls)
            raise ValueError(f"unknown metric {name!r} (choose from {valid})") from None


ALL_KINDS: tuple[MetricKind, ...] = tuple(MetricKind)


def _clamp_pair(used: int | float, total: int | float) -> tuple[int, int]:
    total_i = max(0, int(total))
    used_i = min(max(0, int(used)), total_i)
    return used_i, total_i


def _clamp_pct(value: float) -> float:
    return min(max(float(value), 0.0), 100.0)


@dataclass(slots=True, frozen=True)
class ProcessInfo:
    """One row of the process table."""

    pid: int
    name: str = "?"
    cpu_percent: float = 0.0
    memory_percent: float = 0.0
    rss: int = 0
    status: str = "?"
    ppid: int | None = None
    num_threads: int = 0
    create_time: float = 0.0
    cwd: str = ""


@dataclass(slots=True, frozen=True)
class MetricSample:
    """Immutable snapshot of the host's resources for one tick.

    Every used/total pair satisfies ``used <= total`` and every CPU percentage
    lies in [0, 100]. Build samples with :meth:`create`, which clamps raw
    provider values instead of trusting them.
    """

    timestamp: float
    memory_used: int = 0
    memory_total: int = 0
    swap_used: int = 0
    swap_total: int = 0
    cpu_usage: tuple[float, ...] = ()
    disk_used: int = 0
    disk_total: int = 0
    processes: tuple[ProcessInfo, ...] = ()

    @classmethod
    def create(
        cls,
        timestamp: float,
        memory: tuple[int | float, int | float] = (0, 0),
        swap: tuple[int | float, int | float] = (0, 0),
        cpu: list[float] | tuple[float, ...] = (),
        disk: tuple[int | float, int | float] = (0, 0),
        processes: Iterable[ProcessInfo] = (),
    ) -> MetricSample:
        """Normalize raw provider readings into a valid sample.

        Processes are ordered busiest first, ties broken by PID.
        """
        memory_used, memory_total = _clamp_pair(*memory)
        swap_used, swap_total = _clamp_pair(*swap)
        disk_used, disk_total = _clamp_pair(*disk)
        return cls(
            timestamp=timestamp,
            memory_used=memory_used,
            memory_total=memory_total,
            swap_used=swap_used,
            swap_total=swap_total,
            cpu_usage=tuple(_clamp_pct(v) for v in cpu),
            disk_used=disk_used,
            disk_total=disk_total,
            processes=tuple(sorted(processes, key=lambda p: (-p.cpu_percent, p.pid))),
        )

    @property
    def cpu_average(self) -> float:
        if not self.cpu_usage:
            return 0.0
        return sum(self.cpu_usage) / len(self.cpu_usage)

    def pair(self, kind: MetricKind) -> tuple[int, int]:
        """Return ``(used, total)`` for a byte-valued kind."""
        if kind is MetricKind.MEMORY:
            return self.memory_used, self.memory_total
        if kind is MetricKind.SWAP:
            return self.swap_used, self.swap_total
        if kind is MetricKind.DISK:
            return self.disk_used, self.disk_total
        raise ValueError(f"{kind.value} is not a used/total metric")

    def ratio(self, kind: MetricKind) -> float | None:
        """Fraction in [0, 1] for *kind*, or None when it cannot be computed."""
        if kind is MetricKind.CPU:
            if not self.cpu_usage:
                return None
            return self.cpu_average / 100.0
        used, total = self.pair(kind)
        if total == 0:
            return None
        return min(max(used / total, 0.0), 1.0)

    def process(self, pid: int) -> ProcessInfo | None:
        for proc in self.processes:
            if proc.pid == pid:
                return proc
        return None


def percent_series(samples: Iterable[MetricSample], kind: MetricKind) -> list[float]:
    """Percent values of *kind* across *samples*; unavailable readings count as 0."""
    values: list[float] = []
    for s in samples:
        ratio = s.ratio(kind)
        values.append(0.0 if ratio is None else ratio * 100.0)
    return values


@dataclass(slots=True, frozen=True)
class SystemInfo:
    """Static host description shown on the System page."""

    os_name: str = "Unknown"
    os_version: str = "Unknown"
    kernel_version: str = "Unknown"
    hostname: str = "Unknown"
    cpu_count: int = 0
    boot_time: float = 0.0
