"""Host metric providers.

A provider is a synchronous capability with one method per resource class.
Each method may fail independently; failures are translated into the
sysgauge error taxonomy here so the sampler never sees raw ``OSError`` or
psutil exceptions.

Two implementations exist and :func:`select_provider` picks one at startup:

* :class:`ProcfsProvider` reads per-core CPU jiffies from ``/proc/stat``
  directly (no sleeps, delta between calls) and uses psutil for the rest.
* :class:`PsutilProvider` uses psutil for everything.
"""

from __future__ import annotations

import logging
import os
import platform
import socket
import sys
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Protocol

import psutil

from sysgauge.errors import (
    DeviceUnavailable,
    FatalBackendError,
    PermissionDenied,
    TransientIOError,
    TransientSampleError,
)
from sysgauge.models import ALL_KINDS, MetricKind, ProcessInfo, SystemInfo

logger = logging.getLogger(__name__)

PROC_STAT = "/proc/stat"
PROCESS_ATTRS = [
    "pid",
    "name",
    "cpu_percent",
    "memory_percent",
    "memory_info",
    "status",
    "ppid",
    "num_threads",
    "create_time",
    "cwd",
]


class MetricsProvider(Protocol):
    """What the sampler needs from the platform."""

    def memory(self) -> tuple[int, int]: ...

    def swap(self) -> tuple[int, int]: ...

    def cpu(self) -> list[float]: ...

    def disk(self) -> tuple[int, int]: ...

    def processes(self) -> list[ProcessInfo]: ...

    def system_info(self) -> SystemInfo: ...


@contextmanager
def translate_errors(what: str) -> Iterator[None]:
    """Map OS and psutil failures onto the sampling error classes."""
    try:
        yield
    except psutil.AccessDenied as e:
        raise PermissionDenied(f"{what}: access denied") from e
    except PermissionError as e:
        raise PermissionDenied(f"{what}: {e}") from e
    except (FileNotFoundError, psutil.NoSuchProcess) as e:
        raise DeviceUnavailable(f"{what}: {e}") from e
    except (NotImplementedError, AttributeError) as e:
        raise FatalBackendError(f"{what} is not supported on this platform") from e
    except OSError as e:
        raise TransientIOError(f"{what}: {e}") from e


def collect_system_info() -> SystemInfo:
    """Describe the host once; every field falls back to a placeholder."""
    try:
        boot_time = psutil.boot_time()
    except (OSError, psutil.Error):
        boot_time = 0.0
    return SystemInfo(
        os_name=platform.system() or "Unknown",
        os_version=platform.version() or "Unknown",
        kernel_version=platform.release() or "Unknown",
        hostname=socket.gethostname() or "Unknown",
        cpu_count=psutil.cpu_count() or os.cpu_count() or 0,
        boot_time=boot_time,
    )


class PsutilProvider:
    """Portable provider backed entirely by psutil."""

    def __init__(self, disk_path: str = "/") -> None:
        self._disk_path = disk_path
        # First percpu call returns 0.0 for every core; prime it.
        with translate_errors("cpu"):
            psutil.cpu_percent(interval=None, percpu=True)

    def memory(self) -> tuple[int, int]:
        with translate_errors("memory"):
            ram = psutil.virtual_memory()
        return ram.used, ram.total

    def swap(self) -> tuple[int, int]:
        with translate_errors("swap"):
            sw = psutil.swap_memory()
        return sw.used, sw.total

    def cpu(self) -> list[float]:
        with translate_errors("cpu"):
            return list(psutil.cpu_percent(interval=None, percpu=True))

    def disk(self) -> tuple[int, int]:
        with translate_errors(f"disk {self._disk_path}"):
            du = psutil.disk_usage(self._disk_path)
        return du.used, du.total

    def processes(self) -> list[ProcessInfo]:
        """Every visible process. Fields the OS hides come back as placeholders.

        psutil caches the Process objects between calls, so ``cpu_percent`` is
        the usage since the previous listing (0.0 the first time a PID is seen).
        """
        procs: list[ProcessInfo] = []
        with translate_errors("processes"):
            for proc in psutil.process_iter(PROCESS_ATTRS, ad_value=None):
                try:
                    info = proc.info
                    mem_info = info.get("memory_info")
                    procs.append(
                        ProcessInfo(
                            pid=info["pid"],
                            name=info.get("name") or "?",
                            cpu_percent=info.get("cpu_percent") or 0.0,
                            memory_percent=info.get("memory_percent") or 0.0,
                            rss=mem_info.rss if mem_info else 0,
                            status=info.get("status") or "?",
                            ppid=info.get("ppid"),
                            num_threads=info.get("num_threads") or 0,
                            create_time=info.get("create_time") or 0.0,
                            cwd=info.get("cwd") or "",
                        )
                    )
                except (psutil.NoSuchProcess, psutil.AccessDenied, AttributeError):
                    continue
        return procs

    def system_info(self) -> SystemInfo:
        return collect_system_info()


# ── /proc/stat per-core CPU ────────────────────────────────────────────────


def read_core_times(path: str = PROC_STAT) -> list[list[int]]:
    """Read per-core jiffies from /proc/stat: one [user,nice,system,idle,iowait,...] per core."""
    cores: list[list[int]] = []
    with open(path) as f:
        for line in f:
            if not line.startswith("cpu"):
                break
            label, *fields = line.split()
            if label == "cpu":
                continue  # aggregate line
            cores.append([int(x) for x in fields])
    return cores


def calc_core_percent(prev: list[int], curr: list[int]) -> float:
    """Busy percentage of one core between two /proc/stat samples."""
    deltas = [c - p for c, p in zip(curr, prev)]
    total = sum(deltas)
    if total <= 0:
        return 0.0
    idle = deltas[3] + (deltas[4] if len(deltas) > 4 else 0)  # idle + iowait
    return 100.0 * (1.0 - idle / total)


class ProcfsProvider(PsutilProvider):
    """Linux provider computing per-core CPU from /proc/stat deltas.

    CPU percentage is a delta between calls; the first call reports 0% for
    every core.
    """

    def __init__(self, disk_path: str = "/", stat_path: str = PROC_STAT) -> None:
        self._disk_path = disk_path
        self._stat_path = stat_path
        self._prev: list[list[int]] | None = None
        with translate_errors("cpu"):
            self._prev = read_core_times(self._stat_path)

    def cpu(self) -> list[float]:
        with translate_errors("cpu"):
            curr = read_core_times(self._stat_path)
        prev = self._prev
        self._prev = curr
        if not curr:
            raise DeviceUnavailable("cpu: no per-core lines in /proc/stat")
        if prev is None or len(prev) != len(curr):
            # Core hot-plug: restart the delta
            return [0.0] * len(curr)
        return [calc_core_percent(p, c) for p, c in zip(prev, curr)]


def select_provider(
    disk_path: str = "/", kinds: Iterable[MetricKind] = ALL_KINDS
) -> MetricsProvider:
    """Pick the provider for this host and read each enabled kind once.

    A kind that cannot be read at startup (a missing ``disk_path``, a denied
    counter) would fail every tick, so it is reported here instead.

    Raises:
        FatalBackendError: an enabled metric cannot be read on this host.
    """
    try:
        if sys.platform.startswith("linux") and os.access(PROC_STAT, os.R_OK):
            provider: PsutilProvider = ProcfsProvider(disk_path)
        else:
            provider = PsutilProvider(disk_path)
        for kind in kinds:
            getattr(provider, kind.value)()
    except TransientSampleError as e:
        raise FatalBackendError(f"no metrics backend available: {e}") from e
    logger.debug("using %s", type(provider).__name__)
    return provider
