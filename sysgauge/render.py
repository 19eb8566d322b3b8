"""Frame rendering for the dashboard.

:func:`render` is a pure function: it turns the latest sample, the history
window, the terminal size and the current view into a :class:`Frame`, an
immutable list of positioned text spans with colour roles. Nothing here
touches curses; :mod:`sysgauge.terminal` paints frames onto the screen.
Layout is recomputed from the dimensions on every call.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from sysgauge.config import Config
from sysgauge.models import MetricKind, MetricSample, ProcessInfo, SystemInfo, percent_series

# ── Constants ──────────────────────────────────────────────────────────────

SPARK = " ▁▂▃▄▅▆▇█"
BAR_FILL = "█"
BAR_EMPTY = "░"

MIN_COLS = 40
MIN_ROWS = 10
TWO_COL_MIN = 82
GAUGE_H = 5
GAUGE_MIN_H = 4

# Colour roles (curses colour-pair IDs)
C_NORMAL = 1
C_WARNING = 2
C_CRITICAL = 3
C_TITLE = 4
C_DIM = 5
C_BLUE = 6

LABELS: dict[MetricKind, str] = {
    MetricKind.MEMORY: "Memory",
    MetricKind.SWAP: "Swap",
    MetricKind.CPU: "CPU",
    MetricKind.DISK: "Disk",
}
SHORT_LABELS: dict[MetricKind, str] = {
    MetricKind.MEMORY: "Mem",
    MetricKind.SWAP: "Swap",
    MetricKind.CPU: "Total",
    MetricKind.DISK: "Disk",
}


class Page(Enum):
    """Dashboard views, in tab order."""

    SYSTEM = "System"
    METRICS = "Metrics"
    PROCESSES = "Processes"

    def next(self) -> Page:
        pages = list(Page)
        return pages[(pages.index(self) + 1) % len(pages)]

    def previous(self) -> Page:
        pages = list(Page)
        return pages[(pages.index(self) - 1) % len(pages)]


@dataclass(slots=True, frozen=True)
class Span:
    """A run of text at a screen position."""

    y: int
    x: int
    text: str
    role: int = C_NORMAL
    bold: bool = False
    reverse: bool = False


@dataclass(slots=True, frozen=True)
class Rect:
    y: int
    x: int
    h: int
    w: int


@dataclass(slots=True, frozen=True)
class Frame:
    """Everything needed to draw one screen."""

    rows: int
    cols: int
    spans: tuple[Span, ...]

    def lines(self) -> list[str]:
        """Plain-text rendering of the frame, one string per row."""
        grid = [[" "] * self.cols for _ in range(self.rows)]
        for span in self.spans:
            for i, ch in enumerate(span.text):
                grid[span.y][span.x + i] = ch
        return ["".join(row) for row in grid]

    def text(self) -> str:
        return "\n".join(self.lines())


# ── Formatting helpers ─────────────────────────────────────────────────────


def fmt_bytes(n: int | float) -> str:
    """Human-readable byte count (binary prefixes)."""
    v = float(n)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if abs(v) < 1024:
            return f"{v:.1f} {unit}"
        v /= 1024
    return f"{v:.1f} TiB"


def fmt_uptime(seconds: float) -> str:
    seconds = max(0, int(seconds))
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    if days > 0:
        return f"{days} days, {hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def gauge_label(used: int, total: int) -> str:
    """``"50.00% (512.00 MiB / 1024.00 MiB)"`` style label for a byte gauge."""
    ratio = gauge_ratio(used, total)
    if ratio is None:
        return "unavailable"
    mib = 1024 * 1024
    return f"{ratio * 100:.2f}% ({used / mib:.2f} MiB / {total / mib:.2f} MiB)"


def gauge_ratio(used: int | float, total: int | float) -> float | None:
    """``used / total`` clamped to [0, 1]; None when total is zero."""
    if total <= 0:
        return None
    return min(max(used / total, 0.0), 1.0)


def severity_color(value: float, warn: float, crit: float) -> int:
    if value >= crit:
        return C_CRITICAL
    if value >= warn:
        return C_WARNING
    return C_NORMAL


# ── Canvas ─────────────────────────────────────────────────────────────────


class _Canvas:
    """Collects spans, clipping anything that falls off the screen."""

    def __init__(self, rows: int, cols: int) -> None:
        self.rows = rows
        self.cols = cols
        self._spans: list[Span] = []

    def put(
        self,
        y: int,
        x: int,
        text: str,
        role: int = C_NORMAL,
        bold: bool = False,
        reverse: bool = False,
    ) -> None:
        if not text or y < 0 or y >= self.rows or x < 0 or x >= self.cols:
            return
        text = text[: self.cols - x]
        self._spans.append(Span(y, x, text, role, bold, reverse))

    def box(self, rect: Rect, title: str = "") -> Rect | None:
        """Draw a bordered box and return the inner area."""
        h = min(rect.h, self.rows - rect.y)
        w = min(rect.w, self.cols - rect.x)
        if h < 3 or w < 4:
            return None
        y, x = rect.y, rect.x
        self.put(y, x, "┌" + "─" * (w - 2) + "┐", C_DIM)
        for row in range(y + 1, y + h - 1):
            self.put(row, x, "│", C_DIM)
            self.put(row, x + w - 1, "│", C_DIM)
        self.put(y + h - 1, x, "└" + "─" * (w - 2) + "┘", C_DIM)
        if title and len(title) + 4 < w:
            self.put(y, x + 2, f" {title} ", C_TITLE, bold=True)
        return Rect(y + 1, x + 1, h - 2, w - 2)

    def bar(
        self,
        y: int,
        x: int,
        width: int,
        pct: float,
        label: str = "",
        color: int = C_NORMAL,
        suffix: str | None = None,
    ) -> None:
        """Render ``label ████░░░░ suffix`` on one line."""
        cx = x
        if label:
            self.put(y, cx, f"{label:>6s} ", C_DIM)
            cx += 7
        if suffix is None:
            suffix = f" {pct:6.2f}%"
        bar_w = width - (cx - x) - len(suffix)
        if bar_w < 3:
            return
        filled = int(bar_w * min(max(pct, 0.0), 100.0) / 100.0)
        self.put(y, cx, BAR_FILL * filled, color, bold=True)
        self.put(y, cx + filled, BAR_EMPTY * (bar_w - filled), C_DIM)
        self.put(y, cx + bar_w, suffix, color, bold=True)

    def sparkline(
        self,
        y: int,
        x: int,
        width: int,
        values: Sequence[float],
        max_val: float = 100.0,
        color: int = C_BLUE,
    ) -> None:
        """Render a sparkline from the most recent *width* values."""
        w = min(width, len(values))
        if w < 1:
            return
        chars: list[str] = []
        for v in values[-w:]:
            idx = int(min(max(v, 0.0) / max_val, 1.0) * (len(SPARK) - 1))
            chars.append(SPARK[idx])
        self.put(y, x, "".join(chars), color)

    def frame(self) -> Frame:
        return Frame(self.rows, self.cols, tuple(self._spans))


# ── Layout ─────────────────────────────────────────────────────────────────


def compute_layout(
    rows: int, cols: int, kinds: Sequence[MetricKind]
) -> dict[MetricKind, Rect]:
    """Panel rectangles for the Metrics page at the given terminal size."""
    body_y = 1
    body_h = rows - body_y
    byte_kinds = [
        k for k in (MetricKind.MEMORY, MetricKind.SWAP, MetricKind.DISK) if k in kinds
    ]
    has_cpu = MetricKind.CPU in kinds
    panels: dict[MetricKind, Rect] = {}

    if cols >= TWO_COL_MIN and has_cpu and byte_kinds:
        # Left: byte gauges stacked; right: CPU full height
        col_w = cols // 2
        gauge_h = max(GAUGE_MIN_H, min(GAUGE_H, body_h // len(byte_kinds)))
        y = body_y
        for kind in byte_kinds:
            if y + gauge_h > rows:
                break
            panels[kind] = Rect(y, 0, gauge_h, col_w)
            y += gauge_h
        panels[MetricKind.CPU] = Rect(body_y, col_w, body_h, cols - col_w)
        return panels

    # Single column: gauges first, CPU takes what is left
    cpu_min = 4 if has_cpu else 0
    y = body_y
    for kind in byte_kinds:
        gauge_h = GAUGE_H
        if y + gauge_h > rows - cpu_min:
            gauge_h = GAUGE_MIN_H
        if y + gauge_h > rows - cpu_min:
            break
        panels[kind] = Rect(y, 0, gauge_h, cols)
        y += gauge_h
    if has_cpu and rows - y >= 3:
        panels[MetricKind.CPU] = Rect(y, 0, rows - y, cols)
    return panels


# ── Panels ─────────────────────────────────────────────────────────────────


def _draw_header(
    canvas: _Canvas, sample: MetricSample | None, stale: bool, page: Page
) -> None:
    w = canvas.cols
    canvas.put(0, 0, " " * w, C_TITLE, reverse=True)
    canvas.put(0, 1, "sysgauge", C_TITLE, bold=True, reverse=True)
    x = 11
    for i, p in enumerate(Page, start=1):
        tab = f" {i} {p.value} "
        canvas.put(0, x, tab, C_TITLE, bold=p is page, reverse=p is not page)
        x += len(tab) + 1
    right = "q: quit"
    if sample is not None:
        right = time.strftime("%H:%M:%S", time.localtime(sample.timestamp)) + "  " + right
    if stale:
        right = "STALE  " + right
    rx = max(x, w - len(right) - 1)
    canvas.put(0, rx, right, C_TITLE, reverse=True)
    if stale:
        canvas.put(0, rx, "STALE", C_WARNING, bold=True, reverse=True)


def _draw_gauge_panel(
    canvas: _Canvas,
    rect: Rect,
    kind: MetricKind,
    sample: MetricSample,
    window: Sequence[MetricSample],
    config: Config,
) -> None:
    inner = canvas.box(rect, LABELS[kind])
    if inner is None:
        return
    used, total = sample.pair(kind)
    ratio = gauge_ratio(used, total)
    if ratio is None:
        canvas.put(inner.y, inner.x, f"{SHORT_LABELS[kind]:>6s} ", C_DIM)
        canvas.put(inner.y, inner.x + 7, "unavailable", C_DIM, bold=True)
        return
    pct = ratio * 100.0
    thresh = config.threshold(kind)
    color = severity_color(pct, thresh.warning, thresh.critical)
    canvas.bar(inner.y, inner.x, inner.w, pct, SHORT_LABELS[kind], color)
    if inner.h >= 2:
        detail = gauge_label(used, total)[: max(0, inner.w - 7)]
        canvas.put(inner.y + 1, inner.x + 7, detail, C_DIM)
    if inner.h >= 3:
        canvas.sparkline(
            inner.y + 2, inner.x + 7, inner.w - 7, percent_series(window, kind)
        )


def _draw_cpu_panel(
    canvas: _Canvas,
    rect: Rect,
    sample: MetricSample,
    window: Sequence[MetricSample],
    config: Config,
) -> None:
    inner = canvas.box(rect, f"CPU ({len(sample.cpu_usage)} cores)")
    if inner is None:
        return
    if not sample.cpu_usage:
        canvas.put(inner.y, inner.x, f"{'Total':>6s} ", C_DIM)
        canvas.put(inner.y, inner.x + 7, "unavailable", C_DIM, bold=True)
        return
    thresh = config.threshold(MetricKind.CPU)
    total = sample.cpu_average
    canvas.bar(
        inner.y, inner.x, inner.w, total, "Total",
        severity_color(total, thresh.warning, thresh.critical),
    )

    # Per-core bars, leaving the bottom row for the sparkline
    spark_row = inner.y + inner.h - 1 if inner.h >= 3 else None
    last_row = (spark_row if spark_row is not None else inner.y + inner.h) - 1
    cores = sample.cpu_usage
    room = last_row - inner.y
    shown = len(cores) if len(cores) <= room else max(0, room - 1)
    row = inner.y + 1
    for i in range(shown):
        pct = cores[i]
        canvas.bar(
            row, inner.x, inner.w, pct, f"#{i}",
            severity_color(pct, thresh.warning, thresh.critical),
        )
        row += 1
    if shown < len(cores) and row <= last_row:
        canvas.put(row, inner.x + 1, f"... +{len(cores) - shown} cores", C_DIM)

    if spark_row is not None:
        canvas.sparkline(
            spark_row, inner.x + 7, inner.w - 7, percent_series(window, MetricKind.CPU)
        )


def _draw_metrics_page(
    canvas: _Canvas,
    sample: MetricSample | None,
    window: Sequence[MetricSample],
    config: Config,
) -> None:
    if sample is None:
        msg = "Waiting for first sample..."
        canvas.put(canvas.rows // 2, max(0, (canvas.cols - len(msg)) // 2), msg, C_DIM)
        return
    for kind, rect in compute_layout(canvas.rows, canvas.cols, config.metrics).items():
        if kind is MetricKind.CPU:
            _draw_cpu_panel(canvas, rect, sample, window, config)
        else:
            _draw_gauge_panel(canvas, rect, kind, sample, window, config)


def _draw_fields(
    canvas: _Canvas, inner: Rect, rows: Sequence[tuple[str, str]], top: int = 0
) -> int:
    """Draw ``key  value`` rows from *top*; returns the next free row offset."""
    i = top
    for key, value in rows:
        if i >= inner.h:
            break
        canvas.put(inner.y + i, inner.x + 1, f"{key:<10s}", C_DIM)
        canvas.put(inner.y + i, inner.x + 12, value[: max(0, inner.w - 13)], C_NORMAL, bold=True)
        i += 1
    return i


def _draw_system_page(
    canvas: _Canvas,
    sample: MetricSample | None,
    info: SystemInfo,
    config: Config,
) -> None:
    inner = canvas.box(Rect(1, 0, canvas.rows - 1, canvas.cols), "System")
    if inner is None:
        return
    uptime = "n/a"
    if sample is not None and info.boot_time > 0:
        uptime = fmt_uptime(sample.timestamp - info.boot_time)
    rows = [
        ("Hostname", info.hostname),
        ("OS", info.os_name),
        ("Version", info.os_version),
        ("Kernel", info.kernel_version),
        ("CPUs", str(info.cpu_count)),
        ("Uptime", uptime),
        ("Refresh", f"{config.interval_ms} ms"),
        ("Metrics", ", ".join(k.value for k in config.metrics)),
    ]
    if sample is not None and sample.memory_total > 0:
        rows.append(("Memory", fmt_bytes(sample.memory_total)))
    _draw_fields(canvas, inner, rows)


def process_row(proc: ProcessInfo) -> str:
    return (
        f" {proc.pid:>7d}  {proc.cpu_percent:>5.1f}%  {proc.memory_percent:>5.1f}%"
        f"  {fmt_bytes(proc.rss):>10s}  {proc.status:<9.9s} {proc.name}"
    )


PROCESS_HEADER = f" {'PID':>7s}  {'CPU%':>6s}  {'MEM%':>6s}  {'MEM':>10s}  {'STATUS':<9s} NAME"


def _draw_processes_page(
    canvas: _Canvas,
    sample: MetricSample | None,
    config: Config,
    selected: int,
) -> None:
    procs = sample.processes if sample is not None else ()
    inner = canvas.box(Rect(1, 0, canvas.rows - 1, canvas.cols), f"Processes ({len(procs)})")
    if inner is None:
        return
    if not procs:
        canvas.put(inner.y, inner.x + 1, "Collecting process list...", C_DIM)
        return
    canvas.put(inner.y, inner.x, PROCESS_HEADER[: inner.w], C_DIM, bold=True)

    visible = inner.h - 1
    if visible < 1:
        return
    selected = min(max(selected, 0), len(procs) - 1)
    top = max(0, selected - visible + 1)
    thresh = config.threshold(MetricKind.CPU)
    for i, proc in enumerate(procs[top : top + visible]):
        row = process_row(proc)[: inner.w]
        y = inner.y + 1 + i
        if top + i == selected:
            canvas.put(y, inner.x, row.ljust(inner.w), C_TITLE, bold=True, reverse=True)
        else:
            color = severity_color(proc.cpu_percent, thresh.warning, thresh.critical)
            canvas.put(y, inner.x, row, color)


def _draw_process_detail(
    canvas: _Canvas,
    sample: MetricSample | None,
    config: Config,
    pid: int,
) -> None:
    inner = canvas.box(Rect(1, 0, canvas.rows - 1, canvas.cols), f"Process {pid}")
    if inner is None:
        return
    proc = sample.process(pid) if sample is not None else None
    if proc is None:
        canvas.put(inner.y, inner.x + 1, f"Process {pid} is no longer running", C_WARNING, bold=True)
        canvas.put(inner.y + 1, inner.x + 1, "Backspace: back to list", C_DIM)
        return

    started = running = "n/a"
    if proc.create_time > 0:
        started = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(proc.create_time))
        running = fmt_uptime(sample.timestamp - proc.create_time)
    rows = [
        ("PID", str(proc.pid)),
        ("Name", proc.name),
        ("Status", proc.status),
        ("Parent PID", "n/a" if proc.ppid is None else str(proc.ppid)),
        ("Threads", str(proc.num_threads)),
        ("Started", started),
        ("Running", running),
        ("CWD", proc.cwd or "n/a"),
    ]
    i = _draw_fields(canvas, inner, rows)

    cpu_t = config.threshold(MetricKind.CPU)
    cpu = min(proc.cpu_percent, 100.0)
    if i + 1 < inner.h:
        canvas.bar(
            inner.y + i + 1, inner.x, inner.w, cpu, "CPU",
            severity_color(cpu, cpu_t.warning, cpu_t.critical),
        )
    if i + 2 < inner.h:
        mem_t = config.threshold(MetricKind.MEMORY)
        ratio = gauge_ratio(proc.rss, sample.memory_total)
        pct = 0.0 if ratio is None else ratio * 100.0
        canvas.bar(
            inner.y + i + 2, inner.x, inner.w, pct, "Mem",
            severity_color(pct, mem_t.warning, mem_t.critical),
        )
        if i + 3 < inner.h:
            label = gauge_label(proc.rss, sample.memory_total)[: max(0, inner.w - 7)]
            canvas.put(inner.y + i + 3, inner.x + 7, label, C_DIM)


# ── Entry point ────────────────────────────────────────────────────────────


def render(
    sample: MetricSample | None,
    window: Sequence[MetricSample],
    rows: int,
    cols: int,
    *,
    config: Config,
    page: Page = Page.METRICS,
    stale: bool = False,
    info: SystemInfo | None = None,
    selected: int = 0,
    detail_pid: int | None = None,
) -> Frame:
    """Build the frame for the current state. Same inputs, same frame.

    On the Processes page *selected* is the highlighted row of the table and
    *detail_pid*, when set, replaces the table with that process's details.
    """
    canvas = _Canvas(max(0, rows), max(0, cols))
    if rows < MIN_ROWS or cols < MIN_COLS:
        canvas.put(0, 0, f"Terminal too small (need {MIN_COLS}x{MIN_ROWS}+)")
        return canvas.frame()

    _draw_header(canvas, sample, stale, page)
    if page is Page.SYSTEM:
        _draw_system_page(canvas, sample, info or SystemInfo(), config)
    elif page is Page.PROCESSES:
        if detail_pid is not None:
            _draw_process_detail(canvas, sample, config, detail_pid)
        else:
            _draw_processes_page(canvas, sample, config, selected)
    else:
        _draw_metrics_page(canvas, sample, window, config)
    return canvas.frame()
