"""Configuration loading for sysgauge.

Settings come from a TOML file layered over :data:`DEFAULT_CONFIG`. The file
is ``--config PATH`` when given, otherwise ``~/.config/sysgauge/config.toml``
if it exists. :func:`build_config` turns the merged settings, plus any
command-line overrides, into a frozen :class:`Config`.
"""

from __future__ import annotations

import sys
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from sysgauge.errors import ConfigError
from sysgauge.models import ALL_KINDS, MetricKind

DEFAULT_CONFIG: dict[str, Any] = {
    "interval_ms": 1000,
    "history_size": 240,
    "sample_timeout_ms": 0,  # 0 = same as interval
    "disk_path": "/",
    "metrics": [k.value for k in ALL_KINDS],
    "thresholds": {
        "memory": {"warning": 85.0, "critical": 95.0},
        "swap": {"warning": 50.0, "critical": 80.0},
        "cpu": {"warning": 80.0, "critical": 95.0},
        "disk": {"warning": 85.0, "critical": 95.0},
    },
}

_DEFAULT_PATH = Path.home() / ".config" / "sysgauge" / "config.toml"


@dataclass(frozen=True)
class Threshold:
    warning: float
    critical: float


def _default_thresholds() -> Mapping[MetricKind, Threshold]:
    return MappingProxyType(
        {
            MetricKind(k): Threshold(float(v["warning"]), float(v["critical"]))
            for k, v in DEFAULT_CONFIG["thresholds"].items()
        }
    )


@dataclass(frozen=True)
class Config:
    """Validated settings; never changes once the event loop starts."""

    interval_ms: int = 1000
    metrics: tuple[MetricKind, ...] = ALL_KINDS
    history_size: int = 240
    sample_timeout_ms: int = 1000
    disk_path: str = "/"
    thresholds: Mapping[MetricKind, Threshold] = field(default_factory=_default_thresholds)

    @property
    def interval(self) -> float:
        """Tick period in seconds."""
        return self.interval_ms / 1000.0

    @property
    def sample_timeout(self) -> float:
        return self.sample_timeout_ms / 1000.0

    def threshold(self, kind: MetricKind) -> Threshold:
        return self.thresholds.get(kind, Threshold(80.0, 95.0))


def merge_settings(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Overlay user settings on *base*, recursing into tables.

    A partial ``[thresholds.cpu]`` table therefore keeps the default for any
    level it leaves out. Neither argument is modified.
    """
    merged = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_settings(current, value)
        else:
            merged[key] = value
    return merged


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"invalid TOML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e.strerror or e}") from e


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Return the defaults with the user's TOML file merged on top.

    An explicit *path* must exist and parse. The default location is optional,
    and a broken file there is skipped with a warning on stderr.

    Raises:
        ConfigError: the explicit file is missing, unreadable or not TOML.
    """
    if path is not None:
        return merge_settings(DEFAULT_CONFIG, _read_toml(path))
    if not _DEFAULT_PATH.is_file():
        return merge_settings(DEFAULT_CONFIG, {})
    try:
        return merge_settings(DEFAULT_CONFIG, _read_toml(_DEFAULT_PATH))
    except ConfigError as e:
        print(f"sysgauge: warning: ignoring {e}", file=sys.stderr)
        return merge_settings(DEFAULT_CONFIG, {})


def _positive_int(raw: dict[str, Any], key: str) -> int:
    value = raw.get(key, DEFAULT_CONFIG[key])
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{key} must be a positive integer, got {value!r}")
    return value


def build_config(
    raw: dict[str, Any],
    interval_ms: int | None = None,
    metrics: list[str] | None = None,
) -> Config:
    """Validate a merged config dict (plus CLI overrides) into a :class:`Config`.

    Raises:
        ConfigError: a value is missing, of the wrong type or out of range.
    """
    if interval_ms is not None:
        raw = {**raw, "interval_ms": interval_ms}
    if metrics is not None:
        raw = {**raw, "metrics": metrics}

    interval = _positive_int(raw, "interval_ms")
    history_size = _positive_int(raw, "history_size")

    timeout = raw.get("sample_timeout_ms", 0)
    if isinstance(timeout, bool) or not isinstance(timeout, int) or timeout < 0:
        raise ConfigError(f"sample_timeout_ms must be a non-negative integer, got {timeout!r}")
    # A sample may never hold a tick longer than the tick itself.
    timeout = interval if timeout == 0 else min(timeout, interval)

    names = raw.get("metrics", DEFAULT_CONFIG["metrics"])
    if not isinstance(names, list) or not names:
        raise ConfigError("metrics must be a non-empty list")
    try:
        kinds = tuple(dict.fromkeys(MetricKind.parse(str(n)) for n in names))
    except ValueError as e:
        raise ConfigError(str(e)) from e

    tables = raw.get("thresholds", {})
    if not isinstance(tables, dict):
        raise ConfigError(f"thresholds must be a table, got {tables!r}")
    thresholds: dict[MetricKind, Threshold] = {}
    for name, levels in tables.items():
        if not isinstance(levels, dict):
            raise ConfigError(f"threshold for {name!r} must be a table, got {levels!r}")
        try:
            kind = MetricKind.parse(name)
            warn = float(levels["warning"])
            crit = float(levels["critical"])
        except (ValueError, KeyError, TypeError) as e:
            raise ConfigError(f"invalid threshold for {name!r}: {e}") from e
        if not 0.0 <= warn <= crit <= 100.0:
            raise ConfigError(
                f"threshold for {name!r} needs 0 <= warning <= critical <= 100"
            )
        thresholds[kind] = Threshold(warn, crit)

    disk_path = raw.get("disk_path", "/")
    if not isinstance(disk_path, str) or not disk_path:
        raise ConfigError("disk_path must be a non-empty string")

    return Config(
        interval_ms=interval,
        metrics=kinds,
        history_size=history_size,
        sample_timeout_ms=timeout,
        disk_path=disk_path,
        thresholds=MappingProxyType(thresholds),
    )


def dump_default_config() -> str:
    """Return the default configuration as a TOML string."""
    metrics = ", ".join(f'"{m}"' for m in DEFAULT_CONFIG["metrics"])
    lines = [
        "# sysgauge configuration",
        "# Place this file at ~/.config/sysgauge/config.toml",
        "",
        f"interval_ms = {DEFAULT_CONFIG['interval_ms']}",
        f"history_size = {DEFAULT_CONFIG['history_size']}",
        f"sample_timeout_ms = {DEFAULT_CONFIG['sample_timeout_ms']}",
        f'disk_path = "{DEFAULT_CONFIG["disk_path"]}"',
        f"metrics = [{metrics}]",
        "",
    ]

    for metric, levels in DEFAULT_CONFIG["thresholds"].items():
        lines.append(f"[thresholds.{metric}]")
        lines.append(f"warning = {levels['warning']}")
        lines.append(f"critical = {levels['critical']}")
        lines.append("")

    return "\n".join(lines) + "\n"
