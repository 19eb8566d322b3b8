"""Interactive terminal dashboard: live memory, swap, CPU and disk gauges.

Usage:
    uv run sysgauge
    uv run sysgauge --interval 500 --config path/to/config.toml
    uv run sysgauge --metrics memory,cpu --log-file /tmp/sysgauge.log

Keys: q/Esc quit, 1/2/3 or Tab/Left/Right switch pages. On the Processes page
Up/Down select a process, Enter opens its details and Backspace goes back.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path

from sysgauge.config import build_config, dump_default_config, load_config
from sysgauge.errors import ConfigError, SysgaugeError
from sysgauge.loop import EventLoop
from sysgauge.provider import select_provider
from sysgauge.sampler import MetricSampler

logger = logging.getLogger("sysgauge")


def positive_int(value: str) -> int:
    """argparse type for strictly positive integers."""
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not an integer") from None
    if n <= 0:
        raise argparse.ArgumentTypeError(f"{value!r} must be greater than zero")
    return n


def metric_list(value: str) -> list[str]:
    names = [v.strip() for v in value.split(",") if v.strip()]
    if not names:
        raise argparse.ArgumentTypeError("at least one metric is required")
    return names


def configure_logging(path: Path | None, level: str = "INFO") -> None:
    """Send logs to *path*, or nowhere: the terminal belongs to the dashboard."""
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    logger.propagate = False
    if path is None:
        logger.addHandler(logging.NullHandler())
        return
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    logger.addHandler(handler)
    logger.setLevel(level.upper())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sysgauge",
        description="Live memory, swap, CPU and disk gauges in the terminal.",
    )
    parser.add_argument(
        "--interval",
        type=positive_int,
        default=None,
        metavar="MS",
        help="Milliseconds between refreshes (default: 1000)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        metavar="PATH",
        help="Path to TOML config file",
    )
    parser.add_argument(
        "--metrics",
        type=metric_list,
        default=None,
        metavar="LIST",
        help="Comma-separated metrics to show (memory,swap,cpu,disk)",
    )
    parser.add_argument(
        "--dump-config",
        action="store_true",
        help="Print the default configuration as TOML and exit",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        metavar="PATH",
        help="Write logs to this file (default: no logging)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for --log-file (default: INFO)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_file, args.log_level)

    if args.dump_config:
        print(dump_default_config(), end="")
        raise SystemExit(0)

    try:
        raw = load_config(args.config)
        config = build_config(raw, interval_ms=args.interval, metrics=args.metrics)
    except ConfigError as e:
        print(f"sysgauge: {e}", file=sys.stderr)
        raise SystemExit(1) from e

    try:
        provider = select_provider(config.disk_path, config.metrics)
        info = provider.system_info()
    except SysgaugeError as e:
        print(f"sysgauge: {e}", file=sys.stderr)
        raise SystemExit(1) from e

    loop = EventLoop(config, MetricSampler(provider, config.metrics), info=info)
    signal.signal(signal.SIGTERM, lambda signum, frame: loop.request_quit())
    logger.info("starting: interval %d ms, metrics %s", config.interval_ms,
                ",".join(k.value for k in config.metrics))

    try:
        code = loop.run()
    except KeyboardInterrupt:
        code = 0

    if loop.fatal_error:
        print(f"sysgauge: {loop.fatal_error}", file=sys.stderr)
    raise SystemExit(code)


if __name__ == "__main__":
    main()
