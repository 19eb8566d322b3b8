"""Tests for the command-line entry point."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from sysgauge.dashboard import configure_logging, main, metric_list, positive_int
from sysgauge.errors import FatalBackendError
from sysgauge.models import MetricKind

from fakes import FakeProvider


@pytest.fixture(autouse=True)
def _no_user_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("sysgauge.config._DEFAULT_PATH", tmp_path / "missing.toml")


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    yield
    configure_logging(None)


# ── argument types ─────────────────────────────────────────────────────────


class TestArgumentTypes:
    def test_positive_int(self) -> None:
        assert positive_int("250") == 250

    @pytest.mark.parametrize("value", ["0", "-1", "abc", "1.5"])
    def test_positive_int_rejects(self, value: str) -> None:
        with pytest.raises(argparse.ArgumentTypeError):
            positive_int(value)

    def test_metric_list(self) -> None:
        assert metric_list("memory, cpu") == ["memory", "cpu"]

    def test_metric_list_empty(self) -> None:
        with pytest.raises(argparse.ArgumentTypeError):
            metric_list(" , ")


# ── main ───────────────────────────────────────────────────────────────────


class TestMain:
    @pytest.mark.parametrize("interval", ["0", "abc", "-5"])
    def test_bad_interval_is_usage_error(self, interval: str) -> None:
        with pytest.raises(SystemExit) as exc:
            main(["--interval", interval])
        assert exc.value.code == 2

    def test_dump_config(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc:
            main(["--dump-config"])
        assert exc.value.code == 0
        assert "interval_ms = 1000" in capsys.readouterr().out

    def test_unknown_metric(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc:
            main(["--metrics", "memory,gpu"])
        assert exc.value.code == 1
        assert "unknown metric" in capsys.readouterr().err

    def test_invalid_config_value(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        cfg = tmp_path / "config.toml"
        cfg.write_text("history_size = 0\n")
        with pytest.raises(SystemExit) as exc:
            main(["--config", str(cfg)])
        assert exc.value.code == 1
        assert "history_size" in capsys.readouterr().err

    def test_missing_config_file(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit) as exc:
            main(["--config", str(tmp_path / "nope.toml")])
        assert exc.value.code == 1
        assert "cannot read config file" in capsys.readouterr().err

    @patch(
        "sysgauge.dashboard.select_provider",
        side_effect=FatalBackendError("no metrics backend available: unsupported"),
    )
    def test_no_backend(
        self, mock_select: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit) as exc:
            main([])
        assert exc.value.code == 1
        assert "no metrics backend" in capsys.readouterr().err

    @patch("sysgauge.dashboard.signal.signal")
    @patch("sysgauge.dashboard.EventLoop")
    @patch("sysgauge.dashboard.select_provider", return_value=FakeProvider())
    def test_runs_loop_with_cli_settings(
        self, mock_select: MagicMock, mock_loop: MagicMock, mock_signal: MagicMock
    ) -> None:
        mock_loop.return_value.run.return_value = 0
        mock_loop.return_value.fatal_error = None

        with pytest.raises(SystemExit) as exc:
            main(["--interval", "250", "--metrics", "cpu,memory"])

        assert exc.value.code == 0
        config = mock_loop.call_args.args[0]
        assert config.interval_ms == 250
        assert config.metrics == (MetricKind.CPU, MetricKind.MEMORY)
        assert mock_loop.call_args.kwargs["info"].hostname == "testhost"
        mock_signal.assert_called_once()
        mock_select.assert_called_once_with("/", (MetricKind.CPU, MetricKind.MEMORY))

    @patch("sysgauge.dashboard.signal.signal")
    @patch("sysgauge.dashboard.EventLoop")
    @patch("sysgauge.dashboard.select_provider", return_value=FakeProvider())
    def test_fatal_loop_error_reported(
        self,
        mock_select: MagicMock,
        mock_loop: MagicMock,
        mock_signal: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        mock_loop.return_value.run.return_value = 1
        mock_loop.return_value.fatal_error = "sampler crashed: RuntimeError('boom')"

        with pytest.raises(SystemExit) as exc:
            main([])

        assert exc.value.code == 1
        assert "sampler crashed" in capsys.readouterr().err

    @patch("sysgauge.dashboard.signal.signal")
    @patch("sysgauge.dashboard.EventLoop")
    @patch("sysgauge.dashboard.select_provider", return_value=FakeProvider())
    def test_keyboard_interrupt_exits_cleanly(
        self, mock_select: MagicMock, mock_loop: MagicMock, mock_signal: MagicMock
    ) -> None:
        mock_loop.return_value.run.side_effect = KeyboardInterrupt
        mock_loop.return_value.fatal_error = None

        with pytest.raises(SystemExit) as exc:
            main([])
        assert exc.value.code == 0


# ── logging ────────────────────────────────────────────────────────────────


class TestLogging:
    def test_silent_by_default(self) -> None:
        configure_logging(None)
        logger = logging.getLogger("sysgauge")
        assert not logger.propagate
        assert all(isinstance(h, logging.NullHandler) for h in logger.handlers)

    def test_log_file(self, tmp_path: Path) -> None:
        log_file = tmp_path / "sysgauge.log"
        configure_logging(log_file, "debug")
        logging.getLogger("sysgauge.loop").warning("tick %d sample failed", 3)
        for handler in logging.getLogger("sysgauge").handlers:
            handler.flush()
        text = log_file.read_text()
        assert "WARNING sysgauge.loop: tick 3 sample failed" in text
