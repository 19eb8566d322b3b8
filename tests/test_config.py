"""Tests for sysgauge.config."""

from __future__ import annotations

import tomllib
from pathlib import Path

import pytest

from sysgauge.config import (
    DEFAULT_CONFIG,
    Config,
    Threshold,
    build_config,
    dump_default_config,
    load_config,
    merge_settings,
)
from sysgauge.errors import ConfigError
from sysgauge.models import ALL_KINDS, MetricKind


class TestLoadConfigDefaults:
    def test_defaults_returned_when_no_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr("sysgauge.config._DEFAULT_PATH", tmp_path / "missing.toml")
        cfg = load_config(None)
        assert cfg["interval_ms"] == 1000
        assert cfg["history_size"] == 240
        assert "cpu" in cfg["thresholds"]

    def test_all_default_keys_present(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr("sysgauge.config._DEFAULT_PATH", tmp_path / "missing.toml")
        cfg = load_config(None)
        assert set(cfg.keys()) == set(DEFAULT_CONFIG.keys())

    def test_default_location_used(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        default = tmp_path / "config.toml"
        default.write_text("interval_ms = 250\n")
        monkeypatch.setattr("sysgauge.config._DEFAULT_PATH", default)
        assert load_config(None)["interval_ms"] == 250

    def test_invalid_default_location_is_ignored(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        default = tmp_path / "config.toml"
        default.write_text("this is [not valid toml\n")
        monkeypatch.setattr("sysgauge.config._DEFAULT_PATH", default)
        cfg = load_config(None)
        assert cfg["interval_ms"] == 1000
        assert "ignoring invalid TOML" in capsys.readouterr().err


class TestTomlOverlay:
    def test_overrides_threshold(self, tmp_path: Path) -> None:
        toml_file = tmp_path / "config.toml"
        toml_file.write_text("[thresholds.cpu]\nwarning = 70.0\ncritical = 90.0\n")
        cfg = load_config(toml_file)
        assert cfg["thresholds"]["cpu"]["warning"] == 70.0
        assert cfg["thresholds"]["cpu"]["critical"] == 90.0
        # Other thresholds remain at defaults
        assert cfg["thresholds"]["memory"]["warning"] == 85.0

    def test_overrides_scalar(self, tmp_path: Path) -> None:
        toml_file = tmp_path / "config.toml"
        toml_file.write_text("history_size = 60\n")
        cfg = load_config(toml_file)
        assert cfg["history_size"] == 60
        assert cfg["interval_ms"] == 1000


class TestExplicitPath:
    def test_missing_explicit_path_errors(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="cannot read config file"):
            load_config(tmp_path / "nonexistent.toml")

    def test_invalid_toml_errors(self, tmp_path: Path) -> None:
        bad_file = tmp_path / "bad.toml"
        bad_file.write_text("this is [not valid toml\n")
        with pytest.raises(ConfigError, match="invalid TOML"):
            load_config(bad_file)


class TestMergeSettings:
    def test_first_level_merge(self) -> None:
        base = {"a": {"x": 1, "y": 2}, "b": 3}
        merged = merge_settings(base, {"a": {"y": 20}, "c": 4})
        assert merged == {"a": {"x": 1, "y": 20}, "b": 3, "c": 4}
        assert base["a"]["y"] == 2

    def test_nested_tables_merge(self) -> None:
        base = {"t": {"cpu": {"warning": 80.0, "critical": 95.0}}}
        merged = merge_settings(base, {"t": {"cpu": {"warning": 60.0}}})
        assert merged["t"]["cpu"] == {"warning": 60.0, "critical": 95.0}
        assert base["t"]["cpu"]["warning"] == 80.0

    def test_table_replaced_by_scalar(self) -> None:
        merged = merge_settings({"a": {"x": 1}}, {"a": 5})
        assert merged == {"a": 5}

    def test_partial_threshold_file(self, tmp_path: Path) -> None:
        toml_file = tmp_path / "config.toml"
        toml_file.write_text("[thresholds.cpu]\nwarning = 60.0\n")
        cfg = build_config(load_config(toml_file))
        assert cfg.threshold(MetricKind.CPU) == Threshold(60.0, 95.0)


# ── build_config ───────────────────────────────────────────────────────────


class TestBuildConfig:
    def test_defaults(self) -> None:
        cfg = build_config(DEFAULT_CONFIG)
        assert cfg.interval_ms == 1000
        assert cfg.interval == pytest.approx(1.0)
        assert cfg.metrics == ALL_KINDS
        assert cfg.sample_timeout_ms == 1000  # 0 means "same as interval"
        assert cfg.threshold(MetricKind.SWAP) == Threshold(50.0, 80.0)

    def test_cli_overrides(self) -> None:
        cfg = build_config(DEFAULT_CONFIG, interval_ms=250, metrics=["cpu", "memory"])
        assert cfg.interval_ms == 250
        assert cfg.metrics == (MetricKind.CPU, MetricKind.MEMORY)

    def test_duplicate_metrics_collapsed(self) -> None:
        cfg = build_config(DEFAULT_CONFIG, metrics=["cpu", "CPU", "disk"])
        assert cfg.metrics == (MetricKind.CPU, MetricKind.DISK)

    def test_timeout_capped_at_interval(self) -> None:
        raw = {**DEFAULT_CONFIG, "sample_timeout_ms": 5000}
        cfg = build_config(raw, interval_ms=500)
        assert cfg.sample_timeout_ms == 500

    def test_explicit_timeout_kept(self) -> None:
        raw = {**DEFAULT_CONFIG, "sample_timeout_ms": 200}
        assert build_config(raw).sample_timeout_ms == 200

    @pytest.mark.parametrize("value", [0, -5, 1.5, "fast", True])
    def test_bad_interval(self, value: object) -> None:
        with pytest.raises(ConfigError, match="interval_ms"):
            build_config({**DEFAULT_CONFIG, "interval_ms": value})

    def test_unknown_metric(self) -> None:
        with pytest.raises(ConfigError, match="unknown metric"):
            build_config(DEFAULT_CONFIG, metrics=["gpu"])

    def test_empty_metrics(self) -> None:
        with pytest.raises(ConfigError):
            build_config({**DEFAULT_CONFIG, "metrics": []})

    def test_inverted_threshold(self) -> None:
        raw = {
            **DEFAULT_CONFIG,
            "thresholds": {"cpu": {"warning": 95.0, "critical": 80.0}},
        }
        with pytest.raises(ConfigError, match="warning <= critical"):
            build_config(raw)

    @pytest.mark.parametrize("value", [5, "high", [80, 95]])
    def test_thresholds_not_a_table(self, value: object) -> None:
        with pytest.raises(ConfigError, match="thresholds must be a table"):
            build_config({**DEFAULT_CONFIG, "thresholds": value})

    def test_threshold_levels_not_a_table(self) -> None:
        raw = {**DEFAULT_CONFIG, "thresholds": {"cpu": 90}}
        with pytest.raises(ConfigError, match="threshold for 'cpu' must be a table"):
            build_config(raw)

    def test_missing_threshold_level(self) -> None:
        raw = {**DEFAULT_CONFIG, "thresholds": {"cpu": {"warning": 90.0}}}
        with pytest.raises(ConfigError, match="invalid threshold"):
            build_config(raw)

    def test_config_is_frozen(self) -> None:
        cfg = Config()
        with pytest.raises(AttributeError):
            cfg.interval_ms = 5  # type: ignore[misc]

    def test_thresholds_are_read_only(self) -> None:
        cfg = build_config(DEFAULT_CONFIG)
        with pytest.raises(TypeError):
            cfg.thresholds[MetricKind.CPU] = Threshold(1.0, 2.0)  # type: ignore[index]
        with pytest.raises(TypeError):
            Config().thresholds[MetricKind.CPU] = Threshold(1.0, 2.0)  # type: ignore[index]


# ── dump_default_config ───────────────────────────────────────────────────


def test_dump_is_valid_toml() -> None:
    parsed = tomllib.loads(dump_default_config())
    assert parsed["interval_ms"] == DEFAULT_CONFIG["interval_ms"]
    assert parsed["metrics"] == DEFAULT_CONFIG["metrics"]
    assert parsed["thresholds"] == DEFAULT_CONFIG["thresholds"]
