"""Unit tests for configuration loading and validation."""

from __future__ import annotations

import pytest

from rampload.cli import build_config, parse_arguments
from rampload.config import ConfigError, LoadConfig, load_config

pytestmark = pytest.mark.unit


def test_defaults_match_the_documented_values():
    config = load_config({})

    assert config.request_timeout_ms == 2000
    assert config.request_timeout == 2.0
    assert config.base_concurrency == 10
    assert config.concurrency_increment == 10
    assert config.step_interval_sec == 60
    assert config.total_run_duration_sec == 300
    assert config.exporter_port == 9898
    assert config.exporter_path == "/metrics"
    assert config.ramp_mode == "additive"
    assert config.stop_workers_at_deadline is False


def test_environment_overrides_defaults():
    config = load_config({
        "TARGET_URL": "http://example.test/v1/search",
        "BASE_CONCURRENCY": "4",
        "STEP_INTERVAL_SEC": "0.5",
        "RAMP_MODE": "Replace",
        "STOP_WORKERS_AT_DEADLINE": "yes",
        "LOG_LEVEL": "debug",
    })

    assert config.target_url == "http://example.test/v1/search"
    assert config.base_concurrency == 4
    assert config.step_interval_sec == 0.5
    assert config.ramp_mode == "replace"
    assert config.stop_workers_at_deadline is True
    assert config.log_level == "DEBUG"


def test_unparseable_environment_value_falls_back_to_default():
    config = load_config({"BASE_CONCURRENCY": "lots", "EXPORTER_PORT": ""})

    assert config.base_concurrency == 10
    assert config.exporter_port == 9898


@pytest.mark.parametrize(
    "overrides",
    [
        {"request_timeout_ms": 0},
        {"base_concurrency": -1},
        {"concurrency_increment": -5},
        {"step_interval_sec": 0},
        {"total_run_duration_sec": -1},
        {"exporter_port": 70000},
        {"exporter_path": "metrics"},
        {"ramp_mode": "sideways"},
        {"target_url": ""},
    ],
)
def test_out_of_range_values_are_rejected(overrides):
    with pytest.raises(ConfigError):
        LoadConfig(**overrides)


def test_environment_with_invalid_value_raises():
    with pytest.raises(ConfigError):
        load_config({"RAMP_MODE": "exponential"})


def test_cli_flags_take_precedence_over_environment():
    base = load_config({"BASE_CONCURRENCY": "3", "EXPORTER_PORT": "9100"})

    args = parse_arguments(["--base-concurrency", "7", "--ramp-mode", "replace", "--log-level", "warning"], base)
    config = build_config(args, base)

    assert config.base_concurrency == 7
    assert config.exporter_port == 9100
    assert config.ramp_mode == "replace"
    assert config.log_level == "WARNING"


def test_with_overrides_ignores_none():
    config = LoadConfig().with_overrides(base_concurrency=None, linger_sec=2.5)

    assert config.base_concurrency == 10
    assert config.linger_sec == 2.5


def test_stop_workers_flag_can_override_environment_in_both_directions():
    enabled = load_config({"STOP_WORKERS_AT_DEADLINE": "true"})
    disabled = load_config({})

    turned_off = build_config(parse_arguments(["--no-stop-workers-at-deadline"], enabled), enabled)
    turned_on = build_config(parse_arguments(["--stop-workers-at-deadline"], disabled), disabled)
    inherited = build_config(parse_arguments([], enabled), enabled)

    assert turned_off.stop_workers_at_deadline is False
    assert turned_on.stop_workers_at_deadline is True
    assert inherited.stop_workers_at_deadline is True
