"""Runtime configuration for the ramp load tester.

Values come from defaults, then environment variables, then CLI flags
(see ``rampload.cli``). The resulting ``LoadConfig`` is built once at
startup and handed to every component that needs it.
"""
import os
from dataclasses import dataclass, fields, replace
from typing import Mapping, Optional

RAMP_MODES = ("additive", "replace")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(ValueError):
    """Raised when a configuration value is out of range."""


def _coerce_bool(value: str) -> bool:
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


# field name -> (env var, caster)
CONFIG_SCHEMA = {
    "target_url": ("TARGET_URL", str),
    "request_timeout_ms": ("REQUEST_TIMEOUT_MS", int),
    "base_concurrency": ("BASE_CONCURRENCY", int),
    "concurrency_increment": ("CONCURRENCY_INCREMENT", int),
    "step_interval_sec": ("STEP_INTERVAL_SEC", float),
    "total_run_duration_sec": ("TOTAL_RUN_DURATION_SEC", float),
    "exporter_host": ("EXPORTER_HOST", str),
    "exporter_port": ("EXPORTER_PORT", int),
    "exporter_path": ("EXPORTER_PATH", str),
    "ramp_mode": ("RAMP_MODE", str),
    "stop_workers_at_deadline": ("STOP_WORKERS_AT_DEADLINE", _coerce_bool),
    "linger_sec": ("LINGER_SEC", float),
    "log_level": ("LOG_LEVEL", str),
    "log_file": ("LOG_FILE", str),
}


@dataclass(frozen=True)
class LoadConfig:
    target_url: str = "http://localhost:8000/"
    request_timeout_ms: int = 2000
    base_concurrency: int = 10
    concurrency_increment: int = 10
    step_interval_sec: float = 60.0
    total_run_duration_sec: float = 300.0
    exporter_host: str = "0.0.0.0"
    exporter_port: int = 9898
    exporter_path: str = "/metrics"
    ramp_mode: str = "additive"
    stop_workers_at_deadline: bool = False
    linger_sec: float = 0.0
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def __post_init__(self):
        # frozen dataclass: normalise through object.__setattr__
        object.__setattr__(self, "ramp_mode", str(self.ramp_mode).strip().lower())
        object.__setattr__(self, "log_level", str(self.log_level).strip().upper())
        if self.log_file == "":
            object.__setattr__(self, "log_file", None)
        self.validate()

    @property
    def request_timeout(self) -> float:
        """Per-request timeout in seconds, as ``requests`` expects it."""
        return self.request_timeout_ms / 1000.0

    def validate(self):
        if not self.target_url:
            raise ConfigError("target_url must not be empty")
        if self.request_timeout_ms <= 0:
            raise ConfigError(f"request_timeout_ms must be positive, got {self.request_timeout_ms}")
        if self.base_concurrency < 0:
            raise ConfigError(f"base_concurrency must be >= 0, got {self.base_concurrency}")
        if self.concurrency_increment < 0:
            raise ConfigError(f"concurrency_increment must be >= 0, got {self.concurrency_increment}")
        if self.step_interval_sec <= 0:
            raise ConfigError(f"step_interval_sec must be positive, got {self.step_interval_sec}")
        if self.total_run_duration_sec < 0:
            raise ConfigError(f"total_run_duration_sec must be >= 0, got {self.total_run_duration_sec}")
        if not 0 <= self.exporter_port <= 65535:
            raise ConfigError(f"exporter_port must be within 0-65535, got {self.exporter_port}")
        if not self.exporter_path.startswith("/"):
            raise ConfigError(f"exporter_path must start with '/', got {self.exporter_path!r}")
        if self.ramp_mode not in RAMP_MODES:
            raise ConfigError(f"ramp_mode must be one of {', '.join(RAMP_MODES)}, got {self.ramp_mode!r}")
        if self.linger_sec < 0:
            raise ConfigError(f"linger_sec must be >= 0, got {self.linger_sec}")
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {self.log_level!r}")

    def with_overrides(self, **overrides) -> "LoadConfig":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _cast_value(raw_value, caster, default):
    try:
        return caster(raw_value)
    except (TypeError, ValueError):
        return default


def load_config(environ: Optional[Mapping[str, str]] = None) -> LoadConfig:
    """Build a ``LoadConfig`` from the environment.

    Missing or empty variables keep the default; values that cannot be
    cast to the field's type also fall back to the default.
    """
    environ = os.environ if environ is None else environ
    defaults = {f.name: f.default for f in fields(LoadConfig)}
    values = {}
    for name, (env_key, caster) in CONFIG_SCHEMA.items():
        raw = environ.get(env_key)
        if raw is None or raw == "":
            continue
        values[name] = _cast_value(raw, caster, defaults[name])
    return LoadConfig(**values)
