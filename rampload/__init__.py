"""Step-ramp HTTP load tester with a Prometheus metrics exporter."""
from .config import ConfigError, LoadConfig, load_config
from .exporter import MetricsExporter, create_exporter_app
from .metrics import ExposedMetrics, MetricsRegistry
from .orchestrator import OrchestratorState, RampOrchestrator, RampSchedule
from .outcome import Failure, FailureKind, Success
from .worker import RequestWorker

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "ExposedMetrics",
    "Failure",
    "FailureKind",
    "LoadConfig",
    "MetricsExporter",
    "MetricsRegistry",
    "OrchestratorState",
    "RampOrchestrator",
    "RampSchedule",
    "RequestWorker",
    "Success",
    "create_exporter_app",
    "load_config",
]
