import argparse
import logging
import sys
import time
from typing import List, Optional

from prometheus_client import disable_created_metrics

from .config import LOG_LEVELS, RAMP_MODES, ConfigError, LoadConfig, load_config
from .exporter import MetricsExporter
from .metrics import MetricsRegistry
from .orchestrator import RampOrchestrator

logger = logging.getLogger("rampload")

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CONFIG = 2


def configure_logging(level: str = "INFO", log_file: Optional[str] = None):
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )


def parse_arguments(argv: Optional[List[str]] = None, base: Optional[LoadConfig] = None):
    """Parse command line arguments; defaults come from ``base`` (the environment)."""
    base = base or LoadConfig()
    parser = argparse.ArgumentParser(
        prog="rampload",
        description='Ramp HTTP load against one URL and expose Prometheus metrics',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument('--target-url', type=str, default=base.target_url, help='URL every worker requests')
    parser.add_argument('--request-timeout-ms', type=int, default=base.request_timeout_ms,
                        help='Per-request timeout in milliseconds')
    parser.add_argument('--base-concurrency', type=int, default=base.base_concurrency,
                        help='Workers started by the first ramp step')
    parser.add_argument('--concurrency-increment', type=int, default=base.concurrency_increment,
                        help='Extra workers added to each following step')
    parser.add_argument('--step-interval', type=float, default=base.step_interval_sec,
                        help='Seconds between ramp steps')
    parser.add_argument('--duration', type=float, default=base.total_run_duration_sec,
                        help='Test window in seconds; no batch starts after it')
    parser.add_argument('--ramp-mode', type=str, choices=RAMP_MODES, default=base.ramp_mode,
                        help='additive keeps earlier batches running, replace retires them')
    parser.add_argument('--stop-workers-at-deadline', action=argparse.BooleanOptionalAction,
                        default=base.stop_workers_at_deadline,
                        help='Signal every worker to stop when the test window ends')
    parser.add_argument('--linger', type=float, default=base.linger_sec,
                        help='Seconds to keep serving metrics after the test window')
    parser.add_argument('--exporter-host', type=str, default=base.exporter_host, help='Metrics listener address')
    parser.add_argument('--exporter-port', type=int, default=base.exporter_port, help='Metrics listener port')
    parser.add_argument('--exporter-path', type=str, default=base.exporter_path, help='Scrape route')
    parser.add_argument('--log-level', type=str.upper, choices=LOG_LEVELS, default=base.log_level,
                        help='Logging level')
    parser.add_argument('--log-file', type=str, default=base.log_file, help='Also write logs to this file')
    return parser.parse_args(argv)


def build_config(args, base: LoadConfig) -> LoadConfig:
    return base.with_overrides(
        target_url=args.target_url,
        request_timeout_ms=args.request_timeout_ms,
        base_concurrency=args.base_concurrency,
        concurrency_increment=args.concurrency_increment,
        step_interval_sec=args.step_interval,
        total_run_duration_sec=args.duration,
        ramp_mode=args.ramp_mode,
        stop_workers_at_deadline=args.stop_workers_at_deadline,
        linger_sec=args.linger,
        exporter_host=args.exporter_host,
        exporter_port=args.exporter_port,
        exporter_path=args.exporter_path,
        log_level=args.log_level,
        log_file=args.log_file,
    )


def log_summary(registry: MetricsRegistry, orchestrator: RampOrchestrator):
    snapshot = registry.snapshot()
    logger.info("==============================")
    logger.info(f"Ramp steps: {snapshot.ramp_steps_total}, workers started: {orchestrator.spawned_total}")
    logger.info(f"Total requests: {snapshot.requests_total}")
    logger.info(f"Failed requests: {snapshot.failed_requests_total}")
    logger.info(f"Success rate: {snapshot.success_rate * 100:.2f}%")
    logger.info(f"Mean response time: {snapshot.mean_latency_ms:.1f} ms")
    logger.info(f"Status codes: {dict(sorted(snapshot.status_codes.items()))}")
    logger.info("==============================")


def main(argv: Optional[List[str]] = None) -> int:
    """Main function – parse arguments, start the exporter and run the ramp."""
    try:
        base = load_config()
        config = build_config(parse_arguments(argv, base), base)
    except ConfigError as e:
        configure_logging()
        logger.error(f"Invalid configuration: {e}")
        return EXIT_CONFIG

    configure_logging(config.log_level, config.log_file)
    logger.info("Starting Ramp Load Test")
    logger.info("===========================")
    logger.info(f"Target URL: {config.target_url}")
    logger.info(f"Request timeout: {config.request_timeout_ms} ms")
    logger.info(f"Ramp: {config.base_concurrency} (+{config.concurrency_increment}) workers "
                f"every {config.step_interval_sec}s, {config.ramp_mode} mode")
    logger.info(f"Duration: {config.total_run_duration_sec} seconds")
    logger.info("===========================")

    # The scrape carries only the series dashboards read; no *_created timestamps
    disable_created_metrics()
    registry = MetricsRegistry()
    exporter = MetricsExporter(registry, config.exporter_host, config.exporter_port, config.exporter_path)
    try:
        exporter.start()
    except OSError as e:
        logger.error(f"Could not bind metrics exporter to {config.exporter_host}:{config.exporter_port}: {e}")
        return EXIT_FATAL

    orchestrator = RampOrchestrator(config, registry)
    try:
        orchestrator.run()
        if config.linger_sec > 0:
            logger.info(f"Serving metrics for another {config.linger_sec}s")
            time.sleep(config.linger_sec)
    except KeyboardInterrupt:
        logger.info("Test interrupted by user. Stopping workers...")
        orchestrator.stop()
        orchestrator.join_workers(timeout=config.request_timeout + 1)
        log_summary(registry, orchestrator)
        exporter.shutdown()
        return EXIT_FATAL

    log_summary(registry, orchestrator)
    # Workers are daemon threads; whatever is still running ends with the process.
    orchestrator.stop()
    exporter.shutdown()
    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
