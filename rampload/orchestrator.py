"""
Step ramp of request workers over a bounded test window.

Every ``step_interval_sec`` the orchestrator starts a new batch of workers,
each batch ``concurrency_increment`` larger than the previous one, until
``total_run_duration_sec`` has elapsed since the run started.
"""
import logging
import math
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from .config import LoadConfig
from .metrics import MetricsRegistry
from .worker import RequestWorker, create_session

logger = logging.getLogger(__name__)


class OrchestratorState(Enum):
    IDLE = "idle"
    RAMPING = "ramping"
    STOPPED = "stopped"


@dataclass(frozen=True)
class RampSchedule:
    """Pure description of when batches start and how large they are."""
    base_concurrency: int
    increment: int
    step_interval: float
    total_duration: float

    @classmethod
    def from_config(cls, config: LoadConfig) -> "RampSchedule":
        return cls(
            base_concurrency=config.base_concurrency,
            increment=config.concurrency_increment,
            step_interval=config.step_interval_sec,
            total_duration=config.total_run_duration_sec,
        )

    def batch_size(self, step: int) -> int:
        return self.base_concurrency + step * self.increment

    def step_start(self, step: int) -> float:
        return step * self.step_interval

    def step_count(self) -> int:
        """Number of steps that start strictly before the deadline."""
        if self.total_duration <= 0:
            return 0
        return math.ceil(self.total_duration / self.step_interval)

    def batches(self) -> List[Tuple[float, int]]:
        return [(self.step_start(step), self.batch_size(step)) for step in range(self.step_count())]


class RampOrchestrator:
    """
    Drives the ramp: IDLE -> RAMPING -> STOPPED.

    Each batch shares one stop event, so a batch can be retired on its own
    (``replace`` ramp mode) and ``stop()`` can retire everything.
    ``clock``, ``wait`` and ``thread_factory`` exist so tests can run the
    ramp without real time passing or real threads starting.
    """

    def __init__(self, config: LoadConfig, registry: MetricsRegistry,
                 clock: Callable[[], float] = time.monotonic,
                 wait: Optional[Callable[[float], bool]] = None,
                 thread_factory=threading.Thread,
                 session_factory=create_session):
        self.config = config
        self.registry = registry
        self.schedule = RampSchedule.from_config(config)
        self.state = OrchestratorState.IDLE
        self.current_concurrency = config.base_concurrency
        self.step = 0
        self.spawned_total = 0
        self.started_at = None
        self._clock = clock
        self._shutdown = threading.Event()
        self._wait = wait if wait is not None else self._shutdown.wait
        self._thread_factory = thread_factory
        self._session_factory = session_factory
        self._batches: List[Tuple[threading.Event, list]] = []
        self._lock = threading.Lock()

    def elapsed(self) -> float:
        if self.started_at is None:
            return 0.0
        return self._clock() - self.started_at

    def _run_worker(self, worker: RequestWorker):
        self.registry.worker_started()
        try:
            worker.run()
        except Exception:
            logger.exception("Request worker crashed")
        finally:
            self.registry.worker_finished()

    def _spawn_batch(self, size: int) -> int:
        stop_event = threading.Event()
        threads = []
        with self._lock:
            self._batches.append((stop_event, threads))
        for index in range(size):
            worker = RequestWorker(
                self.config.target_url,
                self.config.request_timeout,
                self.registry,
                stop_event,
                session_factory=self._session_factory,
            )
            thread = self._thread_factory(
                target=self._run_worker,
                args=(worker,),
                name=f"requester-{self.step}-{index}",
                daemon=True,
            )
            try:
                thread.start()
            except RuntimeError as e:
                logger.error(
                    f"Could not start worker {index + 1}/{size} of step {self.step}: {e}. "
                    "Skipping the rest of this batch."
                )
                break
            threads.append(thread)
            self.spawned_total += 1
        return len(threads)

    def _stop_batches(self):
        with self._lock:
            batches = list(self._batches)
        for stop_event, _ in batches:
            stop_event.set()

    def live_workers(self) -> int:
        with self._lock:
            threads = [t for _, batch in self._batches for t in batch]
        return sum(1 for t in threads if t.is_alive())

    def run(self) -> int:
        """Ramp until the deadline (or ``stop()``) and return the number of workers started."""
        if self.state is not OrchestratorState.IDLE:
            raise RuntimeError(f"Orchestrator already {self.state.value}")
        total = self.config.total_run_duration_sec
        self.started_at = self._clock()
        self.state = OrchestratorState.RAMPING
        planned = self.schedule.batches()
        logger.info(
            f"Starting ramp: {len(planned)} steps every {self.config.step_interval_sec}s for {total}s, "
            f"{sum(size for _, size in planned)} workers in total ({self.config.ramp_mode} mode)"
        )

        while not self._shutdown.is_set():
            if self.step >= self.schedule.step_count() or self.elapsed() >= total:
                break
            if self.config.ramp_mode == "replace":
                self._stop_batches()
            self.current_concurrency = self.schedule.batch_size(self.step)
            started = self._spawn_batch(self.current_concurrency)
            self.registry.increment_ramp_steps()
            self.registry.set_target_concurrency(self.current_concurrency)
            logger.info(
                f"Running with {self.current_concurrency} concurrent requesters "
                f"({self.live_workers()} live workers)"
            )
            logger.debug(f"Step {self.step}: started {started} workers, {self.spawned_total} in total")

            # Sleep until the next step is due, or the deadline if that comes first
            next_start = min(self.schedule.step_start(self.step + 1), total)
            delay = next_start - self.elapsed()
            if delay > 0 and self._wait(delay):
                break
            self.step += 1

        self.state = OrchestratorState.STOPPED
        if self._shutdown.is_set():
            logger.info(f"Load test stopped early after {self.elapsed():.1f}s")
        else:
            logger.info(f"Load test finished after {total}s")
        if self.config.stop_workers_at_deadline:
            self._stop_batches()
        return self.spawned_total

    def stop(self):
        """End the ramp and signal every worker to exit after its current request."""
        self._shutdown.set()
        self._stop_batches()

    def join_workers(self, timeout: Optional[float] = None) -> bool:
        """Wait for worker threads to exit. Returns True if all of them did."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._lock:
            threads = [t for _, batch in self._batches for t in batch]
        for thread in threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
        return not any(t.is_alive() for t in threads)
