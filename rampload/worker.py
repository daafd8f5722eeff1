import logging
import threading
import time
from typing import Callable, Optional

import requests
from requests.adapters import HTTPAdapter
from requests.exceptions import ConnectTimeout, ReadTimeout, RequestException

from .metrics import MetricsRegistry
from .outcome import Failure, FailureKind, Outcome, Success

logger = logging.getLogger(__name__)

# Small enough that a trickling body is checked against the deadline often
BODY_CHUNK_SIZE = 1024


def create_session() -> requests.Session:
    """One pooled session per worker; a worker only ever holds one connection."""
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=1, pool_maxsize=1)
    session.mount('http://', adapter)
    session.mount('https://', adapter)
    return session


class RequestWorker:
    """
    Repeatedly sends ``GET target_url`` and reports every attempt to the registry.

    The loop ends only when ``stop_event`` is set (checked before each
    request) or, for bounded runs, after ``max_iterations`` attempts.
    """

    def __init__(self, target_url: str, timeout: float, registry: MetricsRegistry,
                 stop_event: threading.Event,
                 session_factory: Callable[[], requests.Session] = create_session,
                 clock: Callable[[], float] = time.perf_counter):
        self.target_url = target_url
        self.timeout = timeout
        self.registry = registry
        self.stop_event = stop_event
        self.session_factory = session_factory
        self._clock = clock

    def _timed_out(self, start: float) -> bool:
        return self._clock() - start >= self.timeout

    def attempt(self, session: requests.Session) -> Outcome:
        """
        Send one request and classify what happened.

        ``timeout`` bounds the whole exchange, headers and body together:
        ``requests`` only applies it per connect and per socket read, so the
        body is streamed and the elapsed time checked after every chunk.
        """
        start = self._clock()
        try:
            response = session.get(self.target_url, timeout=self.timeout, stream=True)
        except (ConnectTimeout, ReadTimeout) as e:
            logger.debug(f"Request to {self.target_url} timed out: {e}")
            return Failure(FailureKind.TIMEOUT)
        except RequestException as e:
            logger.debug(f"Request to {self.target_url} failed: {e}")
            return Failure(FailureKind.TRANSPORT)

        try:
            if self._timed_out(start):
                return Failure(FailureKind.TIMEOUT)
            for _ in response.iter_content(chunk_size=BODY_CHUNK_SIZE):
                if self._timed_out(start):
                    logger.debug(f"Response from {self.target_url} exceeded {self.timeout}s")
                    return Failure(FailureKind.TIMEOUT)
        except RequestException as e:
            logger.debug(f"Reading response from {self.target_url} failed: {e}")
            return Failure(FailureKind.TIMEOUT if self._timed_out(start) else FailureKind.TRANSPORT)
        finally:
            response.close()
        latency_ms = (self._clock() - start) * 1000
        return Success(response.status_code, latency_ms)

    def run(self, max_iterations: Optional[int] = None) -> int:
        """Run the request loop and return the number of attempts made."""
        iterations = 0
        session = self.session_factory()
        try:
            while not self.stop_event.is_set():
                if max_iterations is not None and iterations >= max_iterations:
                    break
                self.registry.increment_requests()
                iterations += 1
                try:
                    outcome = self.attempt(session)
                except Exception:
                    # Anything outside requests' own exceptions still must not end the loop
                    logger.exception(f"Unexpected error while requesting {self.target_url}")
                    outcome = Failure(FailureKind.TRANSPORT)
                self.registry.record(outcome)
        finally:
            session.close()
        return iterations
