"""Rate limiting for Kubernetes API calls."""

import logging
import os
import threading
import time
from collections.abc import Callable
from contextlib import contextmanager
from typing import Generator

logger = logging.getLogger(__name__)


class RateLimiter:
    """Thread-safe rate limiter using semaphore and token bucket.

    Limits both concurrent requests and requests per second so that
    parallel discovery and converges do not overwhelm the API server.
    """

    def __init__(
        self,
        max_concurrent: int = 10,
        requests_per_second: float = 20.0,
        on_wait: Callable[[float], None] | None = None,
    ) -> None:
        """Initialize rate limiter.

        Args:
            max_concurrent: Maximum number of concurrent API calls
            requests_per_second: Maximum requests per second (averaged)
            on_wait: Called with the wait time of every call that had to wait
        """
        self._semaphore = threading.Semaphore(max_concurrent)
        self._min_interval = 1.0 / requests_per_second if requests_per_second > 0 else 0
        self._last_call_time = 0.0
        self._lock = threading.Lock()
        self._max_concurrent = max_concurrent
        self._requests_per_second = requests_per_second
        self._on_wait = on_wait

        logger.info(
            "Rate limiter initialized: max_concurrent=%d, requests_per_second=%.1f",
            max_concurrent,
            requests_per_second,
        )

    @classmethod
    def from_env(cls, on_wait: Callable[[float], None] | None = None) -> "RateLimiter":
        """Create a rate limiter from the environment.

        Configuration via environment variables:
            KUBE_MAX_CONCURRENT_CALLS: Max concurrent API calls (default: 10)
            KUBE_REQUESTS_PER_SECOND: Max requests/second (default: 20)
        """
        return cls(
            max_concurrent=int(os.environ.get("KUBE_MAX_CONCURRENT_CALLS", "10")),
            requests_per_second=float(os.environ.get("KUBE_REQUESTS_PER_SECOND", "20")),
            on_wait=on_wait,
        )

    @contextmanager
    def acquire(self) -> Generator[None, None, None]:
        """Acquire rate limit slot (context manager).

        Usage:
            with rate_limiter.acquire():
                # make API call
        """
        wait_start = time.monotonic()
        self._semaphore.acquire()
        try:
            # Enforce minimum interval between requests
            with self._lock:
                now = time.monotonic()
                elapsed = now - self._last_call_time
                interval_wait = self._min_interval - elapsed

                if interval_wait > 0:
                    time.sleep(interval_wait)

                self._last_call_time = time.monotonic()

            # Record total wait time (semaphore + interval)
            total_wait = time.monotonic() - wait_start
            if total_wait > 0.001 and self._on_wait is not None:
                self._on_wait(total_wait)

            yield
        finally:
            self._semaphore.release()

    def __repr__(self) -> str:
        return (
            f"RateLimiter(max_concurrent={self._max_concurrent}, "
            f"requests_per_second={self._requests_per_second})"
        )
