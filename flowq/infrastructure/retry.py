"""
Backoff and circuit breaking for calls that fail transiently.

RetryPolicy drives every retry loop in flowq: the upstream execution fetch,
the push fan-out, and SQLite writes that hit a locked database
(see retry_on_db_lock). What counts as retryable is a predicate per policy.
"""

from __future__ import annotations

import random
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any, TypeVar

from flowq.observability.telemetry import counter, log_event

T = TypeVar("T")


class AdapterError(RuntimeError):
    """Error from an external HTTP collaborator, optionally carrying its status code."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def is_transient(exc: Exception) -> bool:
    """Transport failures, 429 and 5xx deserve another attempt; other HTTP errors don't."""
    if not isinstance(exc, AdapterError) or exc.status_code is None:
        return True
    return exc.status_code == 429 or 500 <= exc.status_code < 600


@dataclass
class RetryPolicy:
    stage: str
    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 5.0
    jitter: float = 0.1
    retry_if: Callable[[Exception], bool] = is_transient
    sleep_fn: Callable[[float], None] = time.sleep

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"{self.stage}: max_attempts must be at least 1")

    def delay_for(self, attempt: int) -> float:
        """Exponential delay after the given (1-based) attempt, capped, plus jitter."""
        delay = min(self.base_delay * 2 ** (attempt - 1), self.max_delay)
        return delay + random.uniform(0, self.jitter)

    def execute(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call func until it succeeds, a non-retryable error occurs, or attempts run out."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                retryable = self.retry_if(exc)
                log_event(
                    "stage_error",
                    stage=self.stage,
                    error=str(exc),
                    status=getattr(exc, "status_code", None),
                    attempt=attempt,
                    retryable=retryable,
                )
                if not retryable or attempt >= self.max_attempts:
                    raise

            delay = self.delay_for(attempt)
            counter("retry_count")
            counter(f"{self.stage}.retry")
            log_event("retry_scheduled", stage=self.stage, attempt=attempt, delay=round(delay, 3))
            self.sleep_fn(delay)

    def wrap(self, func: Callable[..., T]) -> Callable[..., T]:
        """Decorator form of execute()."""

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            return self.execute(func, *args, **kwargs)

        return wrapper


class CircuitBreaker:
    """
    Stops calling a collaborator after fail_max consecutive failures.

    Once reset_timeout has passed the circuit goes half_open and lets calls
    through again: a success closes it, a failure re-opens it at once.
    Worker threads share one breaker, so state changes hold a lock.
    """

    def __init__(
        self,
        stage: str,
        fail_max: int = 5,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.stage = stage
        self.fail_max = fail_max
        self.reset_timeout = reset_timeout
        self.clock = clock
        self._state = "closed"
        self._failures = 0
        self._opened_at = 0.0
        self._lock = threading.Lock()

    @property
    def state(self) -> str:
        return self._state

    def allow_request(self) -> bool:
        with self._lock:
            if self._state != "open":
                return True
            if self.clock() - self._opened_at >= self.reset_timeout:
                self._state = "half_open"
                log_event("circuit.half_open", stage=self.stage)
                return True
        counter("circuit_open_rate")
        return False

    def record_success(self) -> None:
        with self._lock:
            self._failures = 0
            self._state = "closed"

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._state != "half_open" and self._failures < self.fail_max:
                return
            self._state = "open"
            self._opened_at = self.clock()
            failures = self._failures
        counter("circuit_open_rate")
        log_event("circuit.opened", stage=self.stage, failures=failures)
