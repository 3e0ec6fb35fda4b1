"""
Circuit breaker for one guarded backend.

CLOSED -> OPEN after `failure_threshold` consecutive failures. Once the
cool-down has elapsed a single probe is admitted (HALF_OPEN); its success
closes the breaker, its failure re-opens it and restarts the cool-down.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from models.domain import BreakerState, CircuitBreakerState

log = logging.getLogger("rxfill.breaker")


class CircuitBreaker:
    def __init__(
        self,
        name: str = "openai",
        failure_threshold: int = 3,
        cooldown_s: float = 5 * 60,
        clock: Callable[[], float] = time.time,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.cooldown_s = cooldown_s
        self.clock = clock
        self._lock = threading.Lock()
        self._state = BreakerState.CLOSED
        self._failures = 0
        self._last_failure_at: Optional[float] = None
        self._next_retry_at: Optional[float] = None
        self._probe_in_flight = False

    @property
    def state(self) -> BreakerState:
        with self._lock:
            return self._state

    def allow_request(self) -> bool:
        """True if the caller may hit the backend now. May move OPEN -> HALF_OPEN."""
        with self._lock:
            if self._state == BreakerState.CLOSED:
                return True
            if self._state == BreakerState.OPEN:
                if self._next_retry_at is not None and self.clock() >= self._next_retry_at:
                    self._state = BreakerState.HALF_OPEN
                    self._probe_in_flight = True
                    log.info("breaker_half_open", extra={"extra": {"event": "breaker_half_open", "breaker": self.name}})
                    return True
                return False
            # HALF_OPEN: only the probe goes through
            if self._probe_in_flight:
                return False
            self._probe_in_flight = True
            return True

    def record_success(self) -> None:
        with self._lock:
            was = self._state
            self._state = BreakerState.CLOSED
            self._failures = 0
            self._next_retry_at = None
            self._probe_in_flight = False
        if was != BreakerState.CLOSED:
            log.info("breaker_closed", extra={"extra": {"event": "breaker_closed", "breaker": self.name}})

    def record_failure(self) -> None:
        opened = False
        with self._lock:
            now = self.clock()
            self._failures += 1
            self._last_failure_at = now
            if self._state == BreakerState.HALF_OPEN or self._failures >= self.failure_threshold:
                opened = self._state != BreakerState.OPEN
                self._state = BreakerState.OPEN
                self._next_retry_at = now + self.cooldown_s
            self._probe_in_flight = False
            failures = self._failures
        if opened:
            log.warning(
                "breaker_opened",
                extra={"extra": {"event": "breaker_opened", "breaker": self.name, "failures": failures, "cooldown_s": self.cooldown_s}},
            )

    def release_probe(self) -> None:
        """Give back an admitted call that ended with neither success nor failure (cancelled).

        A half-open probe returns the breaker to OPEN with its old retry time,
        so the next caller is admitted as a fresh probe.
        """
        with self._lock:
            self._probe_in_flight = False
            if self._state == BreakerState.HALF_OPEN:
                self._state = BreakerState.OPEN

    def snapshot(self) -> CircuitBreakerState:
        with self._lock:
            return CircuitBreakerState(
                state=self._state,
                consecutive_failures=self._failures,
                last_failure_at=self._last_failure_at,
                next_retry_at=self._next_retry_at,
            )

    def reset(self) -> None:
        with self._lock:
            self._state = BreakerState.CLOSED
            self._failures = 0
            self._last_failure_at = None
            self._next_retry_at = None
            self._probe_in_flight = False
        log.info("breaker_reset", extra={"extra": {"event": "breaker_reset", "breaker": self.name}})
