"""
File: remote/circuit_breaker.py
Purpose: Circuit breaker for calls to the remote classifier.
Dependencies: Standard library only.
Performance: O(1) state checks.

State transitions::

    CLOSED --[N consecutive failures]--> OPEN --[cooldown]--> HALF_OPEN
    HALF_OPEN --[probe success]--> CLOSED
    HALF_OPEN --[probe failure]--> OPEN
    any --[success]--> CLOSED

The transition logic is the pure function :func:`transition`; the
:class:`CircuitBreaker` only feeds it events and a clock reading.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional

from error_classifier.schema import CircuitState
from error_classifier.telemetry import TelemetryCollector, get_logger

logger = get_logger("error_classifier.remote.circuit_breaker")


class BreakerEvent(str, Enum):
    """Inputs to the breaker state machine."""
    SUCCESS = "success"
    FAILURE = "failure"
    COOLDOWN_ELAPSED = "cooldown_elapsed"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Immutable breaker state.

    Attributes:
        state: Current circuit state.
        consecutive_failures: Failures since the last success.
        last_failure_at: Clock reading of the last failure (0.0 if none).
    """
    state: CircuitState = CircuitState.CLOSED
    consecutive_failures: int = 0
    last_failure_at: float = 0.0


def transition(
    snapshot: BreakerSnapshot,
    event: BreakerEvent,
    *,
    now: float,
    failure_threshold: int,
) -> BreakerSnapshot:
    """Return the state that follows *snapshot* after *event*.

    Args:
        snapshot: Current state.
        event: What happened.
        now: Clock reading at the time of the event.
        failure_threshold: Consecutive failures that open the circuit.

    Returns:
        The next snapshot (possibly *snapshot* itself).
    """
    if event is BreakerEvent.SUCCESS:
        return BreakerSnapshot(state=CircuitState.CLOSED)

    if event is BreakerEvent.FAILURE:
        failures = snapshot.consecutive_failures + 1
        opens = (
            snapshot.state is not CircuitState.CLOSED
            or failures >= failure_threshold
        )
        return BreakerSnapshot(
            state=CircuitState.OPEN if opens else CircuitState.CLOSED,
            consecutive_failures=failures,
            last_failure_at=now,
        )

    if snapshot.state is CircuitState.OPEN:
        return replace(snapshot, state=CircuitState.HALF_OPEN)
    return snapshot


class CircuitBreaker:
    """Circuit breaker for remote classifier calls.

    Decisions are synchronous and never block. In HALF_OPEN exactly one
    probe is let through; other callers are short-circuited until the
    probe reports back.

    Args:
        failure_threshold: Consecutive failures to open the circuit.
        cooldown_seconds: Seconds after the last failure before HALF_OPEN.
        clock: Monotonic time source (injectable for tests).
        telemetry: Optional telemetry collector.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        telemetry: Optional[TelemetryCollector] = None,
    ) -> None:
        self._failure_threshold = failure_threshold
        self._cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._telemetry = telemetry
        self._snapshot = BreakerSnapshot()
        self._probe_in_flight = False

    @property
    def snapshot(self) -> BreakerSnapshot:
        return self._snapshot

    @property
    def state(self) -> CircuitState:
        """Current circuit state (evaluates cooldown on read)."""
        self._maybe_half_open()
        return self._snapshot.state

    @property
    def consecutive_failures(self) -> int:
        return self._snapshot.consecutive_failures

    def allow_request(self) -> bool:
        """Check whether a remote call may be attempted now.

        Claims the HALF_OPEN probe slot when it returns True in that state.
        """
        self._maybe_half_open()
        state = self._snapshot.state
        if state is CircuitState.CLOSED:
            return True
        if state is CircuitState.HALF_OPEN and not self._probe_in_flight:
            self._probe_in_flight = True
            return True
        return False

    def record_success(self) -> None:
        """Record a successful remote call."""
        previous = self._snapshot.state
        self._apply(BreakerEvent.SUCCESS)
        if previous is not CircuitState.CLOSED:
            logger.info(
                "Circuit breaker closed after successful call",
                extra={"breaker_state": CircuitState.CLOSED.value},
            )

    def record_failure(self) -> None:
        """Record a failed remote call."""
        previous = self._snapshot.state
        self._apply(BreakerEvent.FAILURE)
        if self._snapshot.state is CircuitState.OPEN:
            if previous is not CircuitState.OPEN:
                logger.warning(
                    f"Circuit breaker OPEN after "
                    f"{self._snapshot.consecutive_failures} failures",
                    extra={"breaker_state": CircuitState.OPEN.value},
                )
                if self._telemetry:
                    self._telemetry.circuit_breaker_trips.inc()

    def release_probe(self) -> None:
        """Free the HALF_OPEN probe slot without recording an outcome."""
        self._probe_in_flight = False

    def reset(self) -> None:
        """Force-reset to CLOSED."""
        self._snapshot = BreakerSnapshot()
        self._probe_in_flight = False

    # ---- internal ---------------------------------------------------------

    def _apply(self, event: BreakerEvent) -> None:
        self._snapshot = transition(
            self._snapshot,
            event,
            now=self._clock(),
            failure_threshold=self._failure_threshold,
        )
        if event is not BreakerEvent.COOLDOWN_ELAPSED:
            self._probe_in_flight = False

    def _maybe_half_open(self) -> None:
        if self._snapshot.state is not CircuitState.OPEN:
            return
        elapsed = self._clock() - self._snapshot.last_failure_at
        if elapsed >= self._cooldown_seconds:
            self._apply(BreakerEvent.COOLDOWN_ELAPSED)
            logger.info(
                "Circuit breaker transitioning to HALF_OPEN",
                extra={"breaker_state": CircuitState.HALF_OPEN.value},
            )
