"""Per-key circuit breaker with a fallback contract.

Each operation key ("search:engine", "vector:search", ...) owns an
independent closed/open/half-open state machine. State lives in one map
guarded by an ``asyncio.Lock``; the wrapped call itself runs outside the lock.
"""

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any, TypeVar

from content_search.errors import CircuitOpenError, IndexNotFoundError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Fallback = Callable[[], Awaitable[T] | T]
StateListener = Callable[[str, "CircuitState", "CircuitState"], None]


class CircuitState(StrEnum):
    """Breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitSnapshot:
    """Point-in-time view of one key's breaker."""

    key: str
    state: CircuitState
    failure_count: int
    success_count: int
    last_failure_time: float | None
    next_attempt_time: float | None


@dataclass
class _Circuit:
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    last_failure_time: float | None = None
    next_attempt_time: float | None = None
    trial_in_flight: bool = False


class CircuitBreaker:
    """Tracks failures per key and short-circuits calls to an open key.

    Errors of the ``ignore`` types pass through without counting; by default
    these are missing indexes and bad input, which retrying cannot fix. A
    timed-out call counts as a failure.
    """

    def __init__(
        self,
        *,
        threshold: int = 5,
        reset_timeout: float = 30.0,
        call_timeout: float | None = 5.0,
        ignore: tuple[type[BaseException], ...] = (IndexNotFoundError, ValidationError),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize with the failure threshold, open duration and per-call timeout."""
        if threshold < 1:
            raise ValueError("threshold must be at least 1")
        self.threshold = threshold
        self.reset_timeout = reset_timeout
        self.call_timeout = call_timeout
        self._ignore = ignore
        self._clock = clock
        self._circuits: dict[str, _Circuit] = {}
        self._lock = asyncio.Lock()
        self._listeners: list[StateListener] = []

    def add_listener(self, listener: StateListener) -> None:
        """Register ``listener(key, old_state, new_state)`` for every transition."""
        self._listeners.append(listener)

    async def call(
        self,
        key: str,
        func: Callable[[], Awaitable[T]],
        *,
        fallback: Fallback[T] | None = None,
        timeout: float | None = None,
    ) -> T:
        """Run ``func`` under the breaker for ``key``.

        Open circuit: return the fallback's value, or raise CircuitOpenError
        when no fallback was given. Failure: re-raise, except that the failure
        which opens the circuit is answered by the fallback when there is one.
        """
        async with self._lock:
            circuit = self._circuits.setdefault(key, _Circuit())
            admitted = self._admit(key, circuit)
            retry_after = self._retry_after(circuit)

        if not admitted:
            logger.debug("Circuit %s is open, short-circuiting call", key)
            if fallback is None:
                raise CircuitOpenError(key, retry_after)
            return await _resolve(fallback)

        limit = timeout if timeout is not None else self.call_timeout
        try:
            async with asyncio.timeout(limit):
                result = await func()
        except self._ignore:
            async with self._lock:
                circuit.trial_in_flight = False
            raise
        except asyncio.CancelledError:
            async with self._lock:
                circuit.trial_in_flight = False
            raise
        except Exception:
            async with self._lock:
                opened = self._on_failure(key, circuit)
            if opened and fallback is not None:
                logger.info("Circuit %s opened, using fallback", key)
                return await _resolve(fallback)
            raise

        async with self._lock:
            self._on_success(key, circuit)
        return result

    def _admit(self, key: str, circuit: _Circuit) -> bool:
        """Decide whether a call may proceed. Caller holds the lock."""
        if circuit.state is CircuitState.CLOSED:
            return True
        if circuit.state is CircuitState.OPEN:
            if circuit.next_attempt_time is not None and self._clock() >= circuit.next_attempt_time:
                self._transition(key, circuit, CircuitState.HALF_OPEN)
                circuit.trial_in_flight = True
                return True
            return False
        # Half-open admits exactly one trial call
        if circuit.trial_in_flight:
            return False
        circuit.trial_in_flight = True
        return True

    def _retry_after(self, circuit: _Circuit) -> float:
        if circuit.next_attempt_time is None:
            return 0.0
        return max(circuit.next_attempt_time - self._clock(), 0.0)

    def _on_success(self, key: str, circuit: _Circuit) -> None:
        circuit.success_count += 1
        circuit.trial_in_flight = False
        if circuit.state is CircuitState.HALF_OPEN:
            self._close(key, circuit)
        else:
            circuit.failure_count = 0

    def _on_failure(self, key: str, circuit: _Circuit) -> bool:
        """Record a failure. Returns True if the circuit is now open."""
        now = self._clock()
        circuit.failure_count += 1
        circuit.last_failure_time = now
        circuit.trial_in_flight = False
        if circuit.state is CircuitState.HALF_OPEN or circuit.failure_count >= self.threshold:
            circuit.next_attempt_time = now + self.reset_timeout
            if circuit.state is not CircuitState.OPEN:
                self._transition(key, circuit, CircuitState.OPEN)
            return True
        return circuit.state is CircuitState.OPEN

    def _close(self, key: str, circuit: _Circuit) -> None:
        circuit.failure_count = 0
        circuit.success_count = 0
        circuit.next_attempt_time = None
        circuit.trial_in_flight = False
        if circuit.state is not CircuitState.CLOSED:
            self._transition(key, circuit, CircuitState.CLOSED)

    def _transition(self, key: str, circuit: _Circuit, new_state: CircuitState) -> None:
        old_state = circuit.state
        circuit.state = new_state
        if new_state is CircuitState.OPEN:
            logger.warning(
                "Circuit %s opened after %d failures, retry in %.1fs",
                key,
                circuit.failure_count,
                self.reset_timeout,
            )
        else:
            logger.info("Circuit %s %s", key, new_state.value)
        for listener in self._listeners:
            try:
                listener(key, old_state, new_state)
            except Exception:
                logger.warning("Circuit state listener failed for %s", key, exc_info=True)

    async def reset(self, key: str) -> None:
        """Force one key back to closed."""
        async with self._lock:
            circuit = self._circuits.get(key)
            if circuit is not None:
                self._close(key, circuit)

    async def reset_all(self) -> None:
        """Force every key back to closed."""
        async with self._lock:
            for key, circuit in self._circuits.items():
                self._close(key, circuit)

    def get_state(self, key: str) -> CircuitState:
        """Current state of a key; unknown keys are closed."""
        circuit = self._circuits.get(key)
        return circuit.state if circuit is not None else CircuitState.CLOSED

    def snapshot(self, key: str) -> CircuitSnapshot:
        """Counters and timings for one key."""
        circuit = self._circuits.get(key) or _Circuit()
        return CircuitSnapshot(
            key=key,
            state=circuit.state,
            failure_count=circuit.failure_count,
            success_count=circuit.success_count,
            last_failure_time=circuit.last_failure_time,
            next_attempt_time=circuit.next_attempt_time,
        )

    def health(self) -> dict[str, Any]:
        """Totals by state plus every key's snapshot."""
        snapshots = [self.snapshot(key) for key in sorted(self._circuits)]
        counts = {state.value: 0 for state in CircuitState}
        for snap in snapshots:
            counts[snap.state.value] += 1
        return {
            "total": len(snapshots),
            **counts,
            "healthy": counts[CircuitState.OPEN.value] == 0,
            "circuits": {snap.key: asdict(snap) for snap in snapshots},
        }


async def _resolve(fallback: Fallback[T]) -> T:
    value = fallback()
    if inspect.isawaitable(value):
        return await value
    return value
