"""Failure isolation for backend calls."""

from content_search.resilience.breaker import CircuitBreaker, CircuitSnapshot, CircuitState

__all__ = ["CircuitBreaker", "CircuitSnapshot", "CircuitState"]
