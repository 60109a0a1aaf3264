"""Concurrent strategy execution with per-strategy failure isolation."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from content_search.search.strategies.base import StrategyResult

if TYPE_CHECKING:
    from content_search.models.search import ProcessedQuery
    from content_search.search.strategies.base import SearchStrategy

logger = logging.getLogger(__name__)


@dataclass
class StrategyOutcome:
    """One strategy's contribution: its results, or the reason it contributed nothing."""

    name: str
    priority: int
    result: StrategyResult = field(default_factory=StrategyResult)
    error: str | None = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        """True if the strategy completed."""
        return self.error is None


class StrategyExecutor:
    """Runs every applicable strategy concurrently and waits for all of them.

    A failing or timed-out strategy contributes an empty result set and an
    error string; it never fails the others. Cancellation of the caller
    propagates into the in-flight strategies.
    """

    def __init__(
        self,
        strategies: list[SearchStrategy],
        *,
        timeout: float = 10.0,
        timeouts: dict[str, float] | None = None,
    ) -> None:
        """Initialize with the strategy variants and a per-strategy watchdog.

        ``timeouts`` overrides the watchdog for individual strategies by name.
        """
        self._strategies = sorted(strategies, key=lambda s: s.priority, reverse=True)
        self.timeout = timeout
        self._timeouts = dict(timeouts or {})

    def timeout_for(self, strategy: SearchStrategy) -> float:
        """Watchdog in seconds for one strategy."""
        return self._timeouts.get(strategy.name, self.timeout)

    @property
    def strategies(self) -> list[SearchStrategy]:
        """Registered strategies, highest priority first."""
        return list(self._strategies)

    def select(self, query: ProcessedQuery) -> list[SearchStrategy]:
        """Strategies whose can_handle accepts the query."""
        return [s for s in self._strategies if s.can_handle(query)]

    async def execute(self, query: ProcessedQuery) -> list[StrategyOutcome]:
        """Run the selected strategies concurrently, one outcome per strategy."""
        selected = self.select(query)
        if not selected:
            logger.warning(
                "No strategy handles %s (search_id=%s)", query.strategy, query.search_id
            )
            return []
        logger.debug(
            "Executing %s (search_id=%s)", [s.name for s in selected], query.search_id
        )
        return list(await asyncio.gather(*(self._run(s, query) for s in selected)))

    async def _run(self, strategy: SearchStrategy, query: ProcessedQuery) -> StrategyOutcome:
        outcome = StrategyOutcome(name=strategy.name, priority=strategy.priority)
        started = time.perf_counter()
        limit = self.timeout_for(strategy)
        try:
            async with asyncio.timeout(limit):
                outcome.result = await strategy.search(query)
        except TimeoutError:
            outcome.error = f"timed out after {limit:.1f}s"
            logger.warning(
                "Strategy %s timed out (search_id=%s)", strategy.name, query.search_id
            )
        except Exception as exc:
            outcome.error = f"{type(exc).__name__}: {exc}"
            logger.warning(
                "Strategy %s failed (search_id=%s): %s",
                strategy.name,
                query.search_id,
                exc,
                exc_info=True,
            )
        outcome.elapsed = time.perf_counter() - started
        return outcome
