"""Tests for StrategyExecutor."""

import asyncio

import pytest

from content_search.models.search import SearchType
from content_search.search.executor import StrategyExecutor
from content_search.search.strategies.base import StrategyResult


class StubStrategy:
    """Strategy double with a configurable outcome."""

    def __init__(self, name, priority, handles, *, results=None, error=None, wait=None):
        self.name = name
        self.priority = priority
        self._handles = set(handles)
        self._results = results or []
        self._error = error
        self._wait = wait
        self.calls = 0
        self.cancelled = False

    def can_handle(self, query):
        return query.strategy in self._handles

    async def search(self, query):
        self.calls += 1
        try:
            if self._wait is not None:
                await self._wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self._error is not None:
            raise self._error
        return StrategyResult(results=list(self._results), total=len(self._results))


HYBRID = {SearchType.HYBRID}


def test_strategies_sorted_by_priority():
    executor = StrategyExecutor(
        [StubStrategy("low", 1, HYBRID), StubStrategy("high", 9, HYBRID)]
    )
    assert [s.name for s in executor.strategies] == ["high", "low"]


def test_select_uses_can_handle(query_factory):
    executor = StrategyExecutor(
        [
            StubStrategy("a", 1, {SearchType.HYBRID, SearchType.FULL_TEXT}),
            StubStrategy("b", 2, {SearchType.RAG}),
        ]
    )
    assert [s.name for s in executor.select(query_factory(strategy=SearchType.FULL_TEXT))] == [
        "a"
    ]
    assert [s.name for s in executor.select(query_factory(strategy=SearchType.RAG))] == ["b"]


def test_timeout_overrides():
    slow = StubStrategy("rag", 10, HYBRID)
    fast = StubStrategy("semantic", 8, HYBRID)
    executor = StrategyExecutor([slow, fast], timeout=10.0, timeouts={"rag": 130.0})
    assert executor.timeout_for(slow) == 130.0
    assert executor.timeout_for(fast) == 10.0


@pytest.mark.asyncio
async def test_no_applicable_strategy(query_factory):
    executor = StrategyExecutor([StubStrategy("a", 1, {SearchType.RAG})])
    assert await executor.execute(query_factory()) == []


@pytest.mark.asyncio
async def test_strategies_run_concurrently(query_factory, result_factory):
    started = asyncio.Event()

    async def wait_for_partner():
        await asyncio.wait_for(started.wait(), timeout=1.0)

    async def signal_partner():
        started.set()

    first = StubStrategy("first", 2, HYBRID, wait=wait_for_partner, results=[
        result_factory("a", 0.5)
    ])
    second = StubStrategy("second", 1, HYBRID, wait=signal_partner)
    outcomes = await StrategyExecutor([first, second]).execute(query_factory())

    assert [o.name for o in outcomes] == ["first", "second"]
    assert all(o.ok for o in outcomes)
    assert len(outcomes[0].result.results) == 1


@pytest.mark.asyncio
async def test_failure_is_isolated(query_factory, result_factory):
    good = StubStrategy("good", 1, HYBRID, results=[result_factory("a", 0.5)])
    bad = StubStrategy("bad", 2, HYBRID, error=RuntimeError("boom"))
    outcomes = {o.name: o for o in await StrategyExecutor([good, bad]).execute(query_factory())}

    assert outcomes["good"].ok
    assert len(outcomes["good"].result.results) == 1
    assert not outcomes["bad"].ok
    assert outcomes["bad"].error == "RuntimeError: boom"
    assert outcomes["bad"].result.results == []


@pytest.mark.asyncio
async def test_timeout_is_reported(query_factory):
    async def hang():
        await asyncio.sleep(10)

    slow = StubStrategy("slow", 1, HYBRID, wait=hang)
    fast = StubStrategy("fast", 2, HYBRID)
    executor = StrategyExecutor([slow, fast], timeout=10.0, timeouts={"slow": 0.01})
    outcomes = {o.name: o for o in await executor.execute(query_factory())}

    assert outcomes["slow"].error.startswith("timed out after")
    assert outcomes["slow"].result.results == []
    assert outcomes["fast"].ok


@pytest.mark.asyncio
async def test_cancellation_propagates(query_factory):
    async def hang():
        await asyncio.sleep(10)

    strategy = StubStrategy("slow", 1, HYBRID, wait=hang)
    task = asyncio.create_task(StrategyExecutor([strategy]).execute(query_factory()))
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert strategy.cancelled is True
