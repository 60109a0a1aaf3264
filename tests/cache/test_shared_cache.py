"""Tests for the SQL-backed shared tier on in-memory SQLite."""

import pytest

from content_search.cache.shared import SharedCache, SQLSharedCache, glob_to_like
from content_search.errors import CacheError


@pytest.fixture
def shared(db, clock):
    return SQLSharedCache(db, clock=clock)


def test_glob_to_like():
    assert glob_to_like("search:*") == "search:%"
    assert glob_to_like("a?c") == "a_c"
    assert glob_to_like("100%_done") == "100\\%\\_done"


def test_satisfies_protocol(shared):
    assert isinstance(shared, SharedCache)


@pytest.mark.asyncio
async def test_set_get_roundtrip(shared):
    await shared.set("k", '{"a": 1}', ttl=60)
    assert await shared.get("k") == '{"a": 1}'
    assert await shared.exists("k") is True


@pytest.mark.asyncio
async def test_set_overwrites(shared):
    await shared.set("k", "one", ttl=60)
    await shared.set("k", "two", ttl=60)
    assert await shared.get("k") == "two"


@pytest.mark.asyncio
async def test_expired_value_is_invisible(shared, clock):
    await shared.set("k", "v", ttl=10)
    clock.advance(11)
    assert await shared.get("k") is None
    assert await shared.exists("k") is False


@pytest.mark.asyncio
async def test_no_ttl_never_expires(shared, clock):
    await shared.set("k", "v")
    clock.advance(10**9)
    assert await shared.get("k") == "v"


@pytest.mark.asyncio
async def test_delete(shared):
    await shared.set("k", "v")
    assert await shared.delete("k") is True
    assert await shared.delete("k") is False


@pytest.mark.asyncio
async def test_delete_pattern_only_matches_glob(shared):
    await shared.set("search:abc", "1")
    await shared.set("search:def", "2")
    await shared.set("suggestions:py", "3")
    assert await shared.delete_pattern("search:*") == 2
    assert await shared.get("suggestions:py") == "3"


@pytest.mark.asyncio
async def test_delete_pattern_escapes_like_wildcards(shared):
    await shared.set("a_b", "1")
    await shared.set("axb", "2")
    assert await shared.delete_pattern("a_b") == 1
    assert await shared.get("axb") == "2"


@pytest.mark.asyncio
async def test_increment_counts_up(shared):
    assert await shared.increment("query_count:python", ttl=60) == 1
    assert await shared.increment("query_count:python", ttl=60) == 2
    assert await shared.increment("query_count:python", ttl=60) == 3


@pytest.mark.asyncio
async def test_increment_restarts_expired_counter(shared, clock):
    await shared.increment("c", ttl=10)
    await shared.increment("c", ttl=10)
    clock.advance(11)
    assert await shared.increment("c", ttl=10) == 1


@pytest.mark.asyncio
async def test_top_counters(shared):
    for _ in range(3):
        await shared.increment("query_count:react", ttl=60)
    await shared.increment("query_count:python", ttl=60)
    await shared.set("other", "99")
    top = await shared.top_counters("query_count:*", 10)
    assert top == [("query_count:react", 3), ("query_count:python", 1)]


@pytest.mark.asyncio
async def test_clear_and_purge(shared, clock):
    await shared.set("a", "1", ttl=5)
    await shared.set("b", "2", ttl=100)
    clock.advance(6)
    assert await shared.purge_expired() == 1
    await shared.clear()
    assert await shared.get("b") is None


@pytest.mark.asyncio
async def test_ping(shared):
    assert await shared.ping() is True


@pytest.mark.asyncio
async def test_backend_failure_raises_cache_error(db, clock):
    shared = SQLSharedCache(db, clock=clock)
    await db.execute("DROP TABLE cache_entries")
    with pytest.raises(CacheError) as exc_info:
        await shared.get("k")
    assert exc_info.value.details["operation"] == "get"
    assert await shared.ping() is False
