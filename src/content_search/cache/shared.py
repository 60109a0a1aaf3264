"""Tier-2 cache: shared across processes, stored in the ``cache_entries`` table.

Works on any ``Database`` backend. With SQLite every process on the host shares
the file; with Postgres every instance shares the server. Expiry uses wall-clock
epoch seconds so that separate processes agree on it.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from content_search.errors import CacheError

if TYPE_CHECKING:
    from content_search.db.backend import Database

logger = logging.getLogger(__name__)

_LIVE = "(expires_at IS NULL OR expires_at > ?)"

_UPSERT_SQL = """
    INSERT INTO cache_entries (key, value, created_at, expires_at) VALUES (?, ?, ?, ?)
    ON CONFLICT (key) DO UPDATE SET
        value = excluded.value,
        created_at = excluded.created_at,
        expires_at = excluded.expires_at
"""

# An expired counter restarts at 1 with a fresh TTL; a live one keeps its TTL
_INCREMENT_SQL = """
    INSERT INTO cache_entries (key, value, created_at, expires_at) VALUES (?, '1', ?, ?)
    ON CONFLICT (key) DO UPDATE SET
        value = CASE
            WHEN cache_entries.expires_at IS NOT NULL AND cache_entries.expires_at <= ? THEN '1'
            ELSE CAST(CAST(cache_entries.value AS INTEGER) + 1 AS TEXT)
        END,
        expires_at = CASE
            WHEN cache_entries.expires_at IS NOT NULL AND cache_entries.expires_at <= ?
                THEN excluded.expires_at
            ELSE cache_entries.expires_at
        END
    RETURNING value
"""


def glob_to_like(pattern: str) -> str:
    """Translate a ``*``/``?`` glob into a LIKE pattern escaped with backslash."""
    out: list[str] = []
    for ch in pattern:
        if ch in ("\\", "%", "_"):
            out.append("\\" + ch)
        elif ch == "*":
            out.append("%")
        elif ch == "?":
            out.append("_")
        else:
            out.append(ch)
    return "".join(out)


@runtime_checkable
class SharedCache(Protocol):
    """String-keyed distributed cache with TTLs and pattern deletes."""

    async def get(self, key: str) -> str | None:
        """Return the live value or None."""
        ...

    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        """Store a value, expiring after ``ttl`` seconds (never when None)."""
        ...

    async def delete(self, key: str) -> bool:
        """Remove one key."""
        ...

    async def delete_pattern(self, pattern: str) -> int:
        """Remove every key matching a glob. Returns the number removed."""
        ...

    async def exists(self, key: str) -> bool:
        """True if a live value is stored."""
        ...

    async def increment(self, key: str, ttl: float | None = None) -> int:
        """Atomically add one; the TTL applies when the counter is created."""
        ...

    async def top_counters(self, pattern: str, limit: int) -> list[tuple[str, int]]:
        """Live integer counters matching a glob, highest first."""
        ...

    async def clear(self) -> None:
        """Remove everything."""
        ...

    async def ping(self) -> bool:
        """Check the backing store answers."""
        ...


class SQLSharedCache:
    """SharedCache over the ``cache_entries`` table. Raises CacheError on failure."""

    def __init__(self, db: Database, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize with a database backend and an injectable wall clock."""
        self._db = db
        self._clock = clock

    @asynccontextmanager
    async def _guard(self, op: str, key: str) -> AsyncIterator[None]:
        try:
            yield
        except CacheError:
            raise
        except Exception as exc:
            raise CacheError(
                f"Shared cache {op} failed", details={"operation": op, "key": key}
            ) from exc

    def _expiry(self, now: float, ttl: float | None) -> float | None:
        return now + ttl if ttl is not None else None

    async def get(self, key: str) -> str | None:
        """Return the live value or None."""
        async with self._guard("get", key):
            cursor = await self._db.execute(
                f"SELECT value FROM cache_entries WHERE key = ? AND {_LIVE}",
                (key, self._clock()),
            )
            row = await cursor.fetchone()
        return row[0] if row is not None else None

    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        """Store a value, expiring after ``ttl`` seconds (never when None)."""
        now = self._clock()
        async with self._guard("set", key):
            await self._db.execute(_UPSERT_SQL, (key, value, now, self._expiry(now, ttl)))
            await self._db.commit()

    async def delete(self, key: str) -> bool:
        """Remove one key."""
        async with self._guard("delete", key):
            cursor = await self._db.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            await self._db.commit()
        return cursor.rowcount > 0

    async def delete_pattern(self, pattern: str) -> int:
        """Remove every key matching a glob. Returns the number removed."""
        async with self._guard("delete_pattern", pattern):
            cursor = await self._db.execute(
                "DELETE FROM cache_entries WHERE key LIKE ? ESCAPE '\\'",
                (glob_to_like(pattern),),
            )
            await self._db.commit()
        removed = max(cursor.rowcount, 0)
        logger.info("Deleted %d shared cache keys matching %r", removed, pattern)
        return removed

    async def exists(self, key: str) -> bool:
        """True if a live value is stored."""
        async with self._guard("exists", key):
            cursor = await self._db.execute(
                f"SELECT 1 FROM cache_entries WHERE key = ? AND {_LIVE}",
                (key, self._clock()),
            )
            row = await cursor.fetchone()
        return row is not None

    async def increment(self, key: str, ttl: float | None = None) -> int:
        """Atomically add one; the TTL applies when the counter is created or restarted."""
        now = self._clock()
        async with self._guard("increment", key):
            cursor = await self._db.execute(
                _INCREMENT_SQL, (key, now, self._expiry(now, ttl), now, now)
            )
            row = await cursor.fetchone()
            await self._db.commit()
        return int(row[0]) if row is not None else 0

    async def top_counters(self, pattern: str, limit: int) -> list[tuple[str, int]]:
        """Live integer counters matching a glob, highest first."""
        async with self._guard("top_counters", pattern):
            cursor = await self._db.execute(
                "SELECT key, value FROM cache_entries"
                f" WHERE key LIKE ? ESCAPE '\\' AND {_LIVE}"
                " ORDER BY CAST(value AS INTEGER) DESC, key LIMIT ?",
                (glob_to_like(pattern), self._clock(), limit),
            )
            rows = await cursor.fetchall()
        return [(row[0], int(row[1])) for row in rows]

    async def clear(self) -> None:
        """Remove everything."""
        async with self._guard("clear", "*"):
            await self._db.execute("DELETE FROM cache_entries")
            await self._db.commit()

    async def purge_expired(self) -> int:
        """Delete expired rows. Returns the number removed."""
        async with self._guard("purge_expired", "*"):
            cursor = await self._db.execute(
                "DELETE FROM cache_entries WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (self._clock(),),
            )
            await self._db.commit()
        return max(cursor.rowcount, 0)

    async def ping(self) -> bool:
        """Check the backing store answers."""
        try:
            cursor = await self._db.execute("SELECT COUNT(*) FROM cache_entries")
            await cursor.fetchone()
            return True
        except Exception:
            logger.warning("Shared cache health check failed", exc_info=True)
            return False
