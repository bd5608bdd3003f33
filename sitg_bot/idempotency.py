"""Webhook delivery idempotency stores.

Two interchangeable implementations share the :class:`IdempotencyStore`
protocol: :class:`InMemoryIdempotencyStore` keeps keys in process memory
and loses them on restart, while :class:`DurableIdempotencyStore` delegates
to the durable :class:`~sitg_bot.deadlines.state.BotStateStore`. Both
discard expired entries lazily on every read and write instead of running
a sweep thread.
"""

from __future__ import annotations

import datetime as dt
import typing as typ

from cachetools import TTLCache

from sitg_bot.common.time import utcnow

if typ.TYPE_CHECKING:
    from sitg_bot.common.time import Clock
    from sitg_bot.deadlines.state import BotStateStore

DEFAULT_DEDUP_TTL = dt.timedelta(hours=24)
DEFAULT_DEDUP_MAXSIZE = 100_000


class IdempotencyStore(typ.Protocol):
    """Set of recently processed keys with time-based expiry."""

    def has(self, key: str) -> bool:
        """Return True when ``key`` was added and has not expired."""
        ...

    def add(self, key: str) -> None:
        """Record ``key`` for the store's TTL."""
        ...


class InMemoryIdempotencyStore:
    """Process-local TTL map backed by :class:`cachetools.TTLCache`.

    The cache's timer reads the injected ``clock`` so expiry follows the
    same notion of time as the rest of the worker. Once ``maxsize`` keys
    are held the least recently used one is evicted.

    Parameters
    ----------
    ttl
        How long an added key counts as processed. Must be positive.
    maxsize
        Upper bound on the number of remembered keys.
    clock
        Source of the current time; defaults to :func:`utcnow`.

    """

    def __init__(
        self,
        ttl: dt.timedelta = DEFAULT_DEDUP_TTL,
        *,
        maxsize: int = DEFAULT_DEDUP_MAXSIZE,
        clock: Clock = utcnow,
    ) -> None:
        """Create an empty store whose keys live for ``ttl``."""
        if ttl <= dt.timedelta(0):
            msg = f"ttl must be positive, got {ttl}"
            raise ValueError(msg)
        self._entries: TTLCache[str, bool] = TTLCache(
            maxsize=maxsize,
            ttl=ttl.total_seconds(),
            timer=lambda: clock().timestamp(),
        )

    def __len__(self) -> int:
        """Return the number of entries held, expired ones included."""
        return len(self._entries)

    def has(self, key: str) -> bool:
        """Return True when ``key`` is present and unexpired."""
        self._entries.expire()
        return key in self._entries

    def add(self, key: str) -> None:
        """Insert or refresh ``key``."""
        self._entries.expire()
        self._entries[key] = True


class DurableIdempotencyStore:
    """Idempotency store persisted through :class:`BotStateStore`."""

    def __init__(
        self,
        state: BotStateStore,
        ttl: dt.timedelta = DEFAULT_DEDUP_TTL,
    ) -> None:
        """Bind the store to ``state`` with keys living for ``ttl``."""
        self._state = state
        self._ttl = ttl

    def has(self, key: str) -> bool:
        """Return True when ``key`` is persisted and unexpired."""
        return self._state.has_dedup_key(key)

    def add(self, key: str) -> None:
        """Persist ``key`` for the configured TTL."""
        self._state.put_dedup_key(key, self._ttl)


__all__ = [
    "DEFAULT_DEDUP_MAXSIZE",
    "DEFAULT_DEDUP_TTL",
    "DurableIdempotencyStore",
    "IdempotencyStore",
    "InMemoryIdempotencyStore",
]
