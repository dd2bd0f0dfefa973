"""
store.py - In-memory data cache with stale-while-revalidate.

Entries carry their own TTL and a flag saying whether an expired value may
still be served while a background refresh runs. Staleness is decided only
by cached_at + ttl. Expired entries that do not allow stale reads are
evicted lazily on access; there is no sweeper and no size cap.

Usage:
    cache = DataCache()
    result = await cache.with_cache(
        CacheKeys.user_position(owner),
        lambda: fetch_position(owner),
        CacheOptions(ttl=5.0),
    )
    if result.was_stale:
        ...  # a refresh is already running
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Pattern, TypeVar, Union

from loguru import logger

from ..application.background import BackgroundTasks

T = TypeVar("T")


@dataclass(frozen=True)
class CacheOptions:
    ttl: float  # seconds
    allow_stale: bool = True


@dataclass
class CacheEntry:
    value: Any
    cached_at: float
    ttl: float
    allow_stale: bool

    def is_expired(self, now: float) -> bool:
        return now - self.cached_at >= self.ttl


@dataclass(frozen=True)
class CacheLookup(Generic[T]):
    value: Optional[T]
    is_stale: bool


@dataclass(frozen=True)
class CacheResult(Generic[T]):
    value: T
    from_cache: bool
    was_stale: bool


class CacheKeys:
    """Key builders: entity type + identity."""

    @staticmethod
    def game_state() -> str:
        return "game-state"

    @staticmethod
    def user_position(owner: Any) -> str:
        return f"user-position:{owner}"

    @staticmethod
    def token_account(owner: Any, mint: Any) -> str:
        return f"token-account:{owner}:{mint}"

    @staticmethod
    def token_balance(token_account: Any) -> str:
        return f"token-balance:{token_account}"

    @staticmethod
    def blockhash() -> str:
        return "recent-blockhash"


class DataCache:
    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        tasks: Optional[BackgroundTasks] = None,
    ):
        self.clock = clock
        self.tasks = tasks or BackgroundTasks()
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> CacheLookup:
        entry = self._entries.get(key)
        if entry is None:
            return CacheLookup(value=None, is_stale=False)

        if entry.is_expired(self.clock()):
            if entry.allow_stale:
                return CacheLookup(value=entry.value, is_stale=True)
            del self._entries[key]
            return CacheLookup(value=None, is_stale=False)

        return CacheLookup(value=entry.value, is_stale=False)

    def set(self, key: str, value: Any, options: CacheOptions) -> None:
        self._entries[key] = CacheEntry(
            value=value,
            cached_at=self.clock(),
            ttl=options.ttl,
            allow_stale=options.allow_stale,
        )

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def invalidate_pattern(self, pattern: Union[str, Pattern[str]]) -> int:
        """Drop every key matching `pattern` (re.search semantics). Returns the count."""
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        doomed = [key for key in self._entries if regex.search(key)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> Dict[str, Any]:
        keys: List[str] = list(self._entries)
        return {"size": len(keys), "keys": keys}

    async def with_cache(
        self,
        key: str,
        fetch_fn: Callable[[], Awaitable[T]],
        options: CacheOptions,
    ) -> CacheResult[T]:
        cached = self.get(key)

        if cached.value is not None:
            if cached.is_stale:
                self.tasks.spawn(self._revalidate(key, fetch_fn, options), name=f"revalidate:{key}")
                return CacheResult(value=cached.value, from_cache=True, was_stale=True)
            return CacheResult(value=cached.value, from_cache=True, was_stale=False)

        # Concurrent misses for one key each fetch; the last write wins.
        value = await fetch_fn()
        self.set(key, value, options)
        return CacheResult(value=value, from_cache=False, was_stale=False)

    async def _revalidate(self, key: str, fetch_fn: Callable[[], Awaitable[T]], options: CacheOptions) -> None:
        value = await fetch_fn()
        self.set(key, value, options)
        logger.debug(f"CACHE_REVALIDATED | {key}")

    def invalidate_user(self, owner: Any) -> None:
        """Drop the position and token-account entries keyed by a wallet."""
        owner_re = re.escape(str(owner))
        self.invalidate_pattern(rf"^user-position:{owner_re}")
        self.invalidate_pattern(rf"^token-account:{owner_re}")

    def invalidate_after_transaction(self) -> None:
        self.invalidate(CacheKeys.game_state())
        self.invalidate_pattern(r"^user-position:")
        self.invalidate_pattern(r"^token-balance:")
