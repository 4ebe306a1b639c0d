"""Cache Manager: the get-or-compute protocol.

Reads the store, asks the expiration policy whether the entry is usable, runs
the caller's provider on a miss and writes the result back. Construct one per
cache root and pass it explicitly to the code that needs it.
"""

import logging
import math
import time
from typing import Any, Callable, Iterable, Optional, Sequence

from xfcache.core.expiration_policy import ExpirationPolicy
from xfcache.core.locking import KeyLockRegistry
from xfcache.domain.errors import InvalidKeyError, StorageWriteError
from xfcache.domain.events.cache_events import (
    CacheEvent,
    CacheHit,
    CacheMiss,
    StorageWriteFailed,
    ValueComputed,
)
from xfcache.domain.interfaces.store import Store
from xfcache.domain.models.common import RESERVED_KEY_CHARACTERS, CacheKey
from xfcache.domain.models.entry import Entry, Hit
from xfcache.domain.models.item import CacheItem, ItemView

logger = logging.getLogger(__name__)

Provider = Callable[[CacheItem], Any]
Listener = Callable[[CacheEvent], None]


class CacheManager:
    """Compute-on-miss cache over a Store."""

    def __init__(
        self,
        store: Store,
        policy: Optional[ExpirationPolicy] = None,
        default_lifetime: Optional[float] = None,
        lock_keys: bool = False,
        strict_persistence: bool = False,
        listeners: Sequence[Listener] = (),
        clock: Callable[[], float] = time.time,
    ):
        """Initializes the cache manager.

        Args:
            store: Storage backend implementing the Store interface.
            policy: Early-expiration policy (beta 1.0 by default).
            default_lifetime: Seconds applied when a provider declares no expiry;
                None means such values never expire.
            lock_keys: Serialize provider calls per key within this process.
            strict_persistence: Raise StorageWriteError from get() when the
                computed value cannot be stored, instead of only reporting it.
            listeners: Callables receiving cache events.
            clock: Source of unix time, injectable for tests.
        """
        self.store = store
        self.policy = policy or ExpirationPolicy()
        self.default_lifetime = default_lifetime
        self.strict_persistence = strict_persistence
        self._listeners = list(listeners)
        self._clock = clock
        self._locks = KeyLockRegistry() if lock_keys else None
        logger.info(
            f"CacheManager initialized. store={store.__class__.__name__}, "
            f"default_beta={self.policy.default_beta}, default_lifetime={default_lifetime}, lock_keys={lock_keys}"
        )

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    # --- Get-or-compute ---

    def get(self, key: CacheKey, provider: Provider, beta: Optional[float] = None) -> Any:
        """Returns the cached value for key, computing it with provider on a miss.

        Args:
            key: Cache key.
            provider: Called with a CacheItem on a miss; should call
                item.expires_after() and return the value to cache.
            beta: Early-expiration aggressiveness. 0 disables early
                recomputation, IMMEDIATE_EXPIRATION forces it, None uses the
                policy default.

        Returns:
            The cached or freshly computed value.

        Raises:
            InvalidKeyError: If the key is not acceptable.
            InvalidBetaError: If beta is negative or NaN.
            StorageWriteError: Only in strict mode, after computing the value.
            Any exception raised by provider, unchanged.
        """
        validate_key(key)
        lookup = self.store.read(key)
        if not self.policy.should_treat_as_miss(lookup, self._clock(), beta):
            logger.debug(f"Cache hit for key: {key}")
            self._emit(CacheHit(key=key))
            return lookup.entry.value

        if self._locks is None:
            return self._compute(key, provider, lookup)

        with self._locks.hold(key):
            # Another thread may have refreshed the key while this one waited.
            fresh = self.store.read(key)
            if fresh and not _same_entry(fresh, lookup):
                logger.debug(f"Key '{key}' was refreshed by a concurrent caller, using its value.")
                self._emit(CacheHit(key=key))
                return fresh.entry.value
            return self._compute(key, provider, fresh)

    def _compute(self, key: str, provider: Provider, previous) -> Any:
        early = bool(previous)
        logger.debug(f"Cache miss for key: {key} (early={early})")
        self._emit(CacheMiss(key=key, early=early))

        item = CacheItem(key, previous)
        started = time.perf_counter()
        value = provider(item)
        elapsed = time.perf_counter() - started

        created_at = self._clock()
        if not item.expiration_declared:
            logger.debug(f"Provider for key '{key}' declared no expiry, applying default lifetime {self.default_lifetime}")
        entry = Entry(
            value=value,
            created_at=created_at,
            expires_at=item.resolve_expiry(created_at, self.default_lifetime),
            compute_duration=_round_up_to_millis(elapsed),
        )
        self._emit(ValueComputed(key=key, duration_seconds=entry.compute_duration, expires_at=entry.expires_at))
        self._persist(key, entry)
        return value

    def _persist(self, key: str, entry: Entry) -> None:
        if entry.is_expired(entry.created_at):
            # Nothing to cache; drop whatever an earlier computation left behind.
            logger.debug(f"Value for key '{key}' expires immediately, removing stored entry instead of writing.")
            self.store.delete(key)
            return
        try:
            self.store.write(key, entry)
        except StorageWriteError as e:
            logger.error(f"Computed value for key '{key}' could not be cached: {e}")
            self._emit(StorageWriteFailed(key=key, error_message=str(e)))
            if self.strict_persistence:
                raise StorageWriteError(key, e.reason, value=entry.value) from e

    # --- Introspection ---

    def get_item(self, key: CacheKey) -> ItemView:
        """Returns a read-only view of key under hard expiry only.

        Never runs a provider and never applies early expiration.
        """
        validate_key(key)
        return ItemView(key, self.store.read(key))

    def has_item(self, key: CacheKey) -> bool:
        validate_key(key)
        return self.store.exists(key)

    # --- Removal ---

    def delete(self, key: CacheKey) -> bool:
        """Removes key. Succeeds for keys that are not cached."""
        validate_key(key)
        deleted = self.store.delete(key)
        logger.debug(f"Deleted cache key: {key}")
        return deleted

    def delete_items(self, keys: Iterable[CacheKey]) -> bool:
        ok = True
        for key in keys:
            ok = self.delete(key) and ok
        return ok

    def clear(self) -> bool:
        cleared = self.store.clear()
        logger.info(f"Cleared cache store {self.store.__class__.__name__}: {cleared}")
        return cleared

    def prune(self) -> int:
        removed = self.store.prune()
        logger.info(f"Pruned {removed} expired or unreadable records.")
        return removed

    def _emit(self, event: CacheEvent) -> None:
        for listener in self._listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Cache listener {listener!r} failed on {event.__class__.__name__}: {e}", exc_info=True)


def validate_key(key: str) -> None:
    """Rejects keys that are not non-empty strings free of reserved characters."""
    if not isinstance(key, str):
        raise InvalidKeyError(f"Cache key must be a string, got {type(key).__name__}")
    if not key:
        raise InvalidKeyError("Cache key must not be empty")
    bad = [c for c in key if c in RESERVED_KEY_CHARACTERS]
    if bad:
        raise InvalidKeyError(f"Cache key '{key}' contains reserved characters: {''.join(sorted(set(bad)))}")


def _same_entry(fresh: Hit, previous) -> bool:
    return bool(previous) and fresh.entry.created_at == previous.entry.created_at


def _round_up_to_millis(seconds: float) -> float:
    return math.ceil(max(seconds, 0.0) * 1000) / 1000
