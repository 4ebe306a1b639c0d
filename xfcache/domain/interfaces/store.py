"""Interface for durable cache storage backends.

Defines the contract a key -> Entry store must satisfy for the cache manager
to be correct. The contract is structural: any object providing these methods
with the guarantees below can back a CacheManager, without inheriting from
anything.
"""

from typing import Protocol, runtime_checkable

from ..models.common import CacheKey
from ..models.entry import Entry, Lookup


@runtime_checkable
class Store(Protocol):
    """Capability interface for cache storage."""

    def read(self, key: CacheKey) -> Lookup:
        """Looks up an entry.

        Args:
            key: The cache key.

        Returns:
            Hit(entry) for a live entry. MISS when there is no record, when the
            record is corrupt or unreadable, or when it is hard-expired.
            Corruption is never raised to the caller.
        """
        ...

    def write(self, key: CacheKey, entry: Entry) -> None:
        """Persists an entry, replacing any previous one.

        Concurrent readers observe either the old entry or the new one, never
        a partially written record, including across a crash mid-write.

        Raises:
            StorageWriteError: If the underlying storage fails.
        """
        ...

    def delete(self, key: CacheKey) -> bool:
        """Removes an entry. Deleting an absent key succeeds.

        Returns:
            True unless the storage refused to remove an existing record.
        """
        ...

    def exists(self, key: CacheKey) -> bool:
        """Equivalent to ``read(key) is not MISS``, possibly without deserializing the value."""
        ...

    def clear(self) -> bool:
        """Removes every entry owned by this store."""
        ...

    def prune(self) -> int:
        """Reclaims hard-expired and corrupt records.

        Returns:
            Number of records removed.
        """
        ...
