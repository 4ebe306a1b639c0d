"""xfcache: compute-on-miss cache with probabilistic early expiration.

Exposes the public building blocks so callers can construct a cache
explicitly:

    def compute_report(item):
        item.expires_after(60)
        return build_report()

    cache = CacheManager(FilesystemStore(Path("/var/cache/myapp")))
    value = cache.get("report", compute_report)
"""

from xfcache.core.cache_manager import CacheManager
from xfcache.core.expiration_policy import DEFAULT_BETA, IMMEDIATE_EXPIRATION, ExpirationPolicy
from xfcache.domain.errors import (
    CacheError,
    InvalidBetaError,
    InvalidKeyError,
    StorageWriteError,
)
from xfcache.domain.models.entry import MISS, Entry, Hit
from xfcache.domain.models.item import CacheItem, ItemView
from xfcache.infrastructure.store.disk_cache_store import DiskCacheStore
from xfcache.infrastructure.store.filesystem_store import FilesystemStore

__all__ = [
    "CacheManager",
    "ExpirationPolicy",
    "DEFAULT_BETA",
    "IMMEDIATE_EXPIRATION",
    "CacheError",
    "InvalidBetaError",
    "InvalidKeyError",
    "StorageWriteError",
    "Entry",
    "Hit",
    "MISS",
    "CacheItem",
    "ItemView",
    "FilesystemStore",
    "DiskCacheStore",
]
