"""Store implementation backed by the ``diskcache`` library.

diskcache keeps entries in SQLite with transactional writes, which gives the
same reader-never-sees-a-torn-record guarantee as the file store's atomic
rename. Rows are given a diskcache ``expire`` so the library can cull them,
and hard expiry is re-checked on every read.
"""

import logging
import pickle
import sqlite3
import time
from pathlib import Path
from typing import Callable, Union

import diskcache as dc

from xfcache.domain.errors import StorageWriteError
from xfcache.domain.models.common import Namespace
from xfcache.domain.models.entry import MISS, Entry, Hit, Lookup

logger = logging.getLogger(__name__)

DEFAULT_DISK_CACHE_DIR = Path.home() / ".xfcache" / "diskcache"
DEFAULT_TIMEOUT_SECONDS = 1

_READ_ERRORS = (
    pickle.UnpicklingError,
    EOFError,
    AttributeError,
    ImportError,
    TypeError,
    ValueError,
    OSError,
    sqlite3.Error,
    dc.Timeout,
)


class DiskCacheStore:
    """Durable key -> Entry store on top of diskcache.Cache."""

    def __init__(
        self,
        directory: Union[str, Path] = DEFAULT_DISK_CACHE_DIR,
        namespace: Namespace = Namespace(""),
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.directory = Path(directory) / namespace if namespace else Path(directory)
        self._clock = clock
        try:
            self.cache = dc.Cache(str(self.directory), timeout=timeout)
            logger.info(f"DiskCacheStore initialized at: {self.cache.directory}")
        except Exception as e:
            logger.error(f"Failed to initialize disk cache at {self.directory}: {e}", exc_info=True)
            raise

    def read(self, key: str) -> Lookup:
        try:
            entry = self.cache.get(key, default=MISS, retry=True)
        except _READ_ERRORS as e:
            logger.warning(f"Failed to read disk cache entry for key '{key}': {e!r}. Treating as miss.")
            return MISS
        if entry is MISS:
            return MISS
        if not isinstance(entry, Entry):
            logger.warning(f"Disk cache row for key '{key}' is not a cache entry ({type(entry).__name__}). Treating as miss.")
            return MISS
        if entry.is_expired(self._clock()):
            logger.debug(f"Disk cache entry expired for key: {key}")
            return MISS
        return Hit(entry)

    def write(self, key: str, entry: Entry) -> None:
        expire = None
        if entry.expires_at is not None:
            expire = entry.expires_at - self._clock()
            if expire <= 0:
                self.delete(key)
                return
        try:
            self.cache.set(key, entry, expire=expire, retry=True)
        except (OSError, sqlite3.Error, dc.Timeout, pickle.PicklingError, TypeError, AttributeError) as e:
            logger.error(f"Failed to write disk cache entry for key '{key}': {e}")
            raise StorageWriteError(key, str(e)) from e
        logger.debug(f"Stored disk cache entry: key={key}, expire={expire}")

    def delete(self, key: str) -> bool:
        try:
            self.cache.delete(key, retry=True)
        except (OSError, sqlite3.Error, dc.Timeout) as e:
            logger.warning(f"Failed to delete disk cache entry for key '{key}': {e}")
            return False
        return True

    def exists(self, key: str) -> bool:
        return bool(self.read(key))

    def clear(self) -> bool:
        try:
            removed = self.cache.clear(retry=True)
        except (OSError, sqlite3.Error, dc.Timeout) as e:
            logger.error(f"Failed to clear disk cache at {self.directory}: {e}")
            return False
        logger.info(f"Cleared {removed} disk cache entries at: {self.directory}")
        return True

    def prune(self) -> int:
        return self.cache.expire(retry=True)

    def close(self) -> None:
        self.cache.close()
