"""File-based implementation of the Store interface.

One file per key under ``<directory>/<namespace>/<hash[:2]>/<hash>``, where
hash is the SHA-256 of the key, so raw keys never reach the file system.

Record layout::

    <expires_at or "never">\\n
    <created_at>\\n
    <compute_duration>\\n
    <percent-escaped key>\\n
    <pickled value>

The header is plain text so ``prune`` can decide liveness without unpickling
the value. ``exists`` goes through ``read`` and agrees with it exactly.

Writes go to a uniquely named temp file in the same shard directory and are
moved into place with ``os.replace``, so readers see the old record or the new
one and a crash mid-write leaves at most an orphaned temp file behind.
"""

import hashlib
import logging
import os
import pickle
import re
import shutil
import tempfile
import time
from pathlib import Path
from typing import Callable, Optional, Tuple, Union
from urllib.parse import quote, unquote

from xfcache.domain.errors import StorageWriteError
from xfcache.domain.models.common import Namespace
from xfcache.domain.models.entry import MISS, Entry, Hit, Lookup

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = Path.home() / ".xfcache" / "store"
DEFAULT_TMP_GRACE_SECONDS = 5 * 60  # Temp files older than this are considered orphaned
NEVER_EXPIRES = b"never"
TMP_SUFFIX = ".tmp"
HEADER_LINES = 4

_NAMESPACE_PATTERN = re.compile(r"^[-+_.A-Za-z0-9]*$")

# Errors that mean "this record cannot be trusted", never raised to callers.
_CORRUPTION_ERRORS = (
    pickle.UnpicklingError,
    EOFError,
    AttributeError,
    ImportError,
    IndexError,
    TypeError,
    ValueError,
    UnicodeDecodeError,
)

Header = Tuple[Optional[float], float, float, str]


class FilesystemStore:
    """Durable key -> Entry store backed by one file per key."""

    def __init__(
        self,
        directory: Union[str, Path] = DEFAULT_CACHE_DIR,
        namespace: Namespace = Namespace(""),
        tmp_grace: float = DEFAULT_TMP_GRACE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """Initializes the store and creates its directory.

        Args:
            directory: Storage root. Temp files are created under it, so it
                must live on a single volume.
            namespace: Optional subdirectory isolating this cache.
            tmp_grace: Age in seconds after which prune() removes temp files.
            clock: Source of unix time used for hard-expiry checks.
        """
        if not _NAMESPACE_PATTERN.match(namespace):
            raise ValueError(f"Namespace '{namespace}' may only contain letters, digits and -+_.")
        root = Path(directory)
        self.directory = root / namespace if namespace else root
        self.namespace = namespace
        self.tmp_grace = tmp_grace
        self._clock = clock
        self._setup_dir()
        logger.info(f"FilesystemStore initialized at {self.directory}")

    def _setup_dir(self) -> None:
        """Creates the cache directory if it doesn't exist."""
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create cache directory {self.directory}: {e}")
            raise

    def _path_for(self, key: str) -> Path:
        hashed_key = hashlib.sha256(key.encode("utf-8")).hexdigest()
        # Subdirectories avoid too many files in one folder
        return self.directory / hashed_key[:2] / hashed_key

    # --- Store Interface Implementation ---

    def read(self, key: str) -> Lookup:
        path = self._path_for(key)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return MISS
        except OSError as e:
            logger.warning(f"Failed to read cache file {path}: {e}. Treating as miss.")
            return MISS

        try:
            head, payload = _split_record(data)
            expires_at, created_at, duration, stored_key = _parse_header(head)
            if stored_key != key:
                logger.debug(f"Cache file {path} belongs to another key, treating as miss.")
                return MISS
            entry = Entry(value=None, created_at=created_at, expires_at=expires_at, compute_duration=duration)
            if entry.is_expired(self._clock()):
                logger.debug(f"Cache entry expired for key: {key}")
                return MISS
            value = pickle.loads(payload)
        except _CORRUPTION_ERRORS as e:
            logger.warning(f"Corrupted cache file {path} for key '{key}': {e!r}. Treating as miss.")
            return MISS

        return Hit(Entry(value=value, created_at=created_at, expires_at=expires_at, compute_duration=duration))

    def write(self, key: str, entry: Entry) -> None:
        path = self._path_for(key)
        try:
            payload = pickle.dumps(entry.value, protocol=pickle.HIGHEST_PROTOCOL)
        except (pickle.PicklingError, TypeError, AttributeError, RecursionError) as e:
            raise StorageWriteError(key, f"value is not serializable: {e}") from e
        data = _format_header(key, entry) + payload

        temp_path = None
        try:
            fd, temp_path = _make_temp_file(path)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, path)
            temp_path = None
            logger.debug(f"Stored cache entry: key={key}, file={path}")
        except OSError as e:
            logger.error(f"Failed to write cache file {path}: {e}")
            raise StorageWriteError(key, str(e)) from e
        finally:
            if temp_path is not None:
                try:
                    temp_path.unlink(missing_ok=True)
                except OSError as cleanup_err:
                    logger.warning(f"Failed to remove temp file {temp_path}: {cleanup_err}")

    def delete(self, key: str) -> bool:
        path = self._path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to delete cache file {path}: {e}")
            return False
        logger.debug(f"Deleted cache entry: key={key}, file={path}")
        self._remove_empty_shard(path.parent)
        return True

    def exists(self, key: str) -> bool:
        return self.read(key) is not MISS

    def clear(self) -> bool:
        if self.directory.exists():
            shutil.rmtree(self.directory, ignore_errors=True)
        self._setup_dir()
        cleared = not any(self.directory.iterdir())
        logger.info(f"Cleared file cache at: {self.directory} (complete={cleared})")
        return cleared

    def prune(self) -> int:
        now = self._clock()
        removed = 0
        for path in self.directory.glob("*/*"):
            if not path.is_file():
                continue
            if path.name.endswith(TMP_SUFFIX):
                stale = _file_age(path, now) > self.tmp_grace
            else:
                stale = self._record_is_dead(path, now)
            if stale:
                try:
                    path.unlink(missing_ok=True)
                    removed += 1
                except OSError as e:
                    logger.warning(f"Failed to prune cache file {path}: {e}")
        for shard in self.directory.iterdir():
            if shard.is_dir():
                self._remove_empty_shard(shard)
        logger.debug(f"Pruned {removed} files from {self.directory}")
        return removed

    # --- Helpers ---

    def _record_is_dead(self, path: Path, now: float) -> bool:
        try:
            with open(path, "rb") as f:
                lines = [f.readline() for _ in range(HEADER_LINES)]
            expires_at, created_at, _, _ = _parse_header(lines)
        except FileNotFoundError:
            return False
        except (OSError,) + _CORRUPTION_ERRORS:
            return True
        return _header_expired(expires_at, created_at, now)

    def _remove_empty_shard(self, shard: Path) -> None:
        try:
            if shard != self.directory and not any(shard.iterdir()):
                shard.rmdir()
        except OSError:
            pass  # A concurrent writer just used it, or it is already gone


def _make_temp_file(path: Path) -> Tuple[int, Path]:
    """Creates a unique temp file next to path, recreating the shard if a concurrent delete removed it."""
    prefix = f".{path.name}."
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=prefix, suffix=TMP_SUFFIX)
    except FileNotFoundError:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=prefix, suffix=TMP_SUFFIX)
    return fd, Path(temp_name)


def _format_header(key: str, entry: Entry) -> bytes:
    expires = NEVER_EXPIRES if entry.expires_at is None else repr(float(entry.expires_at)).encode("ascii")
    return b"\n".join([
        expires,
        repr(float(entry.created_at)).encode("ascii"),
        repr(float(entry.compute_duration)).encode("ascii"),
        quote(key, safe="").encode("ascii"),
        b"",
    ])


def _split_record(data: bytes):
    parts = data.split(b"\n", HEADER_LINES)
    if len(parts) != HEADER_LINES + 1:
        raise ValueError("truncated header")
    return parts[:HEADER_LINES], parts[HEADER_LINES]


def _parse_header(lines) -> Header:
    if len(lines) != HEADER_LINES:
        raise ValueError("truncated header")
    raw_expires, raw_created, raw_duration, raw_key = (line.rstrip(b"\n") for line in lines)
    if not raw_key:
        raise ValueError("missing key")
    expires_at = None if raw_expires == NEVER_EXPIRES else float(raw_expires)
    created_at = float(raw_created)
    duration = float(raw_duration)
    return expires_at, created_at, duration, unquote(raw_key.decode("ascii"), errors="strict")


def _header_expired(expires_at: Optional[float], created_at: float, now: float) -> bool:
    return Entry(value=None, created_at=created_at, expires_at=expires_at).is_expired(now)


def _file_age(path: Path, now: float) -> float:
    try:
        return now - path.stat().st_mtime
    except OSError:
        return 0.0
