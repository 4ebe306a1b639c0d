"""Item objects exchanged with cache callers.

CacheItem is the mutable handle a provider receives on a miss; it lets the
provider declare how long its result stays valid. ItemView is the read-only
snapshot returned by ``CacheManager.get_item``.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Optional, Union

from xfcache.domain.models.entry import MISS, Entry, Lookup

logger = logging.getLogger(__name__)

Duration = Union[int, float, timedelta, None]

_UNSET = object()


class CacheItem:
    """Mutable handle passed to providers.

    ``value`` and ``is_hit`` describe the previous entry for the key, if one
    was found (it may have been early-expired by the policy).
    """

    def __init__(self, key: str, previous: Lookup = MISS):
        self.key = key
        self._previous = previous
        self._expiry: Any = _UNSET   # _UNSET, None (never), or a relative/absolute marker

    @property
    def is_hit(self) -> bool:
        return previous_entry(self._previous) is not None

    @property
    def value(self) -> Any:
        entry = previous_entry(self._previous)
        return entry.value if entry is not None else None

    def expires_after(self, duration: Duration) -> "CacheItem":
        """Sets the lifetime of the value being computed.

        Args:
            duration: Seconds (int/float), a timedelta, or None for never expires.
                Non-positive or malformed durations make the value expire
                immediately.
        """
        if duration is None:
            self._expiry = None
            return self
        if isinstance(duration, timedelta):
            seconds = duration.total_seconds()
        elif isinstance(duration, (int, float)) and not isinstance(duration, bool):
            seconds = float(duration)
        else:
            logger.warning(f"Invalid expiration duration {duration!r} for key '{self.key}', expiring immediately.")
            return self._expire_now()

        if math.isnan(seconds) or seconds <= 0:
            logger.warning(f"Non-positive expiration duration {duration!r} for key '{self.key}', expiring immediately.")
            return self._expire_now()

        self._expiry = ("after", seconds)
        return self

    def expires_at(self, when: Optional[datetime]) -> "CacheItem":
        """Sets an absolute expiry time (None means never expires)."""
        if when is None:
            self._expiry = None
            return self
        if not isinstance(when, datetime):
            logger.warning(f"Invalid expiration time {when!r} for key '{self.key}', expiring immediately.")
            return self._expire_now()
        self._expiry = ("at", when.timestamp())
        return self

    def _expire_now(self) -> "CacheItem":
        self._expiry = ("after", 0.0)
        return self

    @property
    def expiration_declared(self) -> bool:
        return self._expiry is not _UNSET

    def resolve_expiry(self, created_at: float, default_lifetime: Optional[float]) -> Optional[float]:
        """Turns the declared lifetime into an absolute expiry timestamp.

        Falls back to ``default_lifetime`` (None = never) when the provider did
        not declare one. An absolute time at or before ``created_at`` yields an
        entry that is already expired.
        """
        expiry = self._expiry
        if expiry is _UNSET:
            if default_lifetime is None:
                return None
            return created_at + default_lifetime
        if expiry is None:
            return None
        kind, amount = expiry
        if kind == "after":
            return created_at + amount
        return amount


class ItemView:
    """Read-only view of a key as seen under hard expiry only."""

    def __init__(self, key: str, lookup: Lookup):
        self.key = key
        self._entry = previous_entry(lookup)

    def is_hit(self) -> bool:
        return self._entry is not None

    def get(self) -> Any:
        """Returns the cached value, or None when the item is not a hit.

        None is also a legitimate cached value; use is_hit() to tell them apart.
        """
        return self._entry.value if self._entry is not None else None

    @property
    def created_at(self) -> Optional[datetime]:
        return datetime.fromtimestamp(self._entry.created_at) if self._entry else None

    @property
    def expires_at(self) -> Optional[datetime]:
        if self._entry is None or self._entry.expires_at is None:
            return None
        return datetime.fromtimestamp(self._entry.expires_at)

    def __repr__(self) -> str:
        return f"ItemView(key={self.key!r}, hit={self.is_hit()})"


def previous_entry(lookup: Lookup) -> Optional[Entry]:
    """Unwraps a lookup result to its Entry, or None for a miss."""
    if lookup is MISS or lookup is None:
        return None
    return lookup.entry
