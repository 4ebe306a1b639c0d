"""Cache entry record and the tagged lookup result returned by stores.

An Entry is created from a successful provider call and replaced wholesale on
recomputation. Stores return ``Hit(entry)`` or ``MISS`` so that a cached
``None`` can never be confused with an absent key.
"""

import math
from dataclasses import dataclass
from typing import Any, Optional, Union

from .common import Seconds, Timestamp


@dataclass(frozen=True)
class Entry:
    """Internal representation of a cached value with its expiry metadata."""
    value: Any
    created_at: Timestamp           # Unix timestamp when the value was computed
    expires_at: Optional[Timestamp] # Unix timestamp of hard expiry, None = never expires
    compute_duration: Seconds = 0.0 # Seconds spent in the provider, 0.0 if unknown

    @property
    def never_expires(self) -> bool:
        return self.expires_at is None

    def is_expired(self, now: float) -> bool:
        """Checks hard expiry.

        A non-positive window between creation and expiry (or a NaN expiry)
        counts as already expired.
        """
        if self.expires_at is None:
            return False
        if math.isnan(self.expires_at) or self.expires_at <= self.created_at:
            return True
        return now >= self.expires_at


@dataclass(frozen=True)
class Hit:
    """A store lookup that found a live entry."""
    entry: Entry


class _Miss:
    """Singleton marker for a store lookup that found nothing usable."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISS"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self):
        return (_Miss, ())


MISS = _Miss()

Lookup = Union[Hit, _Miss]
