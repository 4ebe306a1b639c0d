"""Domain Events related to cache lookups and persistence.

Listeners attached to a CacheManager receive these as a diagnostic side
channel, most importantly StorageWriteFailed, which reports values that were
computed but could not be cached.
"""

from dataclasses import dataclass, field
import time
from typing import Optional


@dataclass
class CacheEvent:
    """Base class for cache events."""
    key: str


@dataclass
class CacheHit(CacheEvent):
    """Event triggered when a lookup is served from the store."""
    timestamp: float = field(default_factory=time.time)


@dataclass
class CacheMiss(CacheEvent):
    """Event triggered when the provider is about to run.

    ``early`` is True when a live entry existed but the expiration policy
    chose to recompute it ahead of its hard expiry.
    """
    early: bool = False
    timestamp: float = field(default_factory=time.time)


@dataclass
class ValueComputed(CacheEvent):
    """Event triggered after the provider returned a value."""
    duration_seconds: float = 0.0
    expires_at: Optional[float] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class StorageWriteFailed(CacheEvent):
    """Event triggered when a computed value could not be persisted."""
    error_message: str = ""
    timestamp: float = field(default_factory=time.time)
