"""Defines common Value Objects used across the cache contexts.

These objects represent simple values like cache keys and timestamps,
ensuring consistency and type safety.
"""

from typing import NewType

# === Caching Context ===
CacheKey = NewType("CacheKey", str)            # Opaque, exact-match key chosen by the caller
Namespace = NewType("Namespace", str)          # Prefix isolating one cache from another in a shared root

# === Time ===
Timestamp = NewType("Timestamp", float)        # Unix time in seconds
Seconds = NewType("Seconds", float)            # A duration in seconds

# Characters a key must not contain. Keeps keys portable across backends.
RESERVED_KEY_CHARACTERS = "{}()/\\@:"
