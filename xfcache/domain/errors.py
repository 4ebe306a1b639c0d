"""xfcache exception hierarchy.

All custom exceptions inherit from CacheError so callers can catch a single
base type. Provider exceptions are never wrapped: they reach the caller of
``CacheManager.get`` exactly as the provider raised them.

Corrupt records and invalid expiry durations are absorbed by the cache layer
(logged, then treated as a miss or as immediate expiry) and have no exception
class here.
"""

from typing import Any


class CacheError(Exception):
    """Base exception for all xfcache errors."""


class ConfigurationError(CacheError, ValueError):
    """Raised when cache settings are invalid or cannot be loaded."""


class InvalidKeyError(CacheError, ValueError):
    """Raised when a cache key is empty, not a string, or has reserved characters."""


class InvalidBetaError(CacheError, ValueError):
    """Raised when beta is negative or not a number."""


_NO_VALUE = object()


class StorageWriteError(CacheError, OSError):
    """Raised when a store fails to persist an entry.

    When raised from ``CacheManager.get`` in strict mode, ``value`` holds the
    freshly computed value that could not be cached.
    """

    def __init__(self, key: str, message: str, value: Any = _NO_VALUE):
        super().__init__(f"Failed to persist cache key '{key}': {message}")
        self.key = key
        self.reason = message
        self._value = value

    @property
    def has_value(self) -> bool:
        return self._value is not _NO_VALUE

    @property
    def value(self) -> Any:
        if self._value is _NO_VALUE:
            raise AttributeError("No computed value is attached to this error")
        return self._value
