"""Domain Events emitted by the cache manager to attached listeners."""
