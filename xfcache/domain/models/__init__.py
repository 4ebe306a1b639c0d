"""Domain models (value objects) for cache entries and item handles."""
