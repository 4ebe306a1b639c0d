"""Storage backends implementing the Store interface.

FilesystemStore keeps one file per key; DiskCacheStore uses diskcache.
"""
