"""
Cache package for durable blob persistence.

This package provides interchangeable BlobStore backends:
- SQLite store (sqlite_store.py): transactional, one table per container
- File store (file_store.py): one file per key, atomic rename on write
- Memory store (memory_store.py): dict-backed, for tests and embedding
"""

from mcache.cache.base import BlobStore
from mcache.cache.file_store import FileBlobStore
from mcache.cache.memory_store import MemoryBlobStore
from mcache.cache.sqlite_store import SQLiteBlobStore

__all__ = ["BlobStore", "FileBlobStore", "MemoryBlobStore", "SQLiteBlobStore"]
