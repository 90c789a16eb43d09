"""Content cache backends keyed by blob hash."""

from .cache import ContentCache, FileCache, MemoryCache

__all__ = ["ContentCache", "FileCache", "MemoryCache"]
