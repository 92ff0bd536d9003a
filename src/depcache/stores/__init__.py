"""
Store backends for the cache facade.
"""

from .base import Store, normalize_ttl
from .memory import MemoryStore
from .sqlite import SQLiteStore

__all__ = ['Store', 'normalize_ttl', 'MemoryStore', 'SQLiteStore']
