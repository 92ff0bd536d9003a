"""
depcache
Caching facade with key normalization and dependency-based invalidation.
"""

from .cache import Cache, DependentEntry
from .dependencies import (
    CallbackDependency,
    ChainedDependency,
    DataDependency,
    Dependency,
    FileDependency,
    HttpDependency,
    PeriodDependency,
    SqlDependency,
    TagDependency,
)
from .git_state import GitDependency
from .key_builder import KeyNormalizationError, build_key
from .stores import MemoryStore, SQLiteStore, Store

__all__ = [
    'Cache',
    'DependentEntry',
    'build_key',
    'KeyNormalizationError',
    'Dependency',
    'DataDependency',
    'CallbackDependency',
    'ChainedDependency',
    'FileDependency',
    'GitDependency',
    'HttpDependency',
    'PeriodDependency',
    'SqlDependency',
    'TagDependency',
    'Store',
    'MemoryStore',
    'SQLiteStore',
]
