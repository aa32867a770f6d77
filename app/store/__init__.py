from .base import ProfileStore
from .filters import matches_filter
from .memory_store import MemoryProfileStore
from .sqlite_store import SqliteProfileStore

__all__ = ["ProfileStore", "MemoryProfileStore", "SqliteProfileStore", "matches_filter"]
