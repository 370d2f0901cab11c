"""Pattern store backends."""

from .base import PatternStore
from .sqlite import SQLitePatternStore

__all__ = ["PatternStore", "SQLitePatternStore"]
