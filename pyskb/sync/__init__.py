"""Sync engine for PySKB - timestamp based reconciliation of tracked files."""

from .comparator import (
    FileComparator,
    FileStatus,
    SyncDecision,
    SyncDirection,
    SyncVerdict,
    compare_timestamps,
)
from .engine import SyncEngine
from .operations import SyncOperations
from .scanner import LocalFileState

__all__ = [
    "SyncEngine",
    "SyncOperations",
    "FileComparator",
    "FileStatus",
    "SyncDecision",
    "SyncDirection",
    "SyncVerdict",
    "compare_timestamps",
    "LocalFileState",
]
