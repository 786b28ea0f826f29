"""Durable, mergeable progress records and the stores that hold them."""

from .memory_store import InMemoryProgressStore
from .merge import apply_update, enforce_unlock_invariant, merge_records
from .models import ActivityScore, ProgressRecord, ProgressUpdate
from .protocols import ProgressStore, ReportingProgressStore


__all__ = [
    "ActivityScore",
    "InMemoryProgressStore",
    "ProgressRecord",
    "ProgressStore",
    "ProgressUpdate",
    "ReportingProgressStore",
    "apply_update",
    "enforce_unlock_invariant",
    "merge_records",
]
