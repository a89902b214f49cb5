"""Local persistence layer for SheetLens."""

from .store import LocalStore
from .models import (
    CachedSpreadsheet,
    ColumnOverride,
    MutationKind,
    PendingMutation,
    SheetSnapshot,
    make_cache_key,
)

__all__ = [
    "LocalStore",
    "CachedSpreadsheet",
    "ColumnOverride",
    "MutationKind",
    "PendingMutation",
    "SheetSnapshot",
    "make_cache_key",
]
