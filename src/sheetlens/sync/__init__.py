"""Offline cache, durable write queue and conflict detection."""

from .cache import SheetSnapshotCache, content_hash
from .conflict import ConflictCheck, ConflictGuard, ConflictResolution
from .connectivity import ConnectivityMonitor
from .queue import DrainReport, DrainStatus, MutationQueue
from .scheduler import DrainScheduler

__all__ = [
    "SheetSnapshotCache",
    "content_hash",
    "ConflictCheck",
    "ConflictGuard",
    "ConflictResolution",
    "ConnectivityMonitor",
    "DrainReport",
    "DrainStatus",
    "MutationQueue",
    "DrainScheduler",
]
