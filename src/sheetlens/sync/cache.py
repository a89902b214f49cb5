"""Snapshot cache with a staleness oracle."""

import asyncio
import hashlib
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Optional, Sequence

from ..config import settings
from ..storage.models import SheetSnapshot
from ..storage.store import LocalStore

logger = logging.getLogger(__name__)


def content_hash(
    headers: Sequence[str],
    data_rows: Sequence[Sequence[Any]],
    formula_rows: Sequence[Sequence[Optional[str]]],
) -> str:
    """Stable hash of the sheet's content.

    Formatting-only edits change the remote token but not this hash, so
    callers can tell whether the data itself moved.
    """
    body = json.dumps(
        {
            "headers": list(headers),
            "rows": [[None if cell is None else str(cell) for cell in row] for row in data_rows],
            "formulas": [list(row) for row in formula_rows],
        },
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


class SheetSnapshotCache:
    """Serves the last good snapshot and decides when a refetch is needed.

    ``get`` never raises: unreadable entries and storage failures read as a
    miss. Read-decide-write sequences for one key are serialized with
    ``lock_for``.
    """

    def __init__(
        self,
        store: LocalStore,
        max_age_seconds: Optional[int] = None,
        purge_age_hours: Optional[int] = None,
    ):
        self.store = store
        self.max_age = timedelta(
            seconds=max_age_seconds if max_age_seconds is not None else settings.cache_max_age_seconds
        )
        self.purge_age = timedelta(
            hours=purge_age_hours if purge_age_hours is not None else settings.cache_purge_age_hours
        )
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def lock_for(self, cache_key: str) -> AsyncIterator[None]:
        """Hold the per-key lock; the entry is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(cache_key, asyncio.Lock())
        self._lock_users[cache_key] = self._lock_users.get(cache_key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[cache_key] -= 1
            if not self._lock_users[cache_key]:
                del self._lock_users[cache_key]
                del self._locks[cache_key]

    def is_fresh(
        self,
        cached: SheetSnapshot,
        remote_change_token: Optional[str],
        now: Optional[datetime] = None,
    ) -> bool:
        """True iff the token is unchanged and the snapshot is younger than max age."""
        now = now or datetime.now(timezone.utc)
        fetched_at = cached.fetched_at
        if fetched_at.tzinfo is None:
            fetched_at = fetched_at.replace(tzinfo=timezone.utc)
        return cached.remote_change_token == remote_change_token and now - fetched_at < self.max_age

    async def get(self, cache_key: str) -> Optional[SheetSnapshot]:
        try:
            snapshot = await self.store.get_snapshot(cache_key)
        except Exception as e:
            logger.warning(f"Discarding unreadable snapshot {cache_key}: {e}")
            return None
        if snapshot is not None:
            logger.debug(f"Snapshot cache hit for {cache_key}")
        return snapshot

    async def put(self, snapshot: SheetSnapshot) -> SheetSnapshot:
        """Upsert a snapshot, purging entries older than the purge age first."""
        if not snapshot.content_hash:
            snapshot = snapshot.model_copy(
                update={
                    "content_hash": content_hash(
                        snapshot.headers, snapshot.data_rows, snapshot.formula_rows
                    )
                }
            )
        cutoff = datetime.now(timezone.utc) - self.purge_age
        purged = await self.store.delete_snapshots_older_than(cutoff)
        if purged:
            logger.info(f"Purged {purged} snapshot(s) older than {self.purge_age}")
        await self.store.put_snapshot(snapshot)
        logger.info(f"Cached snapshot {snapshot.cache_key} ({len(snapshot.data_rows)} rows)")
        return snapshot

    async def invalidate(self, cache_key: str) -> bool:
        return await self.store.delete_snapshot(cache_key)
