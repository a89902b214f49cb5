"""SQLite-backed local store for snapshots, pending writes and overrides."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiosqlite

from ..config import settings
from ..discovery.models import FieldType
from .models import (
    CachedSpreadsheet,
    ColumnOverride,
    MutationKind,
    PendingMutation,
    SheetSnapshot,
    deserialize_snapshot,
    serialize_snapshot,
)

logger = logging.getLogger(__name__)

STORE_SCHEMA_VERSION = 1


def _timestamp(value: datetime) -> str:
    """Fixed-width UTC ISO string, so stored timestamps order lexically."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class LocalStore:
    """Persistent storage backing the snapshot cache and the mutation queue."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = db_path or settings.database_path
        self._connection: Optional[aiosqlite.Connection] = None

    async def initialize(self):
        """Initialize the database and create tables."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(str(self.db_path))
        self._connection.row_factory = aiosqlite.Row

        await self._connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS cached_spreadsheets (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                modified_time TEXT,
                created_at TEXT,
                last_synced_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS sheet_snapshots (
                cache_key TEXT PRIMARY KEY,
                schema_version INTEGER NOT NULL,
                content_hash TEXT NOT NULL,
                remote_change_token TEXT,
                fetched_at TEXT NOT NULL,
                payload TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS pending_mutations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                kind TEXT NOT NULL,
                spreadsheet_id TEXT NOT NULL,
                sheet_name TEXT NOT NULL,
                row_index INTEGER,
                header_row_index INTEGER NOT NULL DEFAULT 0,
                row_payload TEXT NOT NULL,
                created_at TEXT NOT NULL,
                retry_count INTEGER NOT NULL DEFAULT 0,
                last_error TEXT
            );

            CREATE TABLE IF NOT EXISTS column_overrides (
                spreadsheet_id TEXT NOT NULL,
                column_index INTEGER NOT NULL,
                field_type TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (spreadsheet_id, column_index)
            );

            CREATE TABLE IF NOT EXISTS schema_meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_sheet_snapshots_fetched ON sheet_snapshots(fetched_at);
            CREATE INDEX IF NOT EXISTS idx_pending_mutations_created ON pending_mutations(created_at);
            """
        )
        await self._connection.execute(
            "INSERT OR REPLACE INTO schema_meta (key, value) VALUES ('schema_version', ?)",
            (str(STORE_SCHEMA_VERSION),),
        )
        await self._connection.commit()
        logger.info(f"Local store ready at {self.db_path}")

    async def close(self):
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def schema_version(self) -> Optional[int]:
        async with self._connection.execute(
            "SELECT value FROM schema_meta WHERE key = 'schema_version'"
        ) as cursor:
            row = await cursor.fetchone()
        return int(row["value"]) if row else None

    # Snapshot operations
    async def put_snapshot(self, snapshot: SheetSnapshot):
        """Upsert a snapshot by its cache key."""
        await self._connection.execute(
            """
            INSERT OR REPLACE INTO sheet_snapshots
            (cache_key, schema_version, content_hash, remote_change_token, fetched_at, payload)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                snapshot.cache_key,
                snapshot.schema_version,
                snapshot.content_hash,
                snapshot.remote_change_token,
                _timestamp(snapshot.fetched_at),
                serialize_snapshot(snapshot),
            ),
        )
        await self._connection.commit()

    async def get_snapshot(self, cache_key: str) -> Optional[SheetSnapshot]:
        """Get a snapshot by cache key.

        Raises ``SnapshotPayloadError`` (or a pydantic ``ValidationError``) when
        the stored payload cannot be read.
        """
        async with self._connection.execute(
            "SELECT payload FROM sheet_snapshots WHERE cache_key = ?", (cache_key,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return deserialize_snapshot(row["payload"])

    async def delete_snapshot(self, cache_key: str) -> bool:
        cursor = await self._connection.execute(
            "DELETE FROM sheet_snapshots WHERE cache_key = ?", (cache_key,)
        )
        await self._connection.commit()
        return cursor.rowcount > 0

    async def delete_snapshots_older_than(self, cutoff: datetime) -> int:
        """Delete snapshots fetched before ``cutoff``; returns how many went."""
        cursor = await self._connection.execute(
            "DELETE FROM sheet_snapshots WHERE fetched_at < ?", (_timestamp(cutoff),)
        )
        await self._connection.commit()
        return cursor.rowcount

    # Pending mutation operations
    async def insert_mutation(self, mutation: PendingMutation) -> PendingMutation:
        """Insert a mutation and return it with its assigned id."""
        cursor = await self._connection.execute(
            """
            INSERT INTO pending_mutations
            (kind, spreadsheet_id, sheet_name, row_index, header_row_index,
             row_payload, created_at, retry_count, last_error)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                mutation.kind.value,
                mutation.spreadsheet_id,
                mutation.sheet_name,
                mutation.row_index,
                mutation.header_row_index,
                json.dumps(mutation.row_payload),
                _timestamp(mutation.created_at),
                mutation.retry_count,
                mutation.last_error,
            ),
        )
        await self._connection.commit()
        return mutation.model_copy(update={"id": cursor.lastrowid})

    async def list_mutations(self) -> list[PendingMutation]:
        """All pending mutations, oldest first."""
        async with self._connection.execute(
            "SELECT * FROM pending_mutations ORDER BY created_at ASC, id ASC"
        ) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_mutation(row) for row in rows]

    async def get_mutation(self, mutation_id: int) -> Optional[PendingMutation]:
        async with self._connection.execute(
            "SELECT * FROM pending_mutations WHERE id = ?", (mutation_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return self._row_to_mutation(row) if row else None

    async def delete_mutation(self, mutation_id: int) -> bool:
        cursor = await self._connection.execute(
            "DELETE FROM pending_mutations WHERE id = ?", (mutation_id,)
        )
        await self._connection.commit()
        return cursor.rowcount > 0

    async def record_mutation_failure(self, mutation_id: int, error: str):
        """Bump the retry counter and remember the last error."""
        await self._connection.execute(
            """
            UPDATE pending_mutations
            SET retry_count = retry_count + 1, last_error = ?
            WHERE id = ?
            """,
            (error, mutation_id),
        )
        await self._connection.commit()

    async def count_mutations(self) -> int:
        async with self._connection.execute("SELECT COUNT(*) FROM pending_mutations") as cursor:
            row = await cursor.fetchone()
        return row[0]

    # Column override operations
    async def upsert_override(self, override: ColumnOverride) -> ColumnOverride:
        await self._connection.execute(
            """
            INSERT OR REPLACE INTO column_overrides
            (spreadsheet_id, column_index, field_type, updated_at)
            VALUES (?, ?, ?, ?)
            """,
            (
                override.spreadsheet_id,
                override.column_index,
                override.field_type.value,
                _timestamp(override.updated_at),
            ),
        )
        await self._connection.commit()
        return override

    async def get_overrides(self, spreadsheet_id: str) -> list[ColumnOverride]:
        async with self._connection.execute(
            "SELECT * FROM column_overrides WHERE spreadsheet_id = ? ORDER BY column_index",
            (spreadsheet_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [
            ColumnOverride(
                spreadsheet_id=row["spreadsheet_id"],
                column_index=row["column_index"],
                field_type=FieldType(row["field_type"]),
                updated_at=datetime.fromisoformat(row["updated_at"]),
            )
            for row in rows
        ]

    async def delete_override(self, spreadsheet_id: str, column_index: int) -> bool:
        cursor = await self._connection.execute(
            "DELETE FROM column_overrides WHERE spreadsheet_id = ? AND column_index = ?",
            (spreadsheet_id, column_index),
        )
        await self._connection.commit()
        return cursor.rowcount > 0

    # Spreadsheet list operations
    async def replace_spreadsheets(self, spreadsheets: list[CachedSpreadsheet]):
        """Replace the cached spreadsheet list with a fresh one."""
        await self._connection.execute("DELETE FROM cached_spreadsheets")
        await self._connection.executemany(
            """
            INSERT OR REPLACE INTO cached_spreadsheets
            (id, name, modified_time, created_at, last_synced_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            [
                (s.id, s.name, s.modified_time, s.created_at, _timestamp(s.last_synced_at))
                for s in spreadsheets
            ],
        )
        await self._connection.commit()

    async def get_spreadsheets(self) -> list[CachedSpreadsheet]:
        async with self._connection.execute(
            "SELECT * FROM cached_spreadsheets ORDER BY modified_time DESC"
        ) as cursor:
            rows = await cursor.fetchall()
        return [
            CachedSpreadsheet(
                id=row["id"],
                name=row["name"],
                modified_time=row["modified_time"],
                created_at=row["created_at"],
                last_synced_at=datetime.fromisoformat(row["last_synced_at"]),
            )
            for row in rows
        ]

    def _row_to_mutation(self, row) -> PendingMutation:
        return PendingMutation(
            id=row["id"],
            kind=MutationKind(row["kind"]),
            spreadsheet_id=row["spreadsheet_id"],
            sheet_name=row["sheet_name"],
            row_index=row["row_index"],
            header_row_index=row["header_row_index"],
            row_payload=json.loads(row["row_payload"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            retry_count=row["retry_count"],
            last_error=row["last_error"],
        )
