"""Offline-first access to spreadsheets.

The repository ties the pieces together:

- Read path: remote rows and metadata -> structure discovery -> snapshot
  cache. Offline, or when the remote fetch fails, the last good snapshot is
  served instead.
- Write path: a row write is attempted remotely; a transient failure puts it
  in the durable mutation queue, which a background job drains later.
- Edit-commit path: the row must be a loaded data row, not a separator, and
  the conflict guard runs before the remote write. Deletes follow the same
  checks but are never queued.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional, Sequence

import aiosqlite
from pydantic import BaseModel

from .config import settings
from .discovery.models import FieldType
from .discovery.structure import discover
from .discovery.types import infer_field_types
from .sheet import SheetData
from .sheets.client import GoogleSheetsClient
from .sheets.errors import CacheUnavailableError, classify_error
from .sheets.models import SheetTab, SpreadsheetInfo, WriteResult
from .storage.models import (
    CachedSpreadsheet,
    ColumnOverride,
    MutationKind,
    PendingMutation,
    SheetSnapshot,
    make_cache_key,
)
from .storage.store import LocalStore
from .sync.cache import SheetSnapshotCache, content_hash
from .sync.conflict import ConflictCheck, ConflictGuard
from .sync.connectivity import ConnectivityMonitor
from .sync.queue import DrainReport, MutationQueue
from .sync.scheduler import DrainScheduler

logger = logging.getLogger(__name__)

QUEUED_MESSAGE = "Saved offline. Your change will sync when the connection is back."


class WriteStatus(str, Enum):
    APPLIED = "applied"
    QUEUED = "queued"


class WriteOutcome(BaseModel):
    """Result of a row write: applied remotely, or queued for replay."""

    status: WriteStatus
    result: Optional[WriteResult] = None
    mutation_id: Optional[int] = None
    message: Optional[str] = None


class EditStatus(str, Enum):
    SAVED = "saved"
    QUEUED = "queued"
    CONFLICT = "conflict"
    DELETED = "deleted"


class EditOutcome(BaseModel):
    """Result of committing a row edit or delete."""

    status: EditStatus
    write: Optional[WriteOutcome] = None
    conflict: Optional[ConflictCheck] = None


def with_audit(row: Sequence[Optional[object]], audit: Optional[tuple[str, str]] = None) -> list[Optional[str]]:
    """String payload for a row, with a trailing ``"user | timestamp"`` cell when audited."""
    payload = [None if value is None else str(value) for value in row]
    if audit is not None:
        user, timestamp = audit
        payload.append(f"{user} | {timestamp}")
    return payload


class SpreadsheetRepository:
    """Read, write and edit spreadsheets with an offline fallback."""

    def __init__(
        self,
        sheets_client: Optional[GoogleSheetsClient] = None,
        store: Optional[LocalStore] = None,
        connectivity: Optional[ConnectivityMonitor] = None,
        cache: Optional[SheetSnapshotCache] = None,
        queue: Optional[MutationQueue] = None,
        conflict_guard: Optional[ConflictGuard] = None,
        scheduler: Optional[DrainScheduler] = None,
    ):
        self.sheets_client = sheets_client or GoogleSheetsClient()
        self.store = store or LocalStore()
        self.connectivity = connectivity or ConnectivityMonitor()
        self.cache = cache or SheetSnapshotCache(self.store)
        self.queue = queue or MutationQueue(self.store, self.sheets_client)
        self.conflict_guard = conflict_guard or ConflictGuard(self.sheets_client)
        self.scheduler = scheduler or DrainScheduler(self.queue.drain_once, self.connectivity)
        self.queue.attach_scheduler(self.scheduler)

    async def initialize(self):
        """Open the store and resume draining anything left from a previous run."""
        await self.store.initialize()
        pending = await self.queue.count()
        if pending:
            logger.info(f"{pending} pending mutation(s) found at startup")
            self.scheduler.request_drain()

    async def shutdown(self):
        await self.scheduler.shutdown()
        await self.store.close()

    # Read path

    async def list_spreadsheets(self) -> list[SpreadsheetInfo]:
        """Spreadsheets of the user, from Drive or the last cached list."""
        if not await self.connectivity.is_online():
            return await self._cached_spreadsheets(CacheUnavailableError())

        try:
            spreadsheets = await asyncio.to_thread(self.sheets_client.list_spreadsheets)
        except Exception as e:
            error = classify_error(e)
            logger.warning(f"Listing spreadsheets failed, trying cache: {error.user_message}")
            return await self._cached_spreadsheets(error)

        await self.store.replace_spreadsheets(
            [
                CachedSpreadsheet(
                    id=s.id,
                    name=s.name,
                    modified_time=s.modified_time,
                    created_at=s.created_time,
                )
                for s in spreadsheets
            ]
        )
        return spreadsheets

    async def _cached_spreadsheets(self, error: Exception) -> list[SpreadsheetInfo]:
        cached = await self.store.get_spreadsheets()
        if not cached:
            raise error
        return [
            SpreadsheetInfo(
                id=s.id, name=s.name, modified_time=s.modified_time, created_time=s.created_at
            )
            for s in cached
        ]

    async def list_sheet_tabs(self, spreadsheet_id: str) -> list[SheetTab]:
        """Tabs of a spreadsheet. Needs the network; failures raise classified."""
        try:
            return await asyncio.to_thread(self.sheets_client.list_sheet_tabs, spreadsheet_id)
        except Exception as e:
            error = classify_error(e)
            logger.warning(f"Listing tabs of {spreadsheet_id} failed: {error.user_message}")
            if error is e:
                raise
            raise error from e

    async def get_sheet_data(self, spreadsheet_id: str, sheet_name: str) -> SheetData:
        """Freshest available view of a sheet tab.

        Raises:
            CacheUnavailableError: offline with nothing cached.
            SheetsError: the remote fetch failed and nothing is cached.
        """
        cache_key = make_cache_key(spreadsheet_id, sheet_name)
        async with self.cache.lock_for(cache_key):
            cached = await self.cache.get(cache_key)

            if not await self.connectivity.is_online():
                if cached is not None:
                    logger.debug(f"Offline: serving cached {cache_key}")
                    return SheetData.from_snapshot(cached, from_cache=True)
                raise CacheUnavailableError()

            token = await self._change_token(spreadsheet_id)
            if cached is not None and self.cache.is_fresh(cached, token):
                logger.debug(f"Cached {cache_key} is fresh")
                return SheetData.from_snapshot(cached, from_cache=True)

            if token is None and cached is not None:
                token = cached.remote_change_token

            try:
                snapshot = await self._fetch_snapshot(spreadsheet_id, sheet_name, token)
            except Exception as e:
                error = classify_error(e)
                if cached is not None:
                    logger.warning(f"Fetch of {cache_key} failed, serving cache: {error.user_message}")
                    return SheetData.from_snapshot(cached, from_cache=True)
                logger.error(f"Fetch of {cache_key} failed: {error.raw_message or error.user_message}")
                if error is e:
                    raise
                raise error from e

            try:
                snapshot = await self.cache.put(snapshot)
            except aiosqlite.Error as e:
                logger.warning(f"Could not cache {cache_key}: {e}")
            return SheetData.from_snapshot(snapshot)

    async def _change_token(self, spreadsheet_id: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(self.sheets_client.fetch_change_token, spreadsheet_id)
        except Exception as e:
            logger.warning(f"Change token unavailable for {spreadsheet_id}: {e}")
            return None

    async def _fetch_snapshot(
        self, spreadsheet_id: str, sheet_name: str, change_token: Optional[str]
    ) -> SheetSnapshot:
        values = await asyncio.to_thread(self.sheets_client.fetch_values, spreadsheet_id, sheet_name)
        formulas = await asyncio.to_thread(self.sheets_client.fetch_formulas, spreadsheet_id, sheet_name)
        metadata = await asyncio.to_thread(self.sheets_client.fetch_metadata, spreadsheet_id, sheet_name)

        discovery = discover(values, metadata.merge_ranges, scan_rows=settings.header_scan_rows)
        data_formula_rows = formulas[discovery.header_row_index + 1:]

        return SheetSnapshot(
            cache_key=make_cache_key(spreadsheet_id, sheet_name),
            spreadsheet_id=spreadsheet_id,
            sheet_name=sheet_name,
            content_hash=content_hash(discovery.headers, discovery.data_rows, data_formula_rows),
            headers=discovery.headers,
            data_rows=discovery.data_rows,
            formula_rows=data_formula_rows,
            merge_ranges=metadata.merge_ranges,
            column_validations=metadata.column_validations,
            remote_change_token=change_token,
            is_structured_table=metadata.is_structured_table,
            header_row_index=discovery.header_row_index,
            separator_indices=discovery.separator_indices,
        )

    # Type inference

    async def infer_field_types(self, sheet: SheetData, row_index: Optional[int] = None) -> list[FieldType]:
        """One FieldType per header.

        The first data row is the sample. Formulas come from the row being
        edited when ``row_index`` is given, otherwise from the sample row.
        Overrides are spreadsheet-wide and apply to every tab.
        """
        overrides = {
            override.column_index: override.field_type
            for override in await self.store.get_overrides(sheet.spreadsheet_id)
        }

        sample_index = next(
            (i for i in range(len(sheet.rows)) if i not in sheet.separator_indices), None
        )
        sample = sheet.rows[sample_index] if sample_index is not None else []

        formula_index = row_index if row_index is not None else sample_index
        formula_row = None
        if formula_index is not None and formula_index < len(sheet.formula_rows):
            formula_row = sheet.formula_rows[formula_index]

        return infer_field_types(sheet.headers, sample, formula_row, overrides)[: len(sheet.headers)]

    async def set_column_override(
        self, spreadsheet_id: str, column_index: int, field_type: FieldType
    ) -> ColumnOverride:
        override = await self.store.upsert_override(
            ColumnOverride(
                spreadsheet_id=spreadsheet_id, column_index=column_index, field_type=field_type
            )
        )
        logger.info(f"Column {column_index} of {spreadsheet_id} set to {field_type.value}")
        return override

    async def get_column_overrides(self, spreadsheet_id: str) -> list[ColumnOverride]:
        return await self.store.get_overrides(spreadsheet_id)

    async def delete_column_override(self, spreadsheet_id: str, column_index: int) -> bool:
        return await self.store.delete_override(spreadsheet_id, column_index)

    # Write path

    async def append_row(
        self,
        spreadsheet_id: str,
        sheet_name: str,
        row: Sequence[Optional[object]],
        audit: Optional[tuple[str, str]] = None,
    ) -> WriteOutcome:
        """Append a row; transient failures are queued, anything else raises."""
        payload = with_audit(row, audit)
        try:
            result = await asyncio.to_thread(
                self.sheets_client.append_row, spreadsheet_id, sheet_name, payload
            )
        except Exception as e:
            return await self._queue_or_raise(
                e,
                PendingMutation(
                    kind=MutationKind.APPEND,
                    spreadsheet_id=spreadsheet_id,
                    sheet_name=sheet_name,
                    row_payload=payload,
                ),
            )
        return WriteOutcome(status=WriteStatus.APPLIED, result=result)

    async def update_row(
        self,
        spreadsheet_id: str,
        sheet_name: str,
        row_index: int,
        row: Sequence[Optional[object]],
        audit: Optional[tuple[str, str]] = None,
    ) -> WriteOutcome:
        """Overwrite data row ``row_index``; transient failures are queued.

        The header offset and merges come from the loaded sheet, never from
        the caller.

        Raises:
            ValueError: the row is negative, past the loaded rows, or a separator.
        """
        layout = await self._editable_layout(spreadsheet_id, sheet_name, row_index)
        return await self._write_row(layout, row_index, row, audit)

    async def _editable_layout(self, spreadsheet_id: str, sheet_name: str, row_index: int) -> SheetData:
        """The loaded sheet, after checking ``row_index`` names a writable data row."""
        if row_index < 0:
            raise ValueError(f"Row index must be non-negative, got {row_index}")

        cached = await self.cache.get(make_cache_key(spreadsheet_id, sheet_name))
        if cached is not None:
            layout = SheetData.from_snapshot(cached, from_cache=True)
        else:
            layout = await self.get_sheet_data(spreadsheet_id, sheet_name)

        if row_index in layout.separator_indices:
            raise ValueError(f"Row {row_index} is a separator row and cannot be changed")
        if row_index >= len(layout.rows):
            raise ValueError(f"Row {row_index} is past the {len(layout.rows)} loaded data row(s)")
        return layout

    async def _write_row(
        self,
        layout: SheetData,
        row_index: int,
        row: Sequence[Optional[object]],
        audit: Optional[tuple[str, str]],
    ) -> WriteOutcome:
        payload = with_audit(row, audit)
        try:
            result = await asyncio.to_thread(
                self.sheets_client.update_row,
                layout.spreadsheet_id,
                layout.sheet_name,
                row_index,
                payload,
                layout.header_row_index,
                layout.merge_ranges,
            )
        except Exception as e:
            return await self._queue_or_raise(
                e,
                PendingMutation(
                    kind=MutationKind.UPDATE,
                    spreadsheet_id=layout.spreadsheet_id,
                    sheet_name=layout.sheet_name,
                    row_index=row_index,
                    header_row_index=layout.header_row_index,
                    row_payload=payload,
                ),
            )
        return WriteOutcome(status=WriteStatus.APPLIED, result=result)

    async def _queue_or_raise(self, exc: Exception, mutation: PendingMutation) -> WriteOutcome:
        error = classify_error(exc)
        if not error.is_transient:
            if error is exc:
                raise error
            raise error from exc
        logger.warning(f"{mutation.kind.value} on {mutation.spreadsheet_id} failed, queueing: {error.user_message}")
        stored = await self.queue.enqueue(mutation)
        return WriteOutcome(status=WriteStatus.QUEUED, mutation_id=stored.id, message=QUEUED_MESSAGE)

    async def save_row_edit(
        self,
        spreadsheet_id: str,
        sheet_name: str,
        row_index: int,
        row: Sequence[Optional[object]],
        loaded_change_token: Optional[str],
        audit: Optional[tuple[str, str]] = None,
    ) -> EditOutcome:
        """Commit an edited row unless the sheet changed since it was loaded.

        On conflict nothing is written; the caller may only discard and
        reload, or cancel and keep the edit locally.
        """
        layout = await self._editable_layout(spreadsheet_id, sheet_name, row_index)

        check = await self.conflict_guard.check(spreadsheet_id, loaded_change_token)
        if check.conflict:
            return EditOutcome(status=EditStatus.CONFLICT, conflict=check)

        write = await self._write_row(layout, row_index, row, audit)
        status = EditStatus.SAVED if write.status == WriteStatus.APPLIED else EditStatus.QUEUED
        return EditOutcome(status=status, write=write, conflict=check)

    async def delete_row(
        self,
        spreadsheet_id: str,
        sheet_name: str,
        row_index: int,
        loaded_change_token: Optional[str] = None,
    ) -> EditOutcome:
        """Remove a data row from the sheet.

        Deletes are never queued; any failure raises. The cached snapshot is
        dropped afterwards since the rows below shift up.
        """
        layout = await self._editable_layout(spreadsheet_id, sheet_name, row_index)

        check = await self.conflict_guard.check(spreadsheet_id, loaded_change_token)
        if check.conflict:
            return EditOutcome(status=EditStatus.CONFLICT, conflict=check)

        try:
            result = await asyncio.to_thread(
                self.sheets_client.delete_row,
                spreadsheet_id,
                sheet_name,
                row_index,
                layout.header_row_index,
            )
        except Exception as e:
            error = classify_error(e)
            logger.error(f"Deleting row {row_index} of {spreadsheet_id}/{sheet_name} failed: {error.user_message}")
            if error is e:
                raise
            raise error from e

        await self.cache.invalidate(make_cache_key(spreadsheet_id, sheet_name))
        return EditOutcome(
            status=EditStatus.DELETED,
            write=WriteOutcome(status=WriteStatus.APPLIED, result=result),
            conflict=check,
        )

    # Pending queue

    async def pending_mutations(self) -> list[PendingMutation]:
        return await self.queue.pending()

    async def pending_count(self) -> int:
        return await self.queue.count()

    async def drain_now(self) -> DrainReport:
        return await self.queue.drain_once()
