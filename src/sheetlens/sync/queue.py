"""Durable queue of row writes waiting to be replayed."""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel

from ..sheets.client import GoogleSheetsClient
from ..sheets.errors import classify_error
from ..storage.models import MutationKind, PendingMutation
from ..storage.store import LocalStore

if TYPE_CHECKING:
    from .scheduler import DrainScheduler

logger = logging.getLogger(__name__)


class DrainStatus(str, Enum):
    """Overall outcome of one drain pass."""

    SUCCEEDED = "succeeded"  # At least one mutation applied
    RETRY = "retry"  # Nothing applied, entries remain
    NOOP = "success"  # Queue was empty


class DrainReport(BaseModel):
    """What a single drain pass did."""

    status: DrainStatus
    attempted: int = 0
    applied: int = 0
    failed: int = 0
    remaining: int = 0


class MutationQueue:
    """Ordered, durable log of row writes that could not be applied.

    Entries are replayed oldest first, one at a time. An entry is deleted
    only after its replay succeeds; a failed replay bumps ``retry_count``
    and keeps the entry, with no eviction after any number of retries.
    """

    def __init__(self, store: LocalStore, sheets_client: GoogleSheetsClient):
        self.store = store
        self.sheets_client = sheets_client
        self.scheduler: Optional["DrainScheduler"] = None
        self._drain_lock = asyncio.Lock()

    def attach_scheduler(self, scheduler: "DrainScheduler"):
        self.scheduler = scheduler

    async def enqueue(self, mutation: PendingMutation) -> PendingMutation:
        """Persist a failed write and request a background drain."""
        if mutation.kind == MutationKind.UPDATE and mutation.row_index is None:
            raise ValueError("Update mutations need a row index")

        stored = await self.store.insert_mutation(
            mutation.model_copy(
                update={
                    "id": None,
                    "created_at": datetime.now(timezone.utc),
                    "retry_count": 0,
                }
            )
        )
        logger.info(
            f"Queued {stored.kind.value} #{stored.id} for "
            f"{stored.spreadsheet_id}/{stored.sheet_name}"
        )
        if self.scheduler is not None:
            self.scheduler.request_drain()
        return stored

    async def pending(self) -> list[PendingMutation]:
        return await self.store.list_mutations()

    async def count(self) -> int:
        return await self.store.count_mutations()

    async def drain_once(self) -> DrainReport:
        """Replay every pending mutation once, in creation order."""
        async with self._drain_lock:
            mutations = await self.store.list_mutations()
            if not mutations:
                return DrainReport(status=DrainStatus.NOOP)

            applied = 0
            failed = 0
            for mutation in mutations:
                try:
                    await self._replay(mutation)
                except Exception as e:
                    error = classify_error(e)
                    failed += 1
                    await self.store.record_mutation_failure(
                        mutation.id, error.raw_message or error.user_message
                    )
                    logger.warning(
                        f"Replay of {mutation.kind.value} #{mutation.id} failed "
                        f"(attempt {mutation.retry_count + 1}): {error.user_message}"
                    )
                    continue

                if await self.store.delete_mutation(mutation.id):
                    applied += 1
                    logger.info(f"Applied queued {mutation.kind.value} #{mutation.id}")
                else:
                    logger.warning(f"Queued mutation #{mutation.id} was already removed")

            remaining = await self.store.count_mutations()

        if applied:
            status = DrainStatus.SUCCEEDED
        elif remaining:
            status = DrainStatus.RETRY
        else:
            status = DrainStatus.NOOP
        return DrainReport(
            status=status,
            attempted=len(mutations),
            applied=applied,
            failed=failed,
            remaining=remaining,
        )

    async def _replay(self, mutation: PendingMutation):
        if mutation.kind == MutationKind.APPEND:
            await asyncio.to_thread(
                self.sheets_client.append_row,
                mutation.spreadsheet_id,
                mutation.sheet_name,
                mutation.row_payload,
            )
            return

        if mutation.row_index is None:
            raise ValueError(f"Update #{mutation.id} has no row index")
        await asyncio.to_thread(
            self.sheets_client.update_row,
            mutation.spreadsheet_id,
            mutation.sheet_name,
            mutation.row_index,
            mutation.row_payload,
            mutation.header_row_index,
        )
