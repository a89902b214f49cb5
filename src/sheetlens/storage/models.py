"""Data models for the local persistence layer."""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from ..discovery.models import FieldType, MergeRange
from ..sheets.models import ValidationRule

SNAPSHOT_SCHEMA_VERSION = 2


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def make_cache_key(spreadsheet_id: str, sheet_name: str) -> str:
    return f"{spreadsheet_id}:{sheet_name}"


class SheetSnapshot(BaseModel):
    """Discovered state of one sheet tab as it was last fetched."""

    cache_key: str
    spreadsheet_id: str
    sheet_name: str
    content_hash: str = ""
    headers: list[str] = Field(default_factory=list)
    data_rows: list[list[Optional[str]]] = Field(default_factory=list)
    formula_rows: list[list[Optional[str]]] = Field(default_factory=list)  # Aligned with data_rows
    merge_ranges: list[MergeRange] = Field(default_factory=list)
    column_validations: dict[int, ValidationRule] = Field(default_factory=dict)
    remote_change_token: Optional[str] = None  # Drive modifiedTime at fetch
    is_structured_table: bool = False
    fetched_at: datetime = Field(default_factory=_utc_now)
    header_row_index: int = 0
    separator_indices: set[int] = Field(default_factory=set)
    schema_version: int = SNAPSHOT_SCHEMA_VERSION

    @field_validator("data_rows", mode="before")
    @classmethod
    def _stringify_cells(cls, rows: Any) -> Any:
        # Cached rows are string-level; numbers and booleans from the API are coerced
        if not isinstance(rows, list):
            return rows
        return [
            [None if cell is None else str(cell) for cell in row] if isinstance(row, list) else row
            for row in rows
        ]


class SnapshotPayloadError(ValueError):
    """A stored snapshot payload that cannot be read."""


def upgrade_snapshot_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Bring a stored payload up to ``SNAPSHOT_SCHEMA_VERSION``.

    Version 1 payloads predate separator tracking and stored no header row
    index; both default (empty set, row 0). Payloads written by a newer
    schema are rejected.
    """
    version = payload.get("schema_version", 1)
    if not isinstance(version, int) or version > SNAPSHOT_SCHEMA_VERSION:
        raise SnapshotPayloadError(f"Unsupported snapshot schema version {version!r}")

    if version == 1:
        payload = dict(payload)
        payload.setdefault("separator_indices", [])
        payload.setdefault("header_row_index", 0)
        payload["schema_version"] = 2
    return payload


def serialize_snapshot(snapshot: SheetSnapshot) -> str:
    return snapshot.model_dump_json()


def deserialize_snapshot(raw: str) -> SheetSnapshot:
    """Parse and upgrade a stored payload; raises on anything unreadable."""
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise SnapshotPayloadError(f"Snapshot payload is not JSON: {e}") from e
    if not isinstance(payload, dict):
        raise SnapshotPayloadError("Snapshot payload is not an object")
    return SheetSnapshot.model_validate(upgrade_snapshot_payload(payload))


class MutationKind(str, Enum):
    """Kind of row write held in the pending queue."""

    APPEND = "append"
    UPDATE = "update"


class PendingMutation(BaseModel):
    """A row write that could not be applied and waits for replay."""

    id: Optional[int] = None  # Assigned on insert
    kind: MutationKind
    spreadsheet_id: str
    sheet_name: str
    row_index: Optional[int] = None  # Required for updates
    row_payload: list[Optional[str]] = Field(default_factory=list)
    header_row_index: int = 0
    created_at: datetime = Field(default_factory=_utc_now)
    retry_count: int = 0
    last_error: Optional[str] = None


class ColumnOverride(BaseModel):
    """A user-chosen type for one column, shared by all tabs of a spreadsheet."""

    spreadsheet_id: str
    column_index: int = Field(ge=0)
    field_type: FieldType
    updated_at: datetime = Field(default_factory=_utc_now)


class CachedSpreadsheet(BaseModel):
    """An entry of the last known spreadsheet list."""

    id: str
    name: str
    modified_time: Optional[str] = None
    created_at: Optional[str] = None
    last_synced_at: datetime = Field(default_factory=_utc_now)
