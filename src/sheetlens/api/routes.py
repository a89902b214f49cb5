"""API routes for SheetLens."""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ..discovery.models import FieldType
from ..repository import EditOutcome, EditStatus, WriteOutcome
from ..sheet import QuickStat, SheetData, SummaryStats
from ..sheets.errors import ErrorKind, SheetsError
from ..sheets.models import SheetTab, SpreadsheetInfo
from ..storage.models import ColumnOverride, PendingMutation
from ..sync.queue import DrainReport

router = APIRouter()

ERROR_STATUS = {
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.PERMISSION_DENIED: 403,
    ErrorKind.CONFLICT: 409,
    ErrorKind.TRANSIENT: 503,
    ErrorKind.CACHE_UNAVAILABLE: 503,
    ErrorKind.FATAL: 502,
}


def get_repository():
    """Get the global repository instance."""
    from .app import get_repository as _get_repository

    return _get_repository()


def _http_error(error: SheetsError) -> HTTPException:
    return HTTPException(
        status_code=ERROR_STATUS.get(error.kind, 502),
        detail={"kind": error.kind.value, "message": error.user_message},
    )


def _audit(user: Optional[str], timestamp: Optional[str]) -> Optional[tuple[str, str]]:
    if not user:
        return None
    return user, timestamp or datetime.now(timezone.utc).isoformat(timespec="seconds")


class SheetResponse(BaseModel):
    """A sheet tab with its inferred column types and statistics."""

    sheet: SheetData
    field_types: list[FieldType]
    summary: SummaryStats
    quick_stats: list[QuickStat] = Field(default_factory=list)


class AppendRowRequest(BaseModel):
    """Request to append a row."""

    values: list[Optional[str]]
    audit_user: Optional[str] = None
    audit_timestamp: Optional[str] = None


class UpdateRowRequest(BaseModel):
    """Request to commit an edited row."""

    values: list[Optional[str]]
    loaded_change_token: Optional[str] = None  # Token of the sheet when the row was opened
    audit_user: Optional[str] = None
    audit_timestamp: Optional[str] = None


class OverrideRequest(BaseModel):
    """Request to pin a column's type."""

    field_type: FieldType


class PendingResponse(BaseModel):
    count: int
    mutations: list[PendingMutation]


# Spreadsheet endpoints


@router.get("/spreadsheets", response_model=list[SpreadsheetInfo])
async def list_spreadsheets():
    """List spreadsheets, from Drive or the cached list when offline."""
    try:
        return await get_repository().list_spreadsheets()
    except SheetsError as e:
        raise _http_error(e)


@router.get("/spreadsheets/{spreadsheet_id}/sheets", response_model=list[SheetTab])
async def list_sheet_tabs(spreadsheet_id: str):
    """List the tabs of a spreadsheet."""
    try:
        return await get_repository().list_sheet_tabs(spreadsheet_id)
    except SheetsError as e:
        raise _http_error(e)


@router.get("/spreadsheets/{spreadsheet_id}/sheets/{sheet_name}", response_model=SheetResponse)
async def get_sheet(spreadsheet_id: str, sheet_name: str, row_index: Optional[int] = None):
    """Read a sheet tab with inferred column types.

    ``row_index`` selects the row whose formulas drive formula detection.
    """
    repository = get_repository()
    try:
        sheet = await repository.get_sheet_data(spreadsheet_id, sheet_name)
    except SheetsError as e:
        raise _http_error(e)

    field_types = await repository.infer_field_types(sheet, row_index)
    return SheetResponse(
        sheet=sheet,
        field_types=field_types,
        summary=sheet.summary_stats(),
        quick_stats=sheet.quick_stats(),
    )


@router.post("/spreadsheets/{spreadsheet_id}/sheets/{sheet_name}/rows", response_model=WriteOutcome)
async def append_row(spreadsheet_id: str, sheet_name: str, request: AppendRowRequest):
    """Append a row; queued for later sync when the service is unreachable."""
    try:
        return await get_repository().append_row(
            spreadsheet_id,
            sheet_name,
            request.values,
            audit=_audit(request.audit_user, request.audit_timestamp),
        )
    except SheetsError as e:
        raise _http_error(e)


@router.put(
    "/spreadsheets/{spreadsheet_id}/sheets/{sheet_name}/rows/{row_index}",
    response_model=EditOutcome,
)
async def update_row(spreadsheet_id: str, sheet_name: str, row_index: int, request: UpdateRowRequest):
    """Commit an edited row. Responds 409 when the sheet changed since it was loaded."""
    try:
        outcome = await get_repository().save_row_edit(
            spreadsheet_id,
            sheet_name,
            row_index,
            request.values,
            request.loaded_change_token,
            audit=_audit(request.audit_user, request.audit_timestamp),
        )
    except SheetsError as e:
        raise _http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if outcome.status == EditStatus.CONFLICT:
        raise HTTPException(status_code=409, detail=outcome.conflict.model_dump(mode="json"))
    return outcome


@router.delete(
    "/spreadsheets/{spreadsheet_id}/sheets/{sheet_name}/rows/{row_index}",
    response_model=EditOutcome,
)
async def delete_row(
    spreadsheet_id: str, sheet_name: str, row_index: int, loaded_change_token: Optional[str] = None
):
    """Delete a data row. Never queued; separators and rows outside the data get a 400."""
    try:
        outcome = await get_repository().delete_row(
            spreadsheet_id, sheet_name, row_index, loaded_change_token
        )
    except SheetsError as e:
        raise _http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if outcome.status == EditStatus.CONFLICT:
        raise HTTPException(status_code=409, detail=outcome.conflict.model_dump(mode="json"))
    return outcome


# Column override endpoints


@router.get("/spreadsheets/{spreadsheet_id}/overrides", response_model=list[ColumnOverride])
async def list_overrides(spreadsheet_id: str):
    """List column type overrides; they apply to every tab of the spreadsheet."""
    return await get_repository().get_column_overrides(spreadsheet_id)


@router.put("/spreadsheets/{spreadsheet_id}/overrides/{column_index}", response_model=ColumnOverride)
async def set_override(spreadsheet_id: str, column_index: int, request: OverrideRequest):
    if column_index < 0:
        raise HTTPException(status_code=400, detail="Column index must be non-negative")
    return await get_repository().set_column_override(
        spreadsheet_id, column_index, request.field_type
    )


@router.delete("/spreadsheets/{spreadsheet_id}/overrides/{column_index}")
async def delete_override(spreadsheet_id: str, column_index: int):
    deleted = await get_repository().delete_column_override(spreadsheet_id, column_index)
    if not deleted:
        raise HTTPException(status_code=404, detail="Override not found")
    return {"status": "deleted"}


# Pending queue endpoints


@router.get("/pending", response_model=PendingResponse)
async def list_pending():
    """List writes waiting to be synced, oldest first."""
    mutations = await get_repository().pending_mutations()
    return PendingResponse(count=len(mutations), mutations=mutations)


@router.post("/pending/drain", response_model=DrainReport)
async def drain_pending():
    """Replay pending writes once, right now."""
    return await get_repository().drain_now()


@router.get("/health")
async def health_check():
    """Health check endpoint with diagnostics."""
    from ..config import settings

    # Gather non-secret diagnostics
    config = {
        "google_credentials_configured": settings.google_credentials_path.exists(),
        "google_token_present": settings.google_token_path.exists(),
        "offline_mode": settings.offline_mode,
        "cache_max_age_seconds": settings.cache_max_age_seconds,
    }

    return {
        "status": "ok",
        "service": "sheetlens",
        "config": config,
    }
