"""Sheet model handed to callers, with summary statistics."""

import re
from typing import Optional

from pydantic import BaseModel, Field

from .discovery.models import MergeRange
from .sheets.models import ValidationRule
from .storage.models import SheetSnapshot

FINANCIAL_HEADERS = ("amount", "total", "price", "cost", "sum", "value")
STATUS_HEADERS = ("status", "state", "stage", "phase")
BLANK_STATUS = "(Blank)"

_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")


class StatusCount(BaseModel):
    label: str
    count: int
    fraction: float


class SummaryStats(BaseModel):
    total_records: int
    financial_sum: Optional[float] = None
    status_distribution: list[StatusCount] = Field(default_factory=list)


class QuickStat(BaseModel):
    label: str
    value: str


class SheetData(BaseModel):
    """Headers, rows and structure of one sheet tab."""

    spreadsheet_id: str
    sheet_name: str
    headers: list[str]
    rows: list[list[Optional[str]]] = Field(default_factory=list)
    header_row_index: int = 0  # CRUD row offset
    separator_indices: set[int] = Field(default_factory=set)
    merge_ranges: list[MergeRange] = Field(default_factory=list)
    formula_rows: list[list[Optional[str]]] = Field(default_factory=list)
    column_validations: dict[int, ValidationRule] = Field(default_factory=dict)
    change_token: Optional[str] = None  # Capture this when opening a row for editing
    is_structured_table: bool = False
    content_hash: str = ""
    from_cache: bool = False

    @classmethod
    def from_snapshot(cls, snapshot: SheetSnapshot, from_cache: bool = False) -> "SheetData":
        return cls(
            spreadsheet_id=snapshot.spreadsheet_id,
            sheet_name=snapshot.sheet_name,
            headers=snapshot.headers,
            rows=snapshot.data_rows,
            header_row_index=snapshot.header_row_index,
            separator_indices=snapshot.separator_indices,
            merge_ranges=snapshot.merge_ranges,
            formula_rows=snapshot.formula_rows,
            column_validations=snapshot.column_validations,
            change_token=snapshot.remote_change_token,
            is_structured_table=snapshot.is_structured_table,
            content_hash=snapshot.content_hash,
            from_cache=from_cache,
        )

    def is_editable(self, row_index: int) -> bool:
        return 0 <= row_index < len(self.rows) and row_index not in self.separator_indices

    def first_data_row(self) -> list[Optional[str]]:
        """First non-separator row, used as the type inference sample."""
        for i, row in enumerate(self.rows):
            if i not in self.separator_indices:
                return row
        return []

    def summary_stats(self) -> SummaryStats:
        """Record count, total of the first financial column and status distribution."""
        financial_col = _first_matching_column(self.headers, FINANCIAL_HEADERS)
        financial_sum = None
        if financial_col is not None:
            total = sum(_to_number(_cell(row, financial_col)) for row in self.rows)
            financial_sum = total if total != 0.0 else None

        distribution = []
        status_col = _first_matching_column(self.headers, STATUS_HEADERS)
        if status_col is not None:
            counts: dict[str, int] = {}
            for row in self.rows:
                label = _cell(row, status_col).strip() or BLANK_STATUS
                counts[label] = counts.get(label, 0) + 1
            total_count = sum(counts.values())
            distribution = sorted(
                (
                    StatusCount(label=label, count=count, fraction=count / total_count)
                    for label, count in counts.items()
                ),
                key=lambda status: status.count,
                reverse=True,
            )

        return SummaryStats(
            total_records=len(self.rows),
            financial_sum=financial_sum,
            status_distribution=distribution,
        )

    def quick_stats(self) -> list[QuickStat]:
        """Labelled values of aggregate formula cells, one per label."""
        stats: list[QuickStat] = []
        seen = set()
        for row_idx, formula_row in enumerate(self.formula_rows):
            for col_idx, formula in enumerate(formula_row):
                if not formula or not formula.startswith("="):
                    continue
                label = _formula_label(formula, self.headers, col_idx)
                value = _cell(self.rows[row_idx], col_idx) if row_idx < len(self.rows) else ""
                if value.strip() and label not in seen:
                    seen.add(label)
                    stats.append(QuickStat(label=label, value=value))
        return stats


def _cell(row: list[Optional[str]], col: int) -> str:
    if col < len(row) and row[col] is not None:
        return str(row[col])
    return ""


def _to_number(value: str) -> float:
    try:
        return float(_NON_NUMERIC_RE.sub("", value.strip()))
    except ValueError:
        return 0.0


def _first_matching_column(headers: list[str], keywords: tuple[str, ...]) -> Optional[int]:
    for i, header in enumerate(headers):
        lowered = header.lower()
        if any(keyword in lowered for keyword in keywords):
            return i
    return None


def _formula_label(formula: str, headers: list[str], col: int) -> str:
    upper = formula.upper()
    if upper.startswith("=SUM"):
        return "Total Spent"
    if upper.startswith("=COUNT"):
        return "Total Count"
    if upper.startswith("=AVERAGE"):
        return "Average"
    header = headers[col].strip() if col < len(headers) else ""
    return header or "Total"
