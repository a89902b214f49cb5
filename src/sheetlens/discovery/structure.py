"""Header row discovery for human-authored sheets.

Row 1 of a real sheet is often a title, a date or a logo row. The header
row is located among the first few rows using two signals:

- Density: number of non-empty cells (headers are wide, titles span 1-2 cells)
- Type continuity: text cells sitting directly above number/date/currency/boolean cells

Near-empty rows that span several columns are visual separators. They stay
in the data rows for display, and their positions are reported so callers
can keep them read-only.
"""

import re
from typing import Any, Optional, Sequence

from .merges import primary_of
from .models import DiscoveryResult, MergeRange

MAX_SCAN_ROWS = 10
MIN_DENSITY_FOR_HEADER = 3
SEPARATOR_MAX_FILL = 2  # Rows with <= 2 non-empty cells may be separators

BOOLEAN_TOKENS = frozenset({"true", "false", "yes", "no", "1", "0"})
DATA_CELL_TYPES = frozenset({"number", "date", "currency", "boolean"})

_NUMBER_RE = re.compile(r"-?\d+(\.\d+)?")
_ISO_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")
_SLASH_DATE_RE = re.compile(r"\d{1,2}/\d{1,2}/\d{2,4}")
_DASH_DATE_RE = re.compile(r"\d{1,2}-\d{1,2}-\d{2,4}")
_CURRENCY_RE = re.compile(r"[$€£¥₹]?\s*-?\d")


def cell_text(cell: Any) -> str:
    """Trimmed string form of a cell; None is the empty string."""
    if cell is None:
        return ""
    return str(cell).strip()


def cell_type(cell: Any) -> str:
    """Coarse classification of a single cell used for header scoring.

    Returns one of "empty", "boolean", "number", "date", "currency" or "text".
    """
    text = cell_text(cell)
    if not text:
        return "empty"
    if text.lower() in BOOLEAN_TOKENS:
        return "boolean"
    if _NUMBER_RE.fullmatch(text):
        return "number"
    if _ISO_DATE_RE.match(text) or _SLASH_DATE_RE.search(text) or _DASH_DATE_RE.match(text):
        return "date"
    if _CURRENCY_RE.match(text):
        return "currency"
    return "text"


def column_letter(index: int) -> str:
    """Convert 0-based index to column letter(s). 0=A, 25=Z, 26=AA."""
    result = ""
    index += 1
    while index > 0:
        index -= 1
        result = chr(ord("A") + (index % 26)) + result
        index //= 26
    return result


def discover(
    raw_rows: Sequence[Sequence[Any]],
    merge_ranges: Optional[Sequence[MergeRange]] = None,
    scan_rows: int = MAX_SCAN_ROWS,
) -> DiscoveryResult:
    """Locate the header row and split headers from data.

    Args:
        raw_rows: Jagged rows as returned by the values API. Only the first
            ``scan_rows`` rows are considered for the header; all rows are
            used for data extraction.
        merge_ranges: Merged ranges of the sheet, in the same coordinates.
        scan_rows: Number of leading rows searched for the header.

    Returns:
        DiscoveryResult with ``len(headers) == max_column_count``.
    """
    merges = list(merge_ranges or [])
    if not raw_rows:
        return DiscoveryResult(header_row_index=0, headers=["Column A"], max_column_count=1)

    resolved = _resolve_merged_values(raw_rows, merges)
    scanned = resolved[:scan_rows]

    header_row_index = _find_header_row(scanned)
    separator_rows = _find_separator_rows(scanned, header_row_index)
    data_rows, separator_indices = _split_data_rows(resolved, header_row_index, separator_rows)

    widest_data_row = max((len(row) for row in data_rows), default=0)
    max_cols = max(len(resolved[header_row_index]), widest_data_row)
    header_cells = _extract_headers(resolved, merges, header_row_index, max_cols)

    return DiscoveryResult(
        header_row_index=header_row_index,
        headers=_expand_headers(header_cells, max_cols),
        data_rows=data_rows,
        separator_indices=separator_indices,
        max_column_count=max_cols,
    )


def _density(row: Sequence[Any]) -> int:
    return sum(1 for cell in row if cell_text(cell))


def _type_continuity(row: Sequence[Any], next_row: Sequence[Any]) -> int:
    """Count columns where a text cell sits above a data-like cell."""
    return sum(
        1
        for above, below in zip(row, next_row)
        if cell_type(above) == "text" and cell_type(below) in DATA_CELL_TYPES
    )


def _find_header_row(rows: list[list[Any]]) -> int:
    if len(rows) <= 1:
        return 0

    densities = [_density(row) for row in rows]
    continuity = [
        _type_continuity(rows[i], rows[i + 1]) if i < len(rows) - 1 else 0
        for i in range(len(rows))
    ]

    best_row = 0
    best_score = -1
    for i, density in enumerate(densities):
        # Skip separator-like rows
        if density <= SEPARATOR_MAX_FILL and i > 0:
            continue
        score = density * 2 + continuity[i]
        if density >= MIN_DENSITY_FOR_HEADER and score > best_score:
            best_score = score
            best_row = i

    if best_score < 0:
        for i, density in enumerate(densities):
            if density >= 1:
                return i
    return best_row


def _find_separator_rows(rows: list[list[Any]], header_row_index: int) -> set[int]:
    return {
        i
        for i, row in enumerate(rows)
        if i != header_row_index and _density(row) <= SEPARATOR_MAX_FILL and len(row) > 2
    }


def _split_data_rows(
    rows: list[list[Any]], header_row_index: int, separator_rows: set[int]
) -> tuple[list[list[Any]], set[int]]:
    """Rows after the header, with separator positions relative to the returned list."""
    data_rows = []
    separator_indices = set()
    for i in range(header_row_index + 1, len(rows)):
        if i in separator_rows:
            separator_indices.add(len(data_rows))
        data_rows.append(rows[i])
    return data_rows, separator_indices


def _extract_headers(
    rows: list[list[Any]], merges: list[MergeRange], header_row_index: int, width: int
) -> list[str]:
    header_row = rows[header_row_index]
    headers = []
    for col in range(width):
        text = cell_text(header_row[col]) if col < len(header_row) else ""
        if not text:
            primary_row, primary_col = primary_of(merges, header_row_index, col)
            if primary_row < len(rows) and primary_col < len(rows[primary_row]):
                text = cell_text(rows[primary_row][primary_col])
        headers.append(text)
    return headers


def _expand_headers(header_cells: list[str], width: int) -> list[str]:
    headers = []
    for i in range(width):
        label = header_cells[i].strip() if i < len(header_cells) else ""
        headers.append(label or f"Untitled Column {column_letter(i)}")
    return headers


def _resolve_merged_values(
    raw_rows: Sequence[Sequence[Any]], merges: list[MergeRange]
) -> list[list[Any]]:
    """Copy of the rows with empty non-primary merged cells showing the primary's value.

    Only cells present in the raw row are filled. The values API drops
    trailing empty cells, so a title merged across the sheet keeps its
    density of one; merged header cells past the end of the row are picked
    up by ``_extract_headers``.
    """
    if not merges:
        return [list(row) for row in raw_rows]

    def raw_value(row: int, col: int) -> Any:
        if row < len(raw_rows) and col < len(raw_rows[row]):
            return raw_rows[row][col]
        return None

    resolved = []
    for row_idx, row in enumerate(raw_rows):
        new_row = []
        for col_idx, cell in enumerate(row):
            if not cell_text(cell):
                primary = primary_of(merges, row_idx, col_idx)
                if primary != (row_idx, col_idx):
                    cell = raw_value(*primary)
            new_row.append(cell)
        resolved.append(new_row)
    return resolved
