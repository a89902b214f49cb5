"""Column type inference.

Each column gets exactly one FieldType, decided in strict precedence order:

1. An explicit user override for the column index.
2. A formula in the parallel formula row (cell starts with "=").
3. The sample value's pattern, unless it only looks like plain text.
4. The header's keywords.

A blank sample falls straight through to the header verdict.
"""

import re
from typing import Any, Mapping, Optional, Sequence

from .models import FieldType
from .structure import cell_text

FORMULA_MARKER = "="

DATE_KEYWORDS = (
    "date", "time", "created", "updated", "modified",
    "birthday", "dob", "deadline", "due", "timestamp",
    "start", "end", "expir",
)
CURRENCY_KEYWORDS = (
    "price", "cost", "amount", "total", "fee", "salary",
    "revenue", "budget", "payment", "balance", "income",
    "expense", "tax", "discount", "rate",
)
BOOLEAN_KEYWORDS = (
    "active", "enabled", "completed", "done", "verified",
    "approved", "status", "paid", "available", "visible",
    "published", "archived", "deleted", "confirmed", "toggle",
)
NUMBER_KEYWORDS = (
    "count", "quantity", "qty", "number", "num", "age",
    "score", "rating", "rank", "index", "size", "weight",
    "height", "length", "width", "percent", "percentage",
)

BOOLEAN_VALUES = frozenset({"true", "false", "yes", "no", "1", "0", "y", "n", "on", "off"})
CURRENCY_SYMBOLS = "$€£¥₹"

# Grouped ("1,234,567") or plain ("1234567") digits
_DIGITS = r"(?:\d{1,3}(?:,\d{3})+|\d+)"
_CURRENCY_RE = re.compile(rf"[{re.escape(CURRENCY_SYMBOLS)}]\s*-?{_DIGITS}(?:\.\d{{1,2}})?")
_NUMBER_RE = re.compile(rf"-?{_DIGITS}(?:\.\d+)?")
_DATE_PATTERNS = (
    re.compile(r"\d{4}-\d{2}-\d{2}"),  # 2024-01-15
    re.compile(r"\d{1,2}/\d{1,2}/\d{2,4}"),  # 1/15/2024 or 01/15/24
    re.compile(r"\d{1,2}-\d{1,2}-\d{2,4}"),  # 15-01-2024
    re.compile(r"\d{1,2}\s+[^\W\d_]{3,9}\s+\d{2,4}"),  # 15 January 2024
    re.compile(r"[^\W\d_]{3,9}\s+\d{1,2},?\s+\d{2,4}"),  # January 15, 2024
    re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?"),  # ISO 8601
)


def is_formula(cell: Optional[str]) -> bool:
    return cell is not None and str(cell).startswith(FORMULA_MARKER)


def infer_field_types(
    headers: Sequence[str],
    sample_row: Sequence[Any],
    formula_row: Optional[Sequence[Optional[str]]] = None,
    overrides: Optional[Mapping[int, FieldType]] = None,
) -> list[FieldType]:
    """Assign a FieldType to every column.

    Args:
        headers: Column labels.
        sample_row: One representative data row.
        formula_row: Raw formula strings aligned with ``sample_row``.
        overrides: User-chosen types keyed by column index.

    Returns:
        One FieldType per column, ``max(len(headers), len(sample_row))`` long.
    """
    overrides = overrides or {}
    formula_row = formula_row or []
    column_count = max(len(headers), len(sample_row))

    types = []
    for col in range(column_count):
        if col in overrides:
            types.append(FieldType(overrides[col]))
            continue
        formula = formula_row[col] if col < len(formula_row) else None
        if is_formula(formula):
            types.append(FieldType.FORMULA)
            continue
        header = headers[col] if col < len(headers) else ""
        sample = cell_text(sample_row[col]) if col < len(sample_row) else ""
        types.append(_infer_column(header, sample))
    return types


def _infer_column(header: str, sample: str) -> FieldType:
    header_hint = infer_from_header(header)
    if not sample:
        return header_hint

    sample_hint = infer_from_sample(sample)
    if sample_hint != FieldType.TEXT:
        return sample_hint
    return header_hint


def infer_from_header(header: str) -> FieldType:
    """Keyword verdict for a header label."""
    text = header.strip().lower()
    if any(keyword in text for keyword in DATE_KEYWORDS):
        return FieldType.DATE
    if any(keyword in text for keyword in CURRENCY_KEYWORDS):
        return FieldType.CURRENCY
    if any(keyword in text for keyword in BOOLEAN_KEYWORDS):
        return FieldType.BOOLEAN
    if any(keyword in text for keyword in NUMBER_KEYWORDS):
        return FieldType.NUMBER
    # Product ids, SKUs, categories and descriptions are free text
    return FieldType.TEXT


def infer_from_sample(sample: str) -> FieldType:
    """Pattern verdict for one cell value."""
    text = sample.strip()
    if not text:
        return FieldType.TEXT
    if text.lower() in BOOLEAN_VALUES:
        return FieldType.BOOLEAN
    if text[0] in CURRENCY_SYMBOLS and _CURRENCY_RE.fullmatch(text):
        return FieldType.CURRENCY
    if any(pattern.fullmatch(text) for pattern in _DATE_PATTERNS):
        return FieldType.DATE
    if _NUMBER_RE.fullmatch(text):
        return FieldType.NUMBER
    return FieldType.TEXT
