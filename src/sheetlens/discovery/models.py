"""Data models for structure discovery and type inference."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class FieldType(str, Enum):
    """Semantic type assigned to a column."""

    TEXT = "text"
    NUMBER = "number"
    CURRENCY = "currency"
    DATE = "date"
    BOOLEAN = "boolean"
    FORMULA = "formula"  # Read-only by default; value is an opaque formula string


class MergeRange(BaseModel):
    """A rectangular merged range. End indices are exclusive, 0-based grid coordinates."""

    start_row: int
    end_row: int
    start_col: int
    end_col: int

    @model_validator(mode="after")
    def _check_extent(self) -> "MergeRange":
        if self.end_row <= self.start_row or self.end_col <= self.start_col:
            raise ValueError(
                f"Empty merge range rows [{self.start_row}, {self.end_row}) "
                f"cols [{self.start_col}, {self.end_col})"
            )
        return self

    @property
    def primary(self) -> tuple[int, int]:
        """The top-left cell, the only one holding the authoritative value."""
        return self.start_row, self.start_col

    def contains(self, row: int, col: int) -> bool:
        return self.start_row <= row < self.end_row and self.start_col <= col < self.end_col


class DiscoveryResult(BaseModel):
    """Outcome of locating the header row and splitting headers from data."""

    header_row_index: int = Field(ge=0)  # 0-based row of the header in the sheet
    headers: list[str]
    data_rows: list[list[Any]] = Field(default_factory=list)  # Rows below the header, separators kept in place
    separator_indices: set[int] = Field(default_factory=set)  # Indices into data_rows
    max_column_count: int = 1

    @property
    def editable_row_indices(self) -> list[int]:
        return [i for i in range(len(self.data_rows)) if i not in self.separator_indices]
