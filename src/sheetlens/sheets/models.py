"""Data models for Google Sheets / Drive operations."""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from ..discovery.models import MergeRange


class DropdownValidation(BaseModel):
    """Dropdown with fixed options (ONE_OF_LIST)."""

    kind: Literal["dropdown"] = "dropdown"
    options: list[str] = Field(default_factory=list)


class CheckboxValidation(BaseModel):
    """Checkbox (BOOLEAN)."""

    kind: Literal["checkbox"] = "checkbox"


ValidationRule = Annotated[
    Union[DropdownValidation, CheckboxValidation], Field(discriminator="kind")
]


class SheetMetadata(BaseModel):
    """Structural metadata for one sheet tab."""

    sheet_id: int = 0
    title: str = ""
    merge_ranges: list[MergeRange] = Field(default_factory=list)
    column_validations: dict[int, ValidationRule] = Field(default_factory=dict)
    is_structured_table: bool = False  # Filter views, basic filter or tables: absolute row addressing


class SpreadsheetInfo(BaseModel):
    """A spreadsheet file as listed by Drive."""

    id: str
    name: str = "Untitled"
    modified_time: Optional[str] = None
    created_time: Optional[str] = None


class WriteResult(BaseModel):
    """Result of a row append or update."""

    success: bool
    spreadsheet_id: str
    sheet_name: str
    updated_range: Optional[str] = None
    updated_cells: int = 0


class SheetTab(BaseModel):
    """One tab of a spreadsheet, in display order."""

    sheet_id: int
    title: str
    index: int = 0
