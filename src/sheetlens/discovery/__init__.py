"""Header, merge and column type discovery for loosely structured sheets."""

from .models import MergeRange, DiscoveryResult, FieldType
from .merges import find_merge, primary_of, is_primary, is_merged_cell, is_non_primary_merged_cell
from .structure import discover, cell_type, column_letter
from .types import infer_field_types, infer_from_header, infer_from_sample

__all__ = [
    "MergeRange",
    "DiscoveryResult",
    "FieldType",
    "find_merge",
    "primary_of",
    "is_primary",
    "is_merged_cell",
    "is_non_primary_merged_cell",
    "discover",
    "cell_type",
    "column_letter",
    "infer_field_types",
    "infer_from_header",
    "infer_from_sample",
]
