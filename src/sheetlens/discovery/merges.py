"""Merged-cell resolution.

Only the primary (top-left) cell of a merge holds a value; every other cell
of the merge displays the primary's value. Ranges for a sheet are assumed
to be few and non-overlapping, so a linear scan returns the only match.
"""

from typing import Optional, Sequence

from .models import MergeRange


def find_merge(ranges: Sequence[MergeRange], row: int, col: int) -> Optional[MergeRange]:
    """Return the first merge range containing (row, col), or None."""
    for merge in ranges:
        if merge.contains(row, col):
            return merge
    return None


def primary_of(ranges: Sequence[MergeRange], row: int, col: int) -> tuple[int, int]:
    """Map a cell to the primary cell of its merge; unmerged cells map to themselves."""
    merge = find_merge(ranges, row, col)
    if merge is None:
        return row, col
    return merge.primary


def is_primary(merge: MergeRange, row: int, col: int) -> bool:
    return (row, col) == merge.primary


def is_merged_cell(ranges: Sequence[MergeRange], row: int, col: int) -> bool:
    return find_merge(ranges, row, col) is not None


def is_non_primary_merged_cell(ranges: Sequence[MergeRange], row: int, col: int) -> bool:
    """True if (row, col) is inside a merge but is not its top-left cell."""
    merge = find_merge(ranges, row, col)
    return merge is not None and not is_primary(merge, row, col)
