"""Tests for merged-cell resolution."""

import pytest
from pydantic import ValidationError

from sheetlens.discovery import (
    MergeRange,
    find_merge,
    is_merged_cell,
    is_non_primary_merged_cell,
    is_primary,
    primary_of,
)


@pytest.fixture
def merges():
    return [
        MergeRange(start_row=0, end_row=1, start_col=1, end_col=3),
        MergeRange(start_row=2, end_row=4, start_col=0, end_col=2),
    ]


class TestMergeRange:
    """Test the MergeRange model."""

    def test_primary_is_top_left(self):
        merge = MergeRange(start_row=2, end_row=4, start_col=3, end_col=5)
        assert merge.primary == (2, 3)

    def test_end_is_exclusive(self):
        merge = MergeRange(start_row=0, end_row=1, start_col=0, end_col=2)
        assert merge.contains(0, 1)
        assert not merge.contains(0, 2)
        assert not merge.contains(1, 0)

    @pytest.mark.parametrize(
        "bounds",
        [(0, 0, 0, 1), (0, 1, 2, 2), (3, 1, 0, 1)],
    )
    def test_empty_range_rejected(self, bounds):
        start_row, end_row, start_col, end_col = bounds
        with pytest.raises(ValidationError):
            MergeRange(start_row=start_row, end_row=end_row, start_col=start_col, end_col=end_col)


class TestFindMerge:
    def test_finds_containing_range(self, merges):
        assert find_merge(merges, 0, 2) is merges[0]
        assert find_merge(merges, 3, 1) is merges[1]

    def test_none_outside_all_ranges(self, merges):
        assert find_merge(merges, 1, 1) is None
        assert find_merge([], 0, 0) is None

    def test_negative_coordinates_are_total(self, merges):
        assert find_merge(merges, -1, -5) is None
        assert primary_of(merges, -1, -5) == (-1, -5)


class TestPrimaryOf:
    def test_maps_to_top_left(self, merges):
        assert primary_of(merges, 0, 2) == (0, 1)
        assert primary_of(merges, 3, 1) == (2, 0)

    def test_unmerged_cell_unchanged(self, merges):
        assert primary_of(merges, 5, 5) == (5, 5)


class TestPrimaryPredicates:
    def test_is_primary(self, merges):
        assert is_primary(merges[0], 0, 1)
        assert not is_primary(merges[0], 0, 2)

    def test_is_merged_cell(self, merges):
        assert is_merged_cell(merges, 0, 1)
        assert not is_merged_cell(merges, 0, 0)

    def test_is_non_primary_merged_cell(self, merges):
        assert is_non_primary_merged_cell(merges, 0, 2)
        assert not is_non_primary_merged_cell(merges, 0, 1)
        assert not is_non_primary_merged_cell(merges, 1, 1)
