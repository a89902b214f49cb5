"""Tests for the SQLite local store."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from sheetlens.discovery.models import FieldType, MergeRange
from sheetlens.sheets.models import CheckboxValidation, DropdownValidation
from sheetlens.storage import (
    CachedSpreadsheet,
    ColumnOverride,
    MutationKind,
    PendingMutation,
    SheetSnapshot,
    make_cache_key,
)
from sheetlens.storage.models import (
    SNAPSHOT_SCHEMA_VERSION,
    SnapshotPayloadError,
    deserialize_snapshot,
)


def make_snapshot(sheet_name: str = "Sheet1", **overrides) -> SheetSnapshot:
    values = dict(
        cache_key=make_cache_key("test-sheet-123", sheet_name),
        spreadsheet_id="test-sheet-123",
        sheet_name=sheet_name,
        content_hash="abc",
        headers=["Name", "Qty"],
        data_rows=[["Widget", "3"], ["Gadget", None]],
        formula_rows=[[None, None], [None, "=SUM(B1:B2)"]],
        merge_ranges=[MergeRange(start_row=0, end_row=1, start_col=0, end_col=2)],
        column_validations={1: DropdownValidation(options=["1", "2", "3"])},
        remote_change_token="T1",
        header_row_index=2,
        separator_indices={1},
    )
    values.update(overrides)
    return SheetSnapshot(**values)


class TestSchema:
    @pytest.mark.asyncio
    async def test_schema_version_recorded(self, store):
        assert await store.schema_version() == 1


class TestSnapshots:
    """Test snapshot persistence."""

    @pytest.mark.asyncio
    async def test_put_and_get(self, store):
        snapshot = make_snapshot()
        await store.put_snapshot(snapshot)

        loaded = await store.get_snapshot(snapshot.cache_key)

        assert loaded is not None
        assert loaded.headers == snapshot.headers
        assert loaded.data_rows == snapshot.data_rows
        assert loaded.formula_rows == snapshot.formula_rows
        assert loaded.merge_ranges == snapshot.merge_ranges
        assert loaded.column_validations == {1: DropdownValidation(options=["1", "2", "3"])}
        assert loaded.separator_indices == {1}
        assert loaded.header_row_index == 2

    @pytest.mark.asyncio
    async def test_upsert_by_cache_key(self, store):
        await store.put_snapshot(make_snapshot(remote_change_token="T1"))
        await store.put_snapshot(make_snapshot(remote_change_token="T2"))

        loaded = await store.get_snapshot(make_cache_key("test-sheet-123", "Sheet1"))
        assert loaded.remote_change_token == "T2"

    @pytest.mark.asyncio
    async def test_missing_snapshot(self, store):
        assert await store.get_snapshot("nope:Sheet1") is None

    @pytest.mark.asyncio
    async def test_delete_older_than(self, store):
        now = datetime.now(timezone.utc)
        await store.put_snapshot(make_snapshot("Old", fetched_at=now - timedelta(hours=30)))
        await store.put_snapshot(make_snapshot("New", fetched_at=now))

        purged = await store.delete_snapshots_older_than(now - timedelta(hours=24))

        assert purged == 1
        assert await store.get_snapshot(make_cache_key("test-sheet-123", "Old")) is None
        assert await store.get_snapshot(make_cache_key("test-sheet-123", "New")) is not None


class TestSnapshotPayloads:
    """Test versioned snapshot payloads."""

    def test_numbers_coerced_to_strings(self):
        snapshot = make_snapshot(data_rows=[["Widget", 3, True, None]])
        assert snapshot.data_rows == [["Widget", "3", "True", None]]

    def test_version_one_payload_is_upgraded(self):
        payload = make_snapshot().model_dump(mode="json")
        payload["schema_version"] = 1
        del payload["separator_indices"]
        del payload["header_row_index"]

        snapshot = deserialize_snapshot(json.dumps(payload))

        assert snapshot.schema_version == SNAPSHOT_SCHEMA_VERSION
        assert snapshot.separator_indices == set()
        assert snapshot.header_row_index == 0

    def test_future_version_rejected(self):
        payload = make_snapshot().model_dump(mode="json")
        payload["schema_version"] = SNAPSHOT_SCHEMA_VERSION + 1

        with pytest.raises(SnapshotPayloadError):
            deserialize_snapshot(json.dumps(payload))

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", "null"])
    def test_garbage_rejected(self, raw):
        with pytest.raises(SnapshotPayloadError):
            deserialize_snapshot(raw)

    def test_checkbox_validation_round_trip(self):
        snapshot = make_snapshot(column_validations={0: CheckboxValidation()})
        restored = deserialize_snapshot(snapshot.model_dump_json())
        assert restored.column_validations == {0: CheckboxValidation()}


class TestMutations:
    """Test pending mutation persistence."""

    @pytest.mark.asyncio
    async def test_insert_assigns_increasing_ids(self, store):
        first = await store.insert_mutation(
            PendingMutation(kind=MutationKind.APPEND, spreadsheet_id="s", sheet_name="A", row_payload=["x"])
        )
        second = await store.insert_mutation(
            PendingMutation(kind=MutationKind.APPEND, spreadsheet_id="s", sheet_name="A", row_payload=["y"])
        )

        assert first.id is not None
        assert second.id > first.id

    @pytest.mark.asyncio
    async def test_list_in_creation_order(self, store):
        now = datetime.now(timezone.utc)
        await store.insert_mutation(
            PendingMutation(
                kind=MutationKind.APPEND,
                spreadsheet_id="s",
                sheet_name="A",
                row_payload=["later"],
                created_at=now,
            )
        )
        await store.insert_mutation(
            PendingMutation(
                kind=MutationKind.UPDATE,
                spreadsheet_id="s",
                sheet_name="A",
                row_index=4,
                header_row_index=1,
                row_payload=["earlier", None],
                created_at=now - timedelta(minutes=5),
            )
        )

        mutations = await store.list_mutations()

        assert [m.row_payload for m in mutations] == [["earlier", None], ["later"]]
        assert mutations[0].kind == MutationKind.UPDATE
        assert mutations[0].row_index == 4
        assert mutations[0].header_row_index == 1

    @pytest.mark.asyncio
    async def test_record_failure_and_delete(self, store):
        mutation = await store.insert_mutation(
            PendingMutation(kind=MutationKind.APPEND, spreadsheet_id="s", sheet_name="A")
        )

        await store.record_mutation_failure(mutation.id, "timed out")
        await store.record_mutation_failure(mutation.id, "503")
        loaded = await store.get_mutation(mutation.id)

        assert loaded.retry_count == 2
        assert loaded.last_error == "503"
        assert await store.count_mutations() == 1

        assert await store.delete_mutation(mutation.id) is True
        assert await store.delete_mutation(mutation.id) is False
        assert await store.count_mutations() == 0


class TestOverrides:
    """Test column override persistence."""

    @pytest.mark.asyncio
    async def test_upsert_list_delete(self, store):
        await store.upsert_override(
            ColumnOverride(spreadsheet_id="s", column_index=2, field_type=FieldType.DATE)
        )
        await store.upsert_override(
            ColumnOverride(spreadsheet_id="s", column_index=2, field_type=FieldType.NUMBER)
        )
        await store.upsert_override(
            ColumnOverride(spreadsheet_id="other", column_index=0, field_type=FieldType.TEXT)
        )

        overrides = await store.get_overrides("s")

        assert [(o.column_index, o.field_type) for o in overrides] == [(2, FieldType.NUMBER)]
        assert await store.delete_override("s", 2) is True
        assert await store.get_overrides("s") == []
        assert len(await store.get_overrides("other")) == 1


class TestSpreadsheetList:
    @pytest.mark.asyncio
    async def test_replace_spreadsheets(self, store):
        await store.replace_spreadsheets([CachedSpreadsheet(id="a", name="Old")])
        await store.replace_spreadsheets(
            [
                CachedSpreadsheet(id="b", name="Budget", modified_time="2024-02-01T00:00:00Z"),
                CachedSpreadsheet(id="c", name="Chores", modified_time="2024-03-01T00:00:00Z"),
            ]
        )

        cached = await store.get_spreadsheets()

        assert [s.id for s in cached] == ["c", "b"]
