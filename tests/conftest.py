"""Pytest configuration and shared fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

from sheetlens.sheets import GoogleSheetsClient
from sheetlens.sheets.models import SheetMetadata, SheetTab, WriteResult
from sheetlens.storage import LocalStore
from sheetlens.sync import ConnectivityMonitor


@pytest_asyncio.fixture
async def store(tmp_path: Path):
    """Create a test local store."""
    local_store = LocalStore(tmp_path / "test.db")
    await local_store.initialize()
    yield local_store
    await local_store.close()


@pytest.fixture
def mock_sheets_client() -> Mock:
    """Create a mocked Google Sheets client."""
    client = Mock(spec=GoogleSheetsClient)

    client.fetch_values = Mock(
        return_value=[
            ["", "Q1 Report", "", ""],
            ["Name", "Amount", "Date", "Status"],
            ["Alice", "100", "2024-01-01", "Done"],
            ["Bob", "$250.00", "2024-01-02", "Open"],
        ]
    )
    client.fetch_formulas = Mock(return_value=[[], [], [None, None, None, None], [None, None, None, None]])
    client.fetch_metadata = Mock(return_value=SheetMetadata(sheet_id=0, title="Sheet1"))
    client.fetch_change_token = Mock(return_value="T1")
    client.list_spreadsheets = Mock(return_value=[])
    client.append_row = Mock(
        return_value=WriteResult(
            success=True,
            spreadsheet_id="test-sheet-123",
            sheet_name="Sheet1",
            updated_range="Sheet1!A5:D5",
            updated_cells=4,
        )
    )
    client.update_row = Mock(
        return_value=WriteResult(
            success=True,
            spreadsheet_id="test-sheet-123",
            sheet_name="Sheet1",
            updated_range="Sheet1!A3:D3",
            updated_cells=4,
        )
    )
    client.delete_row = Mock(
        return_value=WriteResult(
            success=True,
            spreadsheet_id="test-sheet-123",
            sheet_name="Sheet1",
            updated_range="'Sheet1'!4:4",
        )
    )
    client.list_sheet_tabs = Mock(
        return_value=[SheetTab(sheet_id=0, title="Sheet1", index=0), SheetTab(sheet_id=981, title="Archive", index=1)]
    )

    return client


@pytest.fixture
def online() -> Mock:
    """Connectivity monitor reporting the network as reachable."""
    monitor = Mock(spec=ConnectivityMonitor)
    monitor.is_online = AsyncMock(return_value=True)
    return monitor


@pytest.fixture
def offline() -> Mock:
    """Connectivity monitor reporting no network."""
    monitor = Mock(spec=ConnectivityMonitor)
    monitor.is_online = AsyncMock(return_value=False)
    return monitor
