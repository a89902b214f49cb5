"""Tests for the connectivity probe."""

from unittest.mock import patch

import httpx
import pytest

from sheetlens.sync import ConnectivityMonitor


@pytest.fixture
def monitor():
    return ConnectivityMonitor(probe_url="https://www.googleapis.com/", timeout=1.0, offline_mode=False)


class TestConnectivityMonitor:
    @pytest.mark.asyncio
    async def test_any_response_is_online(self, monitor):
        response = httpx.Response(404, request=httpx.Request("HEAD", monitor.probe_url))
        with patch("httpx.AsyncClient.head", return_value=response) as head:
            assert await monitor.is_online() is True

        head.assert_awaited_once_with(monitor.probe_url)

    @pytest.mark.asyncio
    async def test_transport_error_is_offline(self, monitor):
        with patch("httpx.AsyncClient.head", side_effect=httpx.ConnectError("Name or service not known")):
            assert await monitor.is_online() is False

    @pytest.mark.asyncio
    async def test_timeout_is_offline(self, monitor):
        with patch("httpx.AsyncClient.head", side_effect=httpx.ReadTimeout("timed out")):
            assert await monitor.is_online() is False

    @pytest.mark.asyncio
    async def test_offline_mode_skips_probe(self):
        monitor = ConnectivityMonitor(offline_mode=True)

        with patch("httpx.AsyncClient.head") as head:
            assert await monitor.is_online() is False

        head.assert_not_called()
