"""Connectivity oracle backed by a lightweight HTTP probe."""

import logging
from typing import Optional

import httpx

from ..config import settings

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Answers "can we reach the spreadsheet service right now?"."""

    def __init__(
        self,
        probe_url: Optional[str] = None,
        timeout: Optional[float] = None,
        offline_mode: Optional[bool] = None,
    ):
        self.probe_url = probe_url or settings.connectivity_probe_url
        self.timeout = timeout if timeout is not None else settings.connectivity_timeout_seconds
        self.offline_mode = settings.offline_mode if offline_mode is None else offline_mode

    async def is_online(self) -> bool:
        if self.offline_mode:
            return False
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                await client.head(self.probe_url)
        except httpx.HTTPError as e:
            logger.debug(f"Connectivity probe failed: {e}")
            return False
        # Any HTTP response, even an error status, means the network is up
        return True
