"""Optimistic concurrency check for row edits."""

import asyncio
import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ..sheets.client import GoogleSheetsClient

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = "Sheet has been updated by someone else. Refresh before saving?"


class ConflictResolution(str, Enum):
    """Choices offered to the user when an edit conflicts."""

    DISCARD_AND_RELOAD = "discard_and_reload"
    CANCEL = "cancel"  # Keep editing locally, nothing is written


class ConflictCheck(BaseModel):
    """Decision returned by the guard. ``conflict`` means the write must not happen."""

    conflict: bool = False
    message: Optional[str] = None
    loaded_token: Optional[str] = None
    current_token: Optional[str] = None
    resolutions: list[ConflictResolution] = Field(default_factory=list)

    @property
    def proceed(self) -> bool:
        return not self.conflict


class ConflictGuard:
    """Compares the change token seen at load time with the current one."""

    def __init__(self, sheets_client: GoogleSheetsClient):
        self.sheets_client = sheets_client

    async def check(self, spreadsheet_id: str, loaded_token: Optional[str]) -> ConflictCheck:
        current_token = await self._current_token(spreadsheet_id)
        if loaded_token is None or current_token is None or loaded_token == current_token:
            return ConflictCheck(loaded_token=loaded_token, current_token=current_token)

        logger.info(
            f"Edit conflict on {spreadsheet_id}: loaded {loaded_token}, now {current_token}"
        )
        return ConflictCheck(
            conflict=True,
            message=CONFLICT_MESSAGE,
            loaded_token=loaded_token,
            current_token=current_token,
            resolutions=[ConflictResolution.DISCARD_AND_RELOAD, ConflictResolution.CANCEL],
        )

    async def _current_token(self, spreadsheet_id: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(self.sheets_client.fetch_change_token, spreadsheet_id)
        except Exception as e:
            logger.warning(f"Change token unavailable for {spreadsheet_id}, skipping conflict check: {e}")
            return None
