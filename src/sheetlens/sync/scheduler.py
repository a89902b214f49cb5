"""Background drain of the pending mutation queue."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..config import settings
from .connectivity import ConnectivityMonitor
from .queue import DrainReport

logger = logging.getLogger(__name__)


class DrainScheduler:
    """Runs at most one connectivity-gated drain job at a time.

    A drain requested while one is already scheduled or running does not
    start a second job; it makes the running job take one more pass once
    the current one ends, so entries enqueued mid-pass are not stranded.
    The job waits until the network is reachable, drains, and
    keeps retrying with exponential backoff while entries remain, up to
    ``max_attempts`` passes per request.
    """

    def __init__(
        self,
        drain: Callable[[], Awaitable[DrainReport]],
        connectivity: ConnectivityMonitor,
        poll_seconds: Optional[float] = None,
        retry_base_seconds: Optional[float] = None,
        retry_max_seconds: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ):
        self._drain = drain
        self.connectivity = connectivity
        self.poll_seconds = poll_seconds if poll_seconds is not None else settings.connectivity_poll_seconds
        self.retry_base_seconds = (
            retry_base_seconds if retry_base_seconds is not None else settings.drain_retry_base_seconds
        )
        self.retry_max_seconds = (
            retry_max_seconds if retry_max_seconds is not None else settings.drain_retry_max_seconds
        )
        self.max_attempts = max_attempts if max_attempts is not None else settings.drain_max_attempts
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self._rerun = False

    @property
    def is_scheduled(self) -> bool:
        return self._task is not None and not self._task.done()

    def request_drain(self) -> bool:
        """Schedule a drain job; returns False when one is already pending."""
        if self._stop.is_set():
            logger.debug("Drain requested after shutdown, ignoring")
            return False
        if self.is_scheduled:
            self._rerun = True
            logger.debug("Drain already scheduled, folding request into it")
            return False
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("Scheduled background drain")
        return True

    def retry_delay(self, attempts: int) -> float:
        return min(self.retry_max_seconds, self.retry_base_seconds * (2 ** max(0, attempts - 1)))

    async def wait_idle(self):
        """Wait for the current drain job, if any, to finish."""
        if self._task is not None:
            await self._task

    async def shutdown(self):
        """Stop scheduling; a replay already in flight runs to completion."""
        self._stop.set()
        await self.wait_idle()

    async def _run(self):
        attempts = 0
        while not self._stop.is_set():
            if not await self.connectivity.is_online():
                await self._sleep(self.poll_seconds)
                continue

            attempts += 1
            self._rerun = False
            try:
                report = await self._drain()
            except Exception as e:
                logger.warning(f"Background drain failed: {e}")
                report = None

            if report is not None:
                logger.info(
                    f"Drain pass {attempts}: {report.status.value}, "
                    f"{report.applied} applied, {report.remaining} remaining"
                )
                if report.remaining == 0:
                    if not self._rerun:
                        return
                    # Requested during the pass
                    attempts = 0
                    continue

            if attempts >= self.max_attempts and self._rerun:
                attempts = 0
            elif attempts >= self.max_attempts:
                logger.warning(
                    f"Giving up background drain after {attempts} passes; "
                    "entries stay queued until the next request"
                )
                return
            await self._sleep(self.retry_delay(attempts))

    async def _sleep(self, seconds: float):
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
