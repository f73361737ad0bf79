"""Periodic refresh of the attendance snapshot."""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from attendance_app.attendance import build_snapshot
from attendance_app.fetcher import SheetSource, fetch_all_sheets
from attendance_app.models import RefreshState, Sheet

logger = logging.getLogger(__name__)

FetchSheets = Callable[[List[SheetSource]], Awaitable[List[Sheet]]]


class AttendanceRefresher:
    """
    Runs refresh cycles and holds the state currently shown to users.

    Every cycle either publishes a complete new snapshot or an error; the
    published RefreshState is replaced as a whole, never mutated.
    """

    def __init__(
        self,
        sources: List[SheetSource],
        interval_seconds: float = 30.0,
        fetch: FetchSheets = fetch_all_sheets
    ):
        self.sources = sources
        self.interval_seconds = interval_seconds
        self._fetch = fetch
        self._lock = asyncio.Lock()
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self.state = RefreshState()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _publish(self, state: RefreshState) -> bool:
        # An older cycle must never replace a newer one.
        if state.generation <= self.state.generation:
            logger.warning("Discarding superseded refresh cycle %d", state.generation)
            return False
        self.state = state
        return True

    async def run_cycle(self) -> RefreshState:
        """Fetch, parse and aggregate every sheet, then publish the result."""
        self._generation += 1
        generation = self._generation

        async with self._lock:
            logger.info("Refresh cycle %d: fetching %d sheets", generation, len(self.sources))
            try:
                sheets = await self._fetch(self.sources)
                snapshot = build_snapshot(sheets)
                state = RefreshState(
                    generation=generation,
                    updated_at=snapshot.refreshed_at,
                    snapshot=snapshot,
                )
            except Exception as e:
                logger.error("Refresh cycle %d failed: %s", generation, e)
                state = RefreshState(
                    generation=generation,
                    updated_at=datetime.now(),
                    error=str(e) or type(e).__name__,
                )
            self._publish(state)
        return self.state

    async def _loop(self):
        while True:
            await self.run_cycle()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        """Start polling: one cycle now, then one every interval."""
        if not self.running:
            self._task = asyncio.create_task(self._loop())
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
