"""
Periodic daily-challenge refresh.

Day rollover has no event of its own, so a background task polls the
challenge scheduler at a fixed interval while the application runs.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class ChallengeRefreshPoller:
    """Runs ``refresh`` every ``interval`` seconds until stopped"""

    def __init__(self, refresh: Callable[[], bool], interval: float = 60.0):
        self.refresh = refresh
        self.interval = interval

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._polls = 0
        self._refreshes = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start polling"""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(f"Challenge refresh poller started (every {self.interval}s)")

    async def stop(self):
        """Stop polling"""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Challenge refresh poller stopped")

    async def _poll_loop(self):
        while self._running:
            await asyncio.sleep(self.interval)
            await self.poll_once()

    async def poll_once(self) -> bool:
        """Run one refresh check; errors are logged and polling continues"""
        self._polls += 1
        try:
            refreshed = self.refresh()
        except Exception as e:
            logger.error(f"Challenge refresh failed: {e}")
            return False

        if refreshed:
            self._refreshes += 1
        return refreshed

    def get_stats(self) -> Dict[str, Any]:
        return {
            "interval": self.interval,
            "polls": self._polls,
            "refreshes": self._refreshes,
            "running": self._running,
        }
