"""
Background maintenance: evicts expired cache records and expired
recent-use entries on a fixed timer.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from .word_service import WordService

logger = logging.getLogger(__name__)

MIN_INTERVAL_SECS = 5.0


class MaintenanceWorker:
    def __init__(self, service: WordService, interval_secs: float = 60 * 60):
        self.service = service
        self.interval_secs = max(MIN_INTERVAL_SECS, interval_secs)
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def started(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> Optional[Dict[str, Any]]:
        """One maintenance pass. Returns None when a previous pass is still running."""
        if self._running:
            logger.debug("[Maintenance] Previous pass still running; skipping")
            return None
        self._running = True
        try:
            evicted = await self.service.clear_expired_cache()
            expired = self.service.cleanup_recent_words()
            if evicted or expired:
                logger.info(f"[Maintenance] Evicted {evicted} cached words, expired {expired} recent words")
            return {'evicted_words': evicted, 'expired_recent_words': expired}
        finally:
            self._running = False

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.warning(f"[Maintenance] Pass failed: {e}")
            await asyncio.sleep(self.interval_secs)

    def start(self) -> None:
        """Start the periodic loop on the running event loop (idempotent)."""
        if self.started:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info(f"[Maintenance] Background worker started (every {self.interval_secs:.0f}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("[Maintenance] Background worker stopped")
