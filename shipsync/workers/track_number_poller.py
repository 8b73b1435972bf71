"""
Track Number Poller

ECCANG often accepts an order before the carrier assigns a tracking number.
After createOrder, the shipment is polled with getTrackNumber every `interval`
seconds until a number (or order code) appears or `max_attempts` ticks pass.

Per shipment: IDLE -> ARMED -> RESOLVED | EXHAUSTED. At most one poll per
shipment id; polls live in memory only and die with the process.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from shipsync.config import settings
from shipsync.exceptions import ShipmentSyncError

logger = logging.getLogger(__name__)

# resolver(shipment_id) -> True once the tracking number is persisted
Resolver = Callable[[str], Awaitable[bool]]


class TrackNumberPoller:
    """Owns the shipment id -> asyncio.Task table. Use from the event loop thread only."""

    def __init__(
        self,
        resolver: Optional[Resolver] = None,
        interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ):
        self.resolver = resolver
        self.interval = settings.TRACK_NUMBER_POLL_INTERVAL if interval is None else interval
        self.max_attempts = settings.TRACK_NUMBER_POLL_MAX_ATTEMPTS if max_attempts is None else max_attempts
        self._polls: Dict[str, asyncio.Task] = {}
        self._attempts: Dict[str, int] = {}
        self._armed_at: Dict[str, datetime] = {}

    def arm(self, shipment_id: str) -> asyncio.Task:
        """
        Start polling for a shipment, replacing any poll already running for it.

        Must be called from a running event loop. Never awaits, so arm/disarm
        for the same id cannot interleave.
        """
        if self.resolver is None:
            raise RuntimeError("TrackNumberPoller has no resolver")
        self.disarm(shipment_id)
        task = asyncio.create_task(self._run(shipment_id), name=f"track-number-poll:{shipment_id}")
        self._polls[shipment_id] = task
        self._attempts[shipment_id] = 0
        self._armed_at[shipment_id] = datetime.now(timezone.utc)
        logger.info("Track number poll armed for shipment %s", shipment_id)
        return task

    def disarm(self, shipment_id: str) -> bool:
        """Cancel the poll for a shipment. No-op when none is running."""
        task = self._polls.pop(shipment_id, None)
        self._attempts.pop(shipment_id, None)
        self._armed_at.pop(shipment_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.info("Track number poll disarmed for shipment %s", shipment_id)
        return True

    def is_armed(self, shipment_id: str) -> bool:
        task = self._polls.get(shipment_id)
        return task is not None and not task.done()

    def attempts(self, shipment_id: str) -> int:
        return self._attempts.get(shipment_id, 0)

    @property
    def active_count(self) -> int:
        return sum(1 for task in self._polls.values() if not task.done())

    async def _run(self, shipment_id: str) -> str:
        """Poll loop for one shipment; returns 'resolved' or 'exhausted'."""
        current = asyncio.current_task()
        attempt = 0
        try:
            while True:
                await asyncio.sleep(self.interval)
                attempt += 1
                self._attempts[shipment_id] = attempt
                try:
                    resolved = await self.resolver(shipment_id)
                except ShipmentSyncError as e:
                    logger.warning(
                        "Track number poll %s/%s for shipment %s failed: %s",
                        attempt, self.max_attempts, shipment_id, e.message,
                    )
                    resolved = False
                except Exception as e:
                    logger.exception("Track number poll for shipment %s crashed: %s", shipment_id, e)
                    resolved = False

                if resolved:
                    logger.info("Track number resolved for shipment %s after %s attempt(s)", shipment_id, attempt)
                    return "resolved"
                if attempt >= self.max_attempts:
                    logger.warning(
                        "Track number poll exhausted for shipment %s after %s attempts", shipment_id, attempt
                    )
                    return "exhausted"
        finally:
            # A re-arm may already have replaced this task
            if self._polls.get(shipment_id) is current:
                self._polls.pop(shipment_id, None)
                self._attempts.pop(shipment_id, None)
                self._armed_at.pop(shipment_id, None)

    async def shutdown(self) -> None:
        """Cancel every outstanding poll and wait for them to finish."""
        tasks = [task for task in self._polls.values() if not task.done()]
        self._polls.clear()
        self._attempts.clear()
        self._armed_at.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %s outstanding track number poll(s)", len(tasks))

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of active polls."""
        return {
            shipment_id: {
                "attempts": self._attempts.get(shipment_id, 0),
                "max_attempts": self.max_attempts,
                "interval_seconds": self.interval,
                "armed_at": self._armed_at[shipment_id].isoformat() if shipment_id in self._armed_at else None,
                "status": "running" if not task.done() else "finished",
            }
            for shipment_id, task in self._polls.items()
        }
