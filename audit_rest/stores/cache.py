"""
Pre-State Cache
===============
In-memory cache of read snapshots used as update baselines.
"""

import asyncio
import time
from contextlib import suppress
from typing import Any, Callable, Dict, Optional
import structlog

logger = structlog.get_logger(__name__)

FIVE_MINUTES_MS = 300000


class PreStateCache:
    """
    Snapshot cache keyed by canonical read endpoint.

    Entries carry no timestamps of their own. The whole mapping is swapped
    for an empty one every ``expires_in_ms``, so an entry lives anywhere
    between 0 and the interval. The swap happens lazily on access once the
    current generation is old enough, and eagerly when the background
    sweeper is running.
    """

    def __init__(
        self,
        expires_in_ms: int = FIVE_MINUTES_MS,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.expires_in = expires_in_ms / 1000
        self.enabled = enabled
        self._clock = clock
        self._entries: Dict[str, Any] = {}
        self._generation_start = clock()
        self._sweeper: Optional[asyncio.Task] = None

    def get(self, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        self._expire_generation()
        return self._entries.get(key)

    def set(self, key: str, value: Any) -> None:
        if not self.enabled:
            return
        self._expire_generation()
        self._entries[key] = value

    put = set

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Replace the whole mapping at once."""
        self._entries = {}
        self._generation_start = self._clock()

    def __len__(self) -> int:
        return len(self._entries)

    def _expire_generation(self) -> None:
        if self._clock() - self._generation_start >= self.expires_in:
            dropped = len(self._entries)
            self.clear()
            if dropped:
                logger.debug("pre_state_cache_expired", dropped=dropped)

    # ------------------------------------------------------------------
    # Background sweeper
    # ------------------------------------------------------------------

    @property
    def sweeping(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start_sweeper(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self.sweeping:
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())
        logger.info("pre_state_cache_sweeper_started", interval_seconds=self.expires_in)

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None
        logger.info("pre_state_cache_sweeper_stopped")

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.expires_in)
            dropped = len(self._entries)
            self.clear()
            logger.debug("pre_state_cache_swept", dropped=dropped)
