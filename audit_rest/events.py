"""
Audit Events
============
In-process publish/subscribe for completed audit records.

Delivery is fire-and-forget: a subscriber that raises is logged and
skipped, coroutine subscribers are scheduled as tasks and never awaited
by the publisher.
"""

import asyncio
import inspect
from typing import Any, Callable, Dict, List, Optional, Set
import structlog

from .exceptions import NullRecordError
from .metrics import record_emitted
from .records.models import AuditRecord
from .stores.base import KeyValueStore

logger = structlog.get_logger(__name__)

Handler = Callable[[AuditRecord], Any]


def log_audit_record(record: AuditRecord) -> None:
    """Default subscriber: log the emitted record."""
    logger.info("audit_record_emitted", record=record.to_dict())


class AuditEventBus:
    """Named channels with any number of subscribers."""

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def register(self, channel: str) -> None:
        self._handlers.setdefault(channel, [])

    def subscribe(self, channel: str, handler: Handler) -> None:
        self._handlers.setdefault(channel, []).append(handler)

    def unsubscribe(self, channel: str, handler: Handler) -> None:
        handlers = self._handlers.get(channel, [])
        if handler in handlers:
            handlers.remove(handler)

    def subscribers(self, channel: str) -> List[Handler]:
        return list(self._handlers.get(channel, []))

    def publish(self, channel: str, record: AuditRecord) -> int:
        """
        Deliver ``record`` to every subscriber of ``channel``.

        Returns:
            Number of subscribers the record was handed to
        """
        handlers = self._handlers.get(channel, [])
        if not handlers:
            logger.warning("audit_channel_without_subscribers", channel=channel)
            return 0

        for handler in handlers:
            try:
                result = handler(record)
                if inspect.isawaitable(result):
                    self._schedule(result)
            except Exception as e:
                logger.error("audit_subscriber_failed", channel=channel, error=str(e))
        return len(handlers)

    def _schedule(self, awaitable) -> None:
        task = asyncio.get_running_loop().create_task(awaitable)
        # keep a reference until done, the loop only holds weak ones
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("audit_subscriber_failed", error=str(task.exception()))

    async def drain(self) -> None:
        """Wait for scheduled coroutine subscribers (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class AuditEmitter:
    """
    Publishes completed records on one channel and clears their pending slot.

    The channel always has at least one subscriber: the configured handler,
    or ``log_audit_record`` when none is given.
    """

    def __init__(
        self,
        pending: KeyValueStore,
        channel: str = "auditing",
        handler: Optional[Handler] = None,
        bus: Optional[AuditEventBus] = None,
    ):
        self.pending = pending
        self.channel = channel
        self.bus = bus or AuditEventBus()
        self.bus.register(channel)
        self.bus.subscribe(channel, handler or log_audit_record)

    def subscribe(self, handler: Handler) -> None:
        self.bus.subscribe(self.channel, handler)

    def emit(self, record: Optional[AuditRecord], pending_key: str) -> None:
        if record is None:
            raise NullRecordError(
                f"Cannot audit null audit record for endpoint: {pending_key}",
                endpoint=pending_key,
            )

        self.bus.publish(self.channel, record)
        self.pending.delete(pending_key)
        record_emitted(record.type.value)
