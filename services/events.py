"""In-process domain event bus.

Publishing never waits for handlers: each handler runs as its own task, and
a failing handler is logged without affecting the publisher.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Set

logger = logging.getLogger(__name__)

NEW_ORDER = "new_order"
ORDER_STATUS_UPDATE = "order_status_update"
CUSTOMER_REGISTERED = "customer_registered"

Handler = Callable[..., Awaitable[object]]


class EventBus:
    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(self, event: str, handler: Handler):
        self._handlers.setdefault(event, []).append(handler)

    def publish(self, event: str, **payload) -> List[asyncio.Task]:
        tasks = []
        for handler in self._handlers.get(event, []):
            task = asyncio.ensure_future(self._run(event, handler, payload))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            tasks.append(task)
        return tasks

    async def _run(self, event: str, handler: Handler, payload: dict):
        try:
            await handler(**payload)
        except Exception:
            logger.exception(f"❌ Handler {getattr(handler, '__name__', handler)} failed for {event}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self):
        """Wait for every in-flight handler, including ones scheduled meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
