"""In-flight request deduplication.

Collapses concurrent requests for the same cache key into one upstream
call. The first caller starts a task; everyone arriving while it is still
running awaits that same task and sees the same value or exception.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InFlightDeduplicator:
    """One outstanding task per key.

    State lives on the instance and is only touched from the event loop,
    so no locking is needed. The entry for a key is removed as soon as its
    task finishes, successfully or not, so the next call starts fresh.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task] = {}
        self.coalesced = 0

    @property
    def in_flight(self) -> int:
        """Number of keys with an outstanding task."""
        return len(self._tasks)

    def is_pending(self, key: str) -> bool:
        return key in self._tasks

    async def run(self, key: str, producer: Callable[[], Awaitable[T]]) -> T:
        """Await the shared task for ``key``, starting it with ``producer`` if needed.

        The shared task is shielded: cancelling one waiter (e.g. a client
        disconnect) does not cancel the upstream call other waiters need.
        """
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(producer())
            self._tasks[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        else:
            self.coalesced += 1
            logger.debug("Joining in-flight request for %s", key)
        return await asyncio.shield(task)

    def _forget(self, key: str, task: "asyncio.Task[Any]") -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        # Retrieve the exception so an unawaited failure (all waiters
        # cancelled) is not reported as "never retrieved".
        if not task.cancelled():
            task.exception()
