"""
Fire-and-forget execution of notification coroutines.

Each notification runs as its own asyncio task. The dispatcher holds a
reference until the task finishes and logs any failure; nothing is
propagated back to the request that triggered it.
"""

import asyncio
from typing import Any, Awaitable, Optional, Set

from utils.logging_config import setup_logging

logger = setup_logging(name=__name__, log_file="notifications.log", log_dir="logs")


class NotificationDispatcher:
    """Runs notification coroutines as background tasks."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of notifications still running."""
        return len(self._tasks)

    def dispatch(self, coro: Awaitable[Any], description: str) -> asyncio.Task:
        """
        Schedule a notification without waiting for it.

        Must be called from a running event loop.

        Args:
            coro: Coroutine performing the send; a ``False`` result counts as failure
            description: Human-readable label for logs
        """
        task = asyncio.create_task(self._run(coro, description))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, coro: Awaitable[Any], description: str) -> Any:
        try:
            result = await coro
        except asyncio.CancelledError:
            logger.warning(f"Notification cancelled: {description}")
            raise
        except Exception as e:
            logger.error(f"Notification failed: {description}: {e}", exc_info=True)
            return False

        if result is False:
            logger.warning(f"Notification not delivered: {description}")
        else:
            logger.debug(f"Notification delivered: {description}")
        return result

    async def drain(self) -> None:
        """Wait for all outstanding notifications (shutdown, tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


_dispatcher: Optional[NotificationDispatcher] = None


def get_dispatcher() -> NotificationDispatcher:
    """Get or create the process-wide dispatcher."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher()
    return _dispatcher
