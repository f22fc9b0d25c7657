"""Owned, cancellable deferred callbacks.

A ``TimerGroup`` belongs to one entity (a team, an in-house lobby, a feature)
and holds that entity's pending timers by name. Scheduling a name that is
already pending replaces it; ``dispose()`` cancels everything the entity owns.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class TimerGroup:
    """Named asyncio timers owned by a single entity."""

    def __init__(self, owner: str = "") -> None:
        self.owner = owner
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._disposed = False

    def schedule(self, name: str, delay: float, callback: TimerCallback) -> None:
        """Run *callback* after *delay* seconds, replacing any pending timer *name*."""
        if self._disposed:
            logger.debug("timer_schedule_after_dispose owner=%s name=%s", self.owner, name)
            return
        self.cancel(name)
        self._tasks[name] = asyncio.create_task(
            self._run(name, delay, callback), name=f"timer:{self.owner}:{name}"
        )

    async def _run(self, name: str, delay: float, callback: TimerCallback) -> None:
        await asyncio.sleep(delay)
        # Drop our own entry first so the callback can reschedule the same name.
        if self._tasks.get(name) is asyncio.current_task():
            del self._tasks[name]
        try:
            await callback()
        except Exception:  # Last-resort handler: a timer has no caller to propagate to
            logger.exception("timer_callback_failed owner=%s name=%s", self.owner, name)

    def cancel(self, name: str) -> bool:
        """Cancel one timer. Returns True if it was pending."""
        task = self._tasks.pop(name, None)
        if task is None or task.done():
            return False
        if task is not asyncio.current_task():
            task.cancel()
        return True

    def is_pending(self, name: str) -> bool:
        task = self._tasks.get(name)
        return task is not None and not task.done()

    @property
    def pending(self) -> list[str]:
        return [name for name, task in self._tasks.items() if not task.done()]

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        """Cancel every pending timer; later ``schedule`` calls are ignored."""
        self._disposed = True
        for name in list(self._tasks):
            self.cancel(name)

    async def wait_closed(self) -> None:
        """Dispose and wait for cancelled tasks to unwind."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        self.dispose()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
