"""
voterelay.services.background — Detached side-effect tasks
===========================================================

Some work triggered by a webhook must never influence its response: the
test-vote DM, the invalid-request counter and forwarding.  They run as
*detached* tasks: scheduled on the loop, tracked until they finish, and
any exception is logged rather than propagated.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class DetachedTasks:
    """Spawn-and-forget task group with failure logging.

    Holding a reference to each task keeps it from being garbage-collected
    mid-flight; :meth:`drain` lets shutdown (and tests) wait for them.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()
        self.failures = 0

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task:
        """Schedule *coro* on the running loop and return immediately."""
        task = asyncio.get_running_loop().create_task(self._guard(coro, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guard(self, coro: Coroutine[Any, Any, Any], name: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            logger.debug("Detached task %s cancelled", name)
            raise
        except Exception:
            self.failures += 1
            logger.exception("Detached task %s failed", name)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for every task spawned so far (and any they spawn)."""
        while self._tasks:
            await asyncio.wait(list(self._tasks), timeout=timeout)
            if timeout is not None:
                break

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
