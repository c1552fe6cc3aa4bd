"""Reply task queue — keeps Claude calls off the socket receive loop.

Chat turns and design analyses each run as their own ``asyncio.Task`` so the
plugin socket keeps receiving (and a new plugin can still connect) while a
model call is outstanding. Replies may therefore arrive out of order; each
one is self-describing by ``type``.

There is no user-facing cancel: a job runs to completion or error. Only
process shutdown cancels what is still running.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine, Optional

logger = logging.getLogger(__name__)

OnError = Callable[[str, BaseException], Coroutine[Any, Any, None]]


class ReplyTaskQueue:
    """Tracks in-flight reply coroutines and reports unexpected failures."""

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task] = {}
        self._failure_count: int = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit(
        self,
        job_id: str,
        coro: Coroutine[Any, Any, Any],
        on_error: Optional[OnError] = None,
    ) -> asyncio.Task:
        """Schedule *coro* as a background task.

        Args:
            job_id:   Unique identifier used in log messages.
            coro:     The reply coroutine (it sends its own reply).
            on_error: Async callback ``on_error(job_id, exc)`` fired if *coro*
                      raises, so the caller can still answer the plugin.
        """
        task = asyncio.create_task(self._run(job_id, coro, on_error))
        self._tasks[job_id] = task
        task.add_done_callback(lambda t: self._tasks.pop(job_id, None))
        logger.debug("[ReplyQueue] Job %s submitted. Active jobs: %d", job_id, len(self._tasks))
        return task

    def active_count(self) -> int:
        return len(self._tasks)

    @property
    def failure_count(self) -> int:
        """Total number of jobs that ended with an unexpected exception."""
        return self._failure_count

    async def wait_idle(self) -> None:
        """Wait until every job submitted so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    def cancel_all(self) -> None:
        """Cancel every pending job (process shutdown only)."""
        for task in list(self._tasks.values()):
            task.cancel()
        if self._tasks:
            logger.info("[ReplyQueue] Cancelled %d reply jobs.", len(self._tasks))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(
        self,
        job_id: str,
        coro: Coroutine[Any, Any, Any],
        on_error: Optional[OnError],
    ) -> None:
        try:
            await coro
            logger.debug("[ReplyQueue] Job %s completed.", job_id)
        except asyncio.CancelledError:
            logger.warning("[ReplyQueue] Job %s was cancelled.", job_id)
            raise
        except Exception as exc:
            self._failure_count += 1
            logger.error("[ReplyQueue] Job %s failed: %s", job_id, exc, exc_info=True)
            if on_error is not None:
                try:
                    await on_error(job_id, exc)
                except Exception as cb_exc:
                    logger.error("[ReplyQueue] Error callback for %s failed: %s", job_id, cb_exc)
