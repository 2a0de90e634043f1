"""
Common utilities for background maintenance tasks.

This module exposes helpers for scheduling periodic maintenance jobs and
stopping them when the application shuts down. Individual maintenance
modules register their task functions here rather than duplicating scheduling
logic.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass
class PeriodicJob:
    """Handle for a job scheduled with :func:`startup`."""

    task: asyncio.Task
    stop_event: asyncio.Event = field(repr=False)

    def done(self) -> bool:
        return self.task.done()


async def startup(task_fn: Callable[[], Awaitable[object]], interval: float) -> PeriodicJob:
    """
    Schedule ``task_fn`` to run periodically every ``interval`` seconds.

    The first run happens one ``interval`` after scheduling. Any exception
    raised by the task function is logged but does not stop the periodic
    execution.

    Returns a :class:`PeriodicJob` handle for :func:`shutdown`.
    """

    stop_event = asyncio.Event()

    async def _periodic() -> None:
        while True:
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
                return
            except asyncio.TimeoutError:
                pass
            try:
                await task_fn()
            except Exception:
                logger.exception("Maintenance cycle failed")

    return PeriodicJob(asyncio.create_task(_periodic()), stop_event)


async def shutdown(job: PeriodicJob | None) -> None:
    """
    Stop a job started with :func:`startup`.

    Only the wait between cycles is interrupted: a cycle already running is
    allowed to finish before this returns. Tolerates ``None``.
    """

    if not job:
        return

    job.stop_event.set()
    try:
        await job.task
    except asyncio.CancelledError:  # pragma: no cover - cancelled elsewhere
        pass
