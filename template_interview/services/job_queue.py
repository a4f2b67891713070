"""
JobQueue: fire-and-forget background jobs on the running event loop.

Handlers are registered per job type. add_job() schedules the handler as an
asyncio task and returns immediately; failures are logged, never raised to the
caller. Task references are held until completion so they are not
garbage-collected mid-flight. schedule_every() enqueues a job on a fixed
interval for periodic work such as expired-session cleanup.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from template_interview.models.job import BackgroundJob

logger = logging.getLogger(__name__)

JobHandler = Callable[[BackgroundJob], Awaitable[None]]


class JobQueue:

    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}
        self._tasks: set[asyncio.Task] = set()

    def register(self, job_type: str, handler: JobHandler) -> None:
        self._handlers[job_type] = handler

    async def add_job(self, job: BackgroundJob) -> None:
        handler = self._handlers.get(job.type)
        if handler is None:
            logger.warning("No handler registered for job type %s; dropping job %s.", job.type, job.jobId)
            return
        task = asyncio.create_task(self._run(handler, job), name=f"job-{job.type}-{job.jobId}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def schedule_every(
        self,
        interval_seconds: float,
        make_job: Callable[[], BackgroundJob],
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> asyncio.Task:
        """
        Enqueue a fresh job every interval_seconds until the returned task is
        cancelled. The first job is enqueued after one interval.
        """
        async def _loop() -> None:
            while True:
                await sleep(interval_seconds)
                await self.add_job(make_job())

        return asyncio.create_task(_loop(), name="job-scheduler")

    async def _run(self, handler: JobHandler, job: BackgroundJob) -> None:
        try:
            await handler(job)
            logger.debug("Job %s (%s) finished.", job.jobId, job.type)
        except Exception:
            logger.exception("Job %s (%s) failed for session=%s.", job.jobId, job.type, job.sessionId)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every scheduled job; used on shutdown and in tests."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
