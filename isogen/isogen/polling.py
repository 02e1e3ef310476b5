"""Independent status polling for ISO generation jobs.

Each watched job gets its own asyncio task. A task ends as soon as its
job reaches a terminal status, so no poller outlives its job.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from .errors import IsoGenerationError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .coordinator import IsoGenerationCoordinator
    from .models import IsoGenerationStatus

logger = structlog.get_logger(__name__)

DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_MAX_ERRORS = 5


class JobPoller:
    """Polls job status on independent timers."""

    def __init__(
        self,
        coordinator: IsoGenerationCoordinator,
        interval: float = DEFAULT_POLL_INTERVAL,
        on_update: Callable[[str, IsoGenerationStatus], None] | None = None,
        max_errors: int = DEFAULT_MAX_ERRORS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the poller.

        Args:
            coordinator: Source of job status.
            interval: Seconds between two polls of the same job.
            on_update: Called with every status fetched.
            max_errors: Consecutive failed polls after which a job is dropped.
            sleep: Awaitable sleep, replaceable for fast runs.
        """
        self.coordinator = coordinator
        self.interval = interval
        self.on_update = on_update
        self.max_errors = max_errors
        self._sleep = sleep
        self._tasks: dict[str, asyncio.Task[IsoGenerationStatus | None]] = {}
        self.last_status: dict[str, IsoGenerationStatus] = {}
        self._log = logger.bind(component="job_poller")

    @property
    def watched(self) -> list[str]:
        return list(self._tasks)

    def is_watching(self, job_id: str) -> bool:
        return job_id in self._tasks

    def watch(self, job_id: str) -> asyncio.Task[IsoGenerationStatus | None]:
        """Start polling ``job_id``; returns the existing task if already watched."""
        existing = self._tasks.get(job_id)
        if existing is not None:
            return existing

        task = asyncio.create_task(self._poll(job_id), name=f"poll-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda t, jid=job_id: self._forget(jid, t))
        self._log.debug("watching_job", job_id=job_id)
        return task

    def _forget(self, job_id: str, task: asyncio.Task[IsoGenerationStatus | None]) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]

    async def _poll(self, job_id: str) -> IsoGenerationStatus | None:
        errors = 0
        while True:
            try:
                status = await self.coordinator.check_status(job_id)
            except IsoGenerationError as e:
                errors += 1
                self._log.warning("poll_failed", job_id=job_id, error=str(e), errors=errors)
                if errors >= self.max_errors:
                    self._log.error("poll_abandoned", job_id=job_id)
                    return self.last_status.get(job_id)
            else:
                errors = 0
                self.last_status[job_id] = status
                if self.on_update is not None:
                    self.on_update(job_id, status)
                if status.status.is_terminal:
                    self._log.info("job_finished", job_id=job_id, status=status.status.value)
                    return status
            await self._sleep(self.interval)

    async def wait(self, job_id: str) -> IsoGenerationStatus | None:
        """Wait for a watched job's poller to finish."""
        task = self._tasks.get(job_id)
        if task is None:
            return self.last_status.get(job_id)
        return await task

    def stop(self, job_id: str) -> None:
        task = self._tasks.pop(job_id, None)
        if task is not None:
            task.cancel()

    async def close(self) -> None:
        """Cancel every poller."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
