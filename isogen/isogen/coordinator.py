"""ISO generation coordinator.

Requests go to the remote backend first. When that fails and the local
container runtime is available, generation falls back to a local container
once. Local runs execute as background tasks and report into the
:class:`JobTracker` through the container status feed and their result.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import structlog

from builder.notifications import NotificationManager

from .api_client import download_query
from .errors import IsoGenerationError, LocalGenerationError
from .jobs import JobTracker
from .models import (
    ContainerRunResult,
    IsoGenerationResponse,
    IsoGenerationStatus,
    IsoMetadata,
    JobStatus,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from .api_client import IsoApiClient
    from .container import ContainerRuntime
    from .metadata import IsoMetadataStore
    from .models import ActiveJobView, ContainerStatus, GenerationJob, IsoGenerationOptions

logger = structlog.get_logger(__name__)

LOCAL_JOB_PREFIX = "local-"


class IsoGenerationCoordinator:
    """Routes ISO generation to the remote backend or a local container."""

    def __init__(
        self,
        api_client: IsoApiClient,
        runtime: ContainerRuntime,
        tracker: JobTracker | None = None,
        notifier: NotificationManager | None = None,
        metadata_store: IsoMetadataStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the coordinator.

        Args:
            api_client: Remote backend client.
            runtime: Local container runtime used as the fallback.
            tracker: Job tracker. A private one is created if omitted.
            notifier: Notification channel.
            metadata_store: Where records of finished local ISOs are saved.
            clock: Source of the millisecond timestamps in local job ids.
        """
        self.api_client = api_client
        self.runtime = runtime
        self.tracker = tracker or JobTracker()
        self.notifier = notifier or NotificationManager()
        self.metadata_store = metadata_store
        self._clock = clock
        self._tasks: dict[str, asyncio.Task[ContainerRunResult]] = {}
        self._unsubscribe = runtime.on_status_update(self._on_container_status)
        self._log = logger.bind(component="iso_coordinator")

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    async def request_iso_generation(
        self,
        options: IsoGenerationOptions,
        allow_local: bool = True,
    ) -> IsoGenerationResponse:
        """Start an ISO generation job.

        Args:
            options: Generation parameters.
            allow_local: Whether the local container fallback may be used.

        Raises:
            IsoGenerationError: If neither the backend nor the local runtime
                can take the job.
        """
        local_available = allow_local and await self.runtime.check_availability()
        if local_available:
            self._log.debug("local_fallback_available")

        try:
            response = await self.api_client.request_generation(options)
        except IsoGenerationError as e:
            self._log.warning("backend_request_failed", error=str(e), build_id=options.build_id)
            if not local_available:
                raise IsoGenerationError(f"Failed to request ISO generation: {e}") from e

            self.notifier.info(
                "Using local Docker for ISO generation",
                "Backend server not available, using local Docker instead.",
            )
            job_id, container_id = self._register_local_job(options)
            task = asyncio.create_task(self._run_local(job_id, options, container_id))
            self._tasks[job_id] = task
            task.add_done_callback(lambda _t, jid=job_id: self._tasks.pop(jid, None))
            return IsoGenerationResponse(job_id=job_id, status=JobStatus.PENDING.value)

        self.tracker.add_job(response.job_id, options.build_id, is_docker=False)
        return response

    async def generate_local(
        self,
        options: IsoGenerationOptions,
        check: bool = False,
    ) -> ContainerRunResult:
        """Run a local generation and wait for it.

        Raises:
            LocalGenerationError: If ``check`` is set and generation failed.
        """
        job_id, container_id = self._register_local_job(options)
        result = await self._run_local(job_id, options, container_id)
        if check and not result.success:
            raise LocalGenerationError(
                f"Local ISO generation failed: {result.last_log or 'Unknown error'}",
                result.logs,
            )
        return result

    def _register_local_job(self, options: IsoGenerationOptions) -> tuple[str, str]:
        job_id = f"{LOCAL_JOB_PREFIX}{int(self._clock() * 1000)}"
        suffix = 1
        while self.tracker.get_job(job_id) is not None:
            job_id = f"{LOCAL_JOB_PREFIX}{int(self._clock() * 1000)}-{suffix}"
            suffix += 1
        container_id = f"lfs-iso-{job_id}"
        self.tracker.add_job(job_id, options.build_id, is_docker=True, container_id=container_id)
        return job_id, container_id

    async def _run_local(
        self,
        job_id: str,
        options: IsoGenerationOptions,
        container_id: str,
    ) -> ContainerRunResult:
        self._log.info("local_generation_started", job_id=job_id, container_id=container_id)
        try:
            result = await self.runtime.run_iso_generation(options, container_id)
        except Exception as e:
            self._log.exception("local_generation_error", job_id=job_id)
            result = ContainerRunResult(
                success=False, logs=[f"Error running Docker container: {e}"]
            )

        if result.success:
            self.tracker.update_job(
                job_id,
                status=JobStatus.COMPLETED,
                progress=100,
                message=f"ISO generated successfully: {result.output}",
            )
            self.notifier.success("ISO Generated", f"Job {job_id}: {result.output}")
            self._save_metadata(job_id, options)
        else:
            last = result.last_log or "Unknown error"
            self.tracker.update_job(
                job_id,
                status=JobStatus.FAILED,
                progress=0,
                message=f"ISO generation failed: {last}",
            )
            self.notifier.error("ISO Generation Failed", f"Job {job_id}: {last}")

        self._log.info("local_generation_finished", job_id=job_id, success=result.success)
        return result

    def _save_metadata(self, job_id: str, options: IsoGenerationOptions) -> None:
        if self.metadata_store is None:
            return
        record = IsoMetadata(
            build_id=options.build_id,
            iso_name=options.iso_name,
            config_name=options.config_name or "",
            output_path=options.output_path,
            bootable=options.bootable,
            bootloader=options.bootloader,
            label=options.label,
            job_id=job_id,
            docker_generated=True,
        )
        try:
            self.metadata_store.save(record)
        except (OSError, ValueError) as e:
            self._log.warning("metadata_save_failed", job_id=job_id, error=str(e))

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def _sync_from_container(self, job: GenerationJob, status: ContainerStatus) -> None:
        self.tracker.update_job(
            job.job_id,
            progress=status.progress,
            message=status.last_log or job.message,
        )
        if status.running:
            self.tracker.update_job(job.job_id, status=JobStatus.PROCESSING)
        elif status.progress >= 100:
            self.tracker.update_job(job.job_id, status=JobStatus.COMPLETED)
        else:
            self.tracker.update_job(
                job.job_id, status=JobStatus.FAILED, message="Container stopped unexpectedly"
            )

    def _on_container_status(self, status: ContainerStatus) -> None:
        if status.container_id is None:
            return
        job = self.tracker.find_by_container(status.container_id)
        if job is None or job.status.is_terminal:
            return
        self._sync_from_container(job, status)

    def _status_of(
        self, job: GenerationJob, download_url: str | None = None
    ) -> IsoGenerationStatus:
        if job.status == JobStatus.COMPLETED and download_url is None:
            download_url = self.get_download_url(job.job_id)
        return IsoGenerationStatus(
            status=job.status,
            progress=job.progress,
            message=job.message,
            download_url=download_url if job.status == JobStatus.COMPLETED else None,
        )

    async def check_status(self, job_id: str) -> IsoGenerationStatus:
        """Current status of a job.

        Local jobs are synced from the container status feed. Remote jobs
        are fetched from the backend and merged into the tracker.

        Raises:
            IsoGenerationError: If the backend status request fails.
        """
        job = self.tracker.get_job(job_id)
        if job is not None and job.is_docker:
            container = self.runtime.get_container_status()
            if (
                not job.status.is_terminal
                and job.container_id is not None
                and container.container_id == job.container_id
            ):
                self._sync_from_container(job, container)
            return self._status_of(self.tracker.get_job(job_id) or job)

        if job is not None and job.status.is_terminal:
            return self._status_of(job)

        try:
            remote = await self.api_client.check_status(job_id)
        except IsoGenerationError as e:
            self._log.warning("status_check_failed", job_id=job_id, error=str(e))
            raise IsoGenerationError(f"Failed to check ISO generation status: {e}") from e

        if job is None:
            return remote

        merged = self.tracker.update_job(
            job_id,
            status=remote.status,
            progress=remote.progress if remote.progress is not None else job.progress,
            message=remote.message or job.message,
        )
        if merged is None:
            return remote
        if merged.status == JobStatus.FAILED and job.status != JobStatus.FAILED:
            self.notifier.error(
                "ISO Generation Failed", f"Job {job_id}: {merged.message or 'Unknown error'}"
            )
        return self._status_of(merged, remote.download_url)

    # -------------------------------------------------------------------------
    # Downloads and listings
    # -------------------------------------------------------------------------

    def get_download_url(self, job_id: str, filename: str | None = None) -> str:
        job = self.tracker.get_job(job_id)
        if job is not None and job.is_docker:
            return f"/api/iso/local/{job_id}{download_query(filename)}"
        return self.api_client.download_url(job_id, filename)

    async def download_iso(
        self, job_id: str, destination: Path, filename: str | None = None
    ) -> Path:
        """Download the ISO of a finished remote job.

        Raises:
            IsoGenerationError: For local jobs, whose ISO is already on disk,
                and for failed downloads.
        """
        job = self.tracker.get_job(job_id)
        if job is not None and job.is_docker:
            raise IsoGenerationError(f"Job {job_id} ran locally; its ISO is already on disk")

        name = filename or f"lfs-{job_id}.iso"
        self.notifier.info("ISO download started", f"Your ISO file {name} is being downloaded.")
        return await self.api_client.download(job_id, destination, filename)

    def get_active_jobs(self) -> dict[str, ActiveJobView]:
        return self.tracker.get_active_jobs()

    async def wait_for_local_jobs(self) -> None:
        """Wait until every background local generation has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def close(self) -> None:
        """Cancel background generations and detach from the runtime."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._unsubscribe()
