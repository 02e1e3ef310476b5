"""In-memory tracker for ISO generation jobs.

The tracker is the only owner of job state. Every read returns a copy and
every update replaces the job with a merged snapshot, so concurrent pollers
never observe a half-updated job.
"""

from __future__ import annotations

from typing import Any

import structlog

from .models import ActiveJobView, GenerationJob, JobStatus

logger = structlog.get_logger(__name__)

# Fields fixed at creation time
IMMUTABLE_FIELDS = frozenset({"job_id", "build_id", "is_docker", "start_time"})


class JobTracker:
    """Tracks ISO generation jobs by id."""

    def __init__(self) -> None:
        self._jobs: dict[str, GenerationJob] = {}
        self._log = logger.bind(component="job_tracker")

    def add_job(
        self,
        job_id: str,
        build_id: str,
        is_docker: bool,
        container_id: str | None = None,
    ) -> GenerationJob:
        """Register a new pending job."""
        message = "Starting local Docker container" if is_docker else "Submitted to backend server"
        job = GenerationJob(
            job_id=job_id,
            build_id=build_id,
            status=JobStatus.PENDING,
            progress=0,
            container_id=container_id,
            message=message,
            is_docker=is_docker,
        )
        self._jobs[job_id] = job
        self._log.info("job_added", job_id=job_id, build_id=build_id, is_docker=is_docker)
        return job.model_copy()

    def update_job(self, job_id: str, **updates: Any) -> GenerationJob | None:
        """Merge ``updates`` into a job.

        Unknown ids are ignored. Identity fields cannot change, and a job in
        a terminal status keeps that status.

        Returns:
            Copy of the updated job, or None if the id is unknown.
        """
        current = self._jobs.get(job_id)
        if current is None:
            self._log.debug("update_unknown_job", job_id=job_id)
            return None

        changes = {k: v for k, v in updates.items() if k not in IMMUTABLE_FIELDS}
        if "status" in changes:
            changes["status"] = JobStatus(changes["status"])
            if current.status.is_terminal and changes["status"] != current.status:
                self._log.debug(
                    "terminal_status_kept",
                    job_id=job_id,
                    status=current.status.value,
                    requested=changes["status"].value,
                )
                changes["status"] = current.status
        if "progress" in changes and changes["progress"] is not None:
            changes["progress"] = max(0, min(100, int(changes["progress"])))

        merged = GenerationJob.model_validate({**current.model_dump(), **changes})
        self._jobs[job_id] = merged

        if merged.status != current.status:
            self._log.info("job_status_changed", job_id=job_id, status=merged.status.value)
        return merged.model_copy()

    def get_job(self, job_id: str) -> GenerationJob | None:
        job = self._jobs.get(job_id)
        return job.model_copy() if job is not None else None

    def get_all_jobs(self) -> dict[str, GenerationJob]:
        return {job_id: job.model_copy() for job_id, job in self._jobs.items()}

    def get_active_jobs(self) -> dict[str, ActiveJobView]:
        """Reduced view of every tracked job."""
        return {
            job_id: ActiveJobView(
                job_id=job.job_id,
                build_id=job.build_id,
                status=job.status,
                progress=job.progress,
                is_docker=job.is_docker,
                start_time=job.start_time,
            )
            for job_id, job in self._jobs.items()
        }

    def find_by_container(self, container_id: str) -> GenerationJob | None:
        """Local job running in ``container_id``, if any."""
        for job in self._jobs.values():
            if job.is_docker and job.container_id == container_id:
                return job.model_copy()
        return None
