"""Data models for ISO generation.

The remote API and the metadata file use camelCase keys; the models accept
both the field names and their camelCase aliases.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from builder.models import Bootloader


class JobStatus(str, Enum):
    """Status of an ISO generation job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class CamelModel(BaseModel):
    """Base model accepting and emitting camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class GenerationJob(BaseModel):
    """A tracked unit of ISO generation work."""

    job_id: str = Field(..., description="Job identifier")
    build_id: str = Field(..., description="Build the ISO belongs to")
    status: JobStatus = Field(default=JobStatus.PENDING)
    progress: int = Field(default=0, ge=0, le=100)
    container_id: str | None = Field(default=None, description="Local container, if any")
    start_time: datetime = Field(default_factory=_utcnow)
    message: str | None = None
    is_docker: bool = Field(default=False, description="Whether the job runs locally")


class ActiveJobView(BaseModel):
    """Reduced view of a job for listings."""

    job_id: str
    build_id: str
    status: JobStatus
    progress: int
    is_docker: bool
    start_time: datetime


class IsoGenerationOptions(CamelModel):
    """Parameters of one ISO generation request."""

    build_id: str = Field(default="", description="Build the ISO belongs to")
    source_dir: str = Field(..., description="Directory with the LFS system files")
    output_path: str = Field(..., description="Where to write the ISO file")
    label: str = Field(..., description="ISO volume label")
    bootable: bool = True
    bootloader: Bootloader = "grub"
    config_name: str | None = Field(default=None, description="Configuration the build used")

    @property
    def iso_name(self) -> str:
        return self.output_path.replace("\\", "/").rsplit("/", 1)[-1]

    def request_body(self) -> dict[str, object]:
        """JSON body of the remote generation request."""
        return {
            "buildId": self.build_id,
            "label": self.label,
            "bootable": self.bootable,
            "bootloader": self.bootloader,
            "sourceDir": self.source_dir,
        }


class IsoGenerationStatus(CamelModel):
    """Status of a job as reported to callers."""

    status: JobStatus
    progress: int | None = None
    message: str | None = None
    download_url: str | None = None


class IsoGenerationResponse(CamelModel):
    """Answer to a generation request."""

    job_id: str
    status: str = JobStatus.PENDING.value


class IsoMetadata(CamelModel):
    """Record describing a generated ISO, persisted in the metadata file."""

    build_id: str
    iso_name: str
    timestamp: datetime = Field(default_factory=_utcnow)
    config_name: str = ""
    output_path: str
    bootable: bool = True
    bootloader: str = "grub"
    label: str | None = None
    job_id: str | None = None
    docker_generated: bool = False


class ContainerStatus(BaseModel):
    """Live status of the local ISO generation container."""

    running: bool = False
    container_id: str | None = None
    progress: int = Field(default=0, ge=0, le=100)
    logs: list[str] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=_utcnow)

    @property
    def last_log(self) -> str | None:
        return self.logs[-1] if self.logs else None


class ContainerRunResult(BaseModel):
    """Outcome of one local ISO generation run."""

    success: bool
    logs: list[str] = Field(default_factory=list)
    output: str | None = None

    @property
    def last_log(self) -> str | None:
        return self.logs[-1] if self.logs else None
