"""Core data models for the LFS builder.

This module defines the enums and Pydantic models for build steps,
input requests and the records persisted by the storage backend.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - needed at runtime by Pydantic
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class UserContext(str, Enum):
    """Privilege/environment level a step notionally runs under."""

    ROOT = "root"
    LFS_USER = "lfs"
    CHROOT = "chroot"


class BuildPhase(str, Enum):
    """Named stages of an LFS build, in execution order."""

    INITIAL_SETUP = "Initial Setup"
    LFS_USER_BUILD = "LFS User Build"
    CHROOT_SETUP = "Chroot Setup"
    CHROOT_BUILD = "Chroot Build"
    SYSTEM_CONFIGURATION = "System Configuration"
    FINAL_STEPS = "Final Steps"


PHASE_ORDER: tuple[BuildPhase, ...] = tuple(BuildPhase)

# Context the run-loop switches to when it enters these phases
PHASE_CONTEXT_SWITCHES: dict[BuildPhase, UserContext] = {
    BuildPhase.LFS_USER_BUILD: UserContext.LFS_USER,
    BuildPhase.CHROOT_SETUP: UserContext.CHROOT,
}


class BuildStatus(str, Enum):
    """Status of a single build step."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_done(self) -> bool:
        """Whether the step counts towards progress."""
        return self in (BuildStatus.COMPLETED, BuildStatus.SKIPPED)


class RecordStatus(str, Enum):
    """Status of a persisted build record."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RecordStatus.COMPLETED, RecordStatus.FAILED)


class RunState(str, Enum):
    """Global run flag of the build run-loop."""

    RUNNING = "running"
    PAUSED = "paused"


class BuildStep(BaseModel):
    """A single step of the LFS build.

    Steps are defined once in an ordered sequence; the run-loop only
    mutates ``status`` and the timestamps on its own copies.
    """

    id: str = Field(..., description="Unique step identifier")
    name: str = Field(..., description="Display name")
    description: str = Field(default="", description="Human readable description")
    phase: BuildPhase = Field(..., description="Phase this step belongs to")
    context: UserContext = Field(..., description="Notional user context (descriptive only)")
    status: BuildStatus = Field(default=BuildStatus.PENDING, description="Current status")
    requires_input: bool = Field(default=False, description="Whether the step asks the user")
    command: str = Field(default="", description="Shell command text, for display only")
    estimated_time: int | None = Field(default=None, description="Estimated seconds")
    dependencies: list[str] = Field(
        default_factory=list, description="IDs of steps that should complete first"
    )
    started_at: datetime | None = Field(default=None, description="When the step started")
    completed_at: datetime | None = Field(default=None, description="When the step finished")

    @property
    def command_lines(self) -> list[str]:
        """Non-empty command lines."""
        return [line for line in self.command.split("\n") if line.strip()]

    @property
    def is_password_step(self) -> bool:
        return "password" in self.id


InputType = Literal["text", "password", "path", "confirm"]


class InputRequest(BaseModel):
    """A pending request for user input, owned by the run-loop."""

    model_config = ConfigDict(frozen=True)

    type: InputType = Field(default="text", description="Kind of input requested")
    message: str = Field(..., description="Prompt shown to the user")
    default: str | None = Field(default=None, description="Default value")
    required: bool = Field(default=True, description="Whether a value must be provided")
    step_id: str | None = Field(default=None, description="Step waiting on this request")


# =============================================================================
# Persisted records
# =============================================================================


Bootloader = Literal["grub", "isolinux", "none"]


class IsoGenerationConfig(BaseModel):
    """ISO generation settings attached to a build configuration."""

    generate: bool = Field(default=False, description="Generate an ISO when the build completes")
    iso_name: str | None = Field(default=None, description="File name of the ISO")
    label: str | None = Field(default=None, description="Volume label")
    bootable: bool = Field(default=True, description="Make the ISO bootable")
    bootloader: Bootloader = Field(default="grub", description="Bootloader kind")
    use_docker: bool = Field(default=True, description="Allow local container fallback")


class BuildConfig(BaseModel):
    """A saved build configuration. Immutable once created."""

    id: str | None = None
    name: str
    target_disk: str
    sources_path: str
    scripts_path: str
    iso_generation: IsoGenerationConfig = Field(default_factory=IsoGenerationConfig)
    created_at: datetime | None = None
    user_id: str | None = None


class BuildRecord(BaseModel):
    """One persisted build attempt."""

    id: str | None = None
    config_id: str | None = None
    status: RecordStatus = RecordStatus.PENDING
    current_phase: BuildPhase = BuildPhase.INITIAL_SETUP
    current_step_id: str | None = None
    progress_percentage: int = Field(default=0, ge=0, le=100)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    user_id: str | None = None


class BuildStepRecord(BaseModel):
    """Persisted outcome of one step within a build."""

    id: str | None = None
    build_id: str
    step_id: str
    status: BuildStatus
    started_at: datetime | None = None
    completed_at: datetime | None = None
    output_log: str | None = None
