"""ISO generation for LFS builds.

Module Overview:
    api_client: aiohttp client for the remote ISO backend
    container: Local container runtimes (simulated, docker CLI, scripted)
    coordinator: Remote-first generation with local container fallback
    errors: Exception hierarchy
    jobs: In-memory job tracker
    metadata: JSON file of generated ISO records
    models: Pydantic models for jobs, statuses and metadata
    polling: Per-job status polling tasks
    scenarios: Scripted test runs of whole builds with ISO verification
    trigger: Build listener requesting an ISO on build completion
"""

from isogen.api_client import IsoApiClient
from isogen.container import (
    ContainerRuntime,
    DockerContainerRuntime,
    ScriptedContainerRuntime,
    SimulatedContainerRuntime,
)
from isogen.coordinator import IsoGenerationCoordinator
from isogen.errors import (
    BackendError,
    BackendNotConfiguredError,
    ContainerRuntimeError,
    InvalidBackendResponseError,
    IsoGenerationError,
    LocalGenerationError,
)
from isogen.jobs import JobTracker
from isogen.metadata import IsoMetadataStore
from isogen.models import (
    ActiveJobView,
    ContainerRunResult,
    ContainerStatus,
    GenerationJob,
    IsoGenerationOptions,
    IsoGenerationResponse,
    IsoGenerationStatus,
    IsoMetadata,
    JobStatus,
)
from isogen.polling import JobPoller
from isogen.scenarios import (
    DEFAULT_SCENARIOS,
    BuildScenario,
    ExpectedOutcome,
    FileIsoVerifier,
    IsoVerifier,
    ScenarioResult,
    ScenarioRunner,
    ScenarioStatus,
    SimulatedIsoVerifier,
    custom_scenario,
    get_scenario,
)
from isogen.trigger import IsoBuildTrigger

__all__ = [
    "DEFAULT_SCENARIOS",
    "ActiveJobView",
    "BackendError",
    "BackendNotConfiguredError",
    "BuildScenario",
    "ContainerRunResult",
    "ContainerRuntime",
    "ContainerRuntimeError",
    "ContainerStatus",
    "DockerContainerRuntime",
    "ExpectedOutcome",
    "FileIsoVerifier",
    "GenerationJob",
    "InvalidBackendResponseError",
    "IsoApiClient",
    "IsoBuildTrigger",
    "IsoGenerationCoordinator",
    "IsoGenerationError",
    "IsoGenerationOptions",
    "IsoGenerationResponse",
    "IsoGenerationStatus",
    "IsoMetadata",
    "IsoMetadataStore",
    "IsoVerifier",
    "JobPoller",
    "JobStatus",
    "JobTracker",
    "LocalGenerationError",
    "ScenarioResult",
    "ScenarioRunner",
    "ScenarioStatus",
    "ScriptedContainerRuntime",
    "SimulatedContainerRuntime",
    "SimulatedIsoVerifier",
    "custom_scenario",
    "get_scenario",
]
