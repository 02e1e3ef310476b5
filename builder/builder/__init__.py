"""LFS Builder core library.

Models, run-loop and persistence for orchestrating a Linux From Scratch
build.

Module Overview:
    config: YAML-based configuration management (XDG spec compliant)
    executors: Simulated and scripted step execution backends
    inputs: Input-request protocol between the run-loop and a prompt
    interfaces: Abstract base classes for executors and run-loop listeners
    models: Pydantic data models for steps, inputs and persisted records
    notifications: User-visible notifications with optional notify-send
    persistence: Persistence bridge and the build recording listener
    runloop: The build run-loop state machine
    steps: Default LFS step sequence and pure queries over steps
    storage: In-memory and PostgREST-style storage backends
"""

from importlib.metadata import version as get_package_version

from builder.config import (
    BuilderConfig,
    ConfigManager,
    YamlConfigLoader,
    get_config_dir,
    get_data_dir,
    get_default_config_path,
)
from builder.executors import ScriptedOutcome, ScriptedStepExecutor, SimulatedStepExecutor
from builder.inputs import (
    PASSWORD_MASK,
    InputSlot,
    InputSlotBusyError,
    NoPendingInputError,
    build_input_request,
    normalize_confirm,
)
from builder.interfaces import BuildListener, StepExecutionError, StepExecutor, StepOutput
from builder.models import (
    PHASE_ORDER,
    BuildConfig,
    BuildPhase,
    BuildRecord,
    BuildStatus,
    BuildStep,
    BuildStepRecord,
    InputRequest,
    IsoGenerationConfig,
    RecordStatus,
    RunState,
    UserContext,
)
from builder.notifications import (
    Notification,
    NotificationConfig,
    NotificationLevel,
    NotificationManager,
)
from builder.persistence import (
    Actor,
    AuthenticationRequiredError,
    BuildRecorder,
    PersistenceBridge,
)
from builder.runloop import BuildRunLoop, BuildSnapshot
from builder.steps import (
    LFS_BUILD_STEPS,
    compute_progress,
    dependencies_satisfied,
    group_by_phase,
    initial_steps,
    phase_completion,
    validate_dependencies,
)
from builder.storage import InMemoryStorage, RestStorage, StorageBackend, StorageError

__version__ = get_package_version("lfs-builder")

__all__ = [
    "LFS_BUILD_STEPS",
    "PASSWORD_MASK",
    "PHASE_ORDER",
    "Actor",
    "AuthenticationRequiredError",
    "BuildConfig",
    "BuildListener",
    "BuildPhase",
    "BuildRecord",
    "BuildRecorder",
    "BuildRunLoop",
    "BuildSnapshot",
    "BuildStatus",
    "BuildStep",
    "BuildStepRecord",
    "BuilderConfig",
    "ConfigManager",
    "InMemoryStorage",
    "InputRequest",
    "InputSlot",
    "InputSlotBusyError",
    "IsoGenerationConfig",
    "NoPendingInputError",
    "Notification",
    "NotificationConfig",
    "NotificationLevel",
    "NotificationManager",
    "PersistenceBridge",
    "RecordStatus",
    "RestStorage",
    "RunState",
    "ScriptedOutcome",
    "ScriptedStepExecutor",
    "SimulatedStepExecutor",
    "StepExecutionError",
    "StepExecutor",
    "StepOutput",
    "StorageBackend",
    "StorageError",
    "UserContext",
    "YamlConfigLoader",
    "build_input_request",
    "compute_progress",
    "dependencies_satisfied",
    "get_config_dir",
    "get_data_dir",
    "get_default_config_path",
    "group_by_phase",
    "initial_steps",
    "normalize_confirm",
    "phase_completion",
    "validate_dependencies",
]
