"""Scripted test runs of the LFS build.

A scenario names the disk, sources and ISO settings of a build together
with the outcome the build is expected to have. :class:`ScenarioRunner`
drives a :class:`~builder.runloop.BuildRunLoop` through a scenario,
answers its prompts, and optionally generates and verifies an ISO once
the build has finished.
"""

from __future__ import annotations

import asyncio
import random
import re
import time
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, Field

from builder.executors import ScriptedStepExecutor
from builder.interfaces import StepExecutionError, StepExecutor
from builder.models import PHASE_ORDER, BuildConfig, BuildPhase, BuildStatus, IsoGenerationConfig
from builder.notifications import NotificationManager
from builder.runloop import BuildRunLoop
from builder.steps import group_by_phase, phase_completion

from .errors import IsoGenerationError
from .models import IsoGenerationOptions
from .trigger import DEFAULT_SOURCE_DIR

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from builder.interfaces import StepOutput
    from builder.models import BuildStep

    from .coordinator import IsoGenerationCoordinator

logger = structlog.get_logger(__name__)

DEFAULT_PASSWORD = "lfs-test-password"
DEFAULT_LFS_USER = "lfs"
DEFAULT_TEST_LABEL = "LFS_TEST"

# Primary volume descriptor identifier of an ISO 9660 image
ISO9660_MAGIC = b"CD001"
ISO9660_MAGIC_OFFSET = 0x8001


def slugify(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


class ExpectedOutcome(BaseModel):
    """What a scenario's build should end with."""

    should_complete: bool = True
    expected_error: str | None = Field(
        default=None, description="Text the failure must contain"
    )


class BuildScenario(BaseModel):
    """A named test configuration for a whole build."""

    id: str
    name: str
    description: str = ""
    target_disk: str
    sources_path: str
    scripts_path: str = "/scripts"
    iso_generation: IsoGenerationConfig = Field(default_factory=IsoGenerationConfig)
    expected: ExpectedOutcome = Field(default_factory=ExpectedOutcome)
    inputs: dict[str, str] = Field(default_factory=dict, description="Answers by step id")
    failures: dict[str, str] = Field(
        default_factory=dict, description="Step failures to inject, reason by step id"
    )

    def answer_for(self, step_id: str) -> str:
        """Answer to the prompt of ``step_id``."""
        if step_id in self.inputs:
            return self.inputs[step_id]
        if step_id == "select-disk":
            return self.target_disk
        if step_id == "prepare-sources":
            return self.sources_path
        if "password" in step_id:
            return DEFAULT_PASSWORD
        if "user" in step_id:
            return DEFAULT_LFS_USER
        return ""

    def to_build_config(self) -> BuildConfig:
        return BuildConfig(
            id=self.id,
            name=self.name,
            target_disk=self.target_disk,
            sources_path=self.sources_path,
            scripts_path=self.scripts_path,
            iso_generation=self.iso_generation,
        )


DEFAULT_SCENARIOS: tuple[BuildScenario, ...] = (
    BuildScenario(
        id="default",
        name="Default Build Test",
        description="Tests the default LFS build configuration with minimal setup",
        target_disk="/dev/sdb",
        sources_path="/sources",
    ),
    BuildScenario(
        id="iso",
        name="ISO Generation Test",
        description="Tests the LFS build with ISO generation at the end",
        target_disk="/dev/sdc",
        sources_path="/sources/lfs-11.2",
        scripts_path="/scripts/iso-build",
        iso_generation=IsoGenerationConfig(generate=True, iso_name="lfs-test.iso"),
    ),
    BuildScenario(
        id="error-handling",
        name="Error Handling Test",
        description="Deliberately fails disk partitioning to check error handling",
        target_disk="/invalid/disk/path",
        sources_path="/nonexistent/sources",
        failures={"partition-disk": "Invalid disk path"},
        expected=ExpectedOutcome(should_complete=False, expected_error="Invalid disk path"),
    ),
)


def get_scenario(key: str) -> BuildScenario | None:
    """Find a predefined scenario by id or by name, ignoring case."""
    wanted = key.strip().lower()
    for scenario in DEFAULT_SCENARIOS:
        if scenario.id == wanted or scenario.name.lower() == wanted:
            return scenario
    return None


def custom_scenario(
    name: str,
    target_disk: str,
    sources_path: str,
    scripts_path: str = "/scripts",
    generate_iso: bool = False,
) -> BuildScenario:
    """Scenario for ad-hoc settings that is expected to complete."""
    slug = slugify(name)
    return BuildScenario(
        id=slug,
        name=name,
        description=f"Custom test configuration: {name}",
        target_disk=target_disk,
        sources_path=sources_path,
        scripts_path=scripts_path,
        iso_generation=IsoGenerationConfig(
            generate=generate_iso, iso_name=f"{slug}.iso" if generate_iso else None
        ),
    )


class ScenarioStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class FailedStep(BaseModel):
    step_id: str
    error: str


class ScenarioResult(BaseModel):
    """Outcome of one scenario run."""

    scenario_id: str
    build_id: str
    started_at: datetime
    finished_at: datetime | None = None
    status: ScenarioStatus = ScenarioStatus.FAILED
    completed_phases: list[BuildPhase] = Field(default_factory=list)
    logs: list[str] = Field(default_factory=list)
    failed_step: FailedStep | None = None
    iso_generated: bool = False
    iso_path: str | None = None
    iso_verified: bool | None = None
    expectation_met: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == ScenarioStatus.SUCCESS


# -----------------------------------------------------------------------------
# ISO verification
# -----------------------------------------------------------------------------


class IsoVerifier(ABC):
    """Checks a generated ISO image."""

    @abstractmethod
    async def verify(self, iso_path: str) -> bool:
        """Whether the image at ``iso_path`` is usable."""


class FileIsoVerifier(IsoVerifier):
    """Reads the image and looks for the ISO 9660 volume descriptor."""

    async def verify(self, iso_path: str) -> bool:
        try:
            with Path(iso_path).open("rb") as f:
                f.seek(ISO9660_MAGIC_OFFSET)
                found = f.read(len(ISO9660_MAGIC)) == ISO9660_MAGIC
        except OSError as e:
            logger.warning("iso_unreadable", path=iso_path, error=str(e))
            return False
        if not found:
            logger.warning("iso_descriptor_missing", path=iso_path)
        return found


class SimulatedIsoVerifier(IsoVerifier):
    """Verification that fails at ``failure_rate``, drawn from the injected ``rng``."""

    def __init__(
        self,
        rng: random.Random | None = None,
        failure_rate: float = 0.0,
        delay: float = 0.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._rng = rng or random.Random()
        self.failure_rate = failure_rate
        self.delay = delay
        self._sleep = sleep

    async def verify(self, iso_path: str) -> bool:
        await self._sleep(self.delay)
        return not (self.failure_rate and self._rng.random() < self.failure_rate)


# -----------------------------------------------------------------------------
# Runner
# -----------------------------------------------------------------------------


class InjectedFailureExecutor(StepExecutor):
    """Fails the listed steps and delegates every other step."""

    def __init__(self, inner: StepExecutor, failures: dict[str, str]) -> None:
        self.inner = inner
        self.failures = dict(failures)

    async def execute(self, step: BuildStep, output: StepOutput) -> None:
        reason = self.failures.get(step.id)
        if reason is not None:
            raise StepExecutionError(step.id, reason)
        await self.inner.execute(step, output)


class ScenarioRunner:
    """Runs scenarios against the run-loop and checks their outcome."""

    def __init__(
        self,
        coordinator: IsoGenerationCoordinator | None = None,
        verifier: IsoVerifier | None = None,
        executor_factory: Callable[[BuildScenario], StepExecutor] | None = None,
        notifier: NotificationManager | None = None,
        output_dir: Path = Path("/tmp/iso"),
        source_dir: str = DEFAULT_SOURCE_DIR,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the runner.

        Args:
            coordinator: Generates ISOs for scenarios that ask for one.
            verifier: Checks generated ISOs; skipped when None.
            executor_factory: Builds the step executor for a scenario.
                Scripted steps that always succeed are used when omitted.
            notifier: Notification channel shared with the run-loops.
            output_dir: Directory under which test ISOs are written.
            source_dir: Directory the ISO is built from.
            clock: Source of the build id timestamps.
        """
        self.coordinator = coordinator
        self.verifier = verifier
        self.executor_factory = executor_factory
        self.notifier = notifier or NotificationManager()
        self.output_dir = output_dir
        self.source_dir = source_dir
        self._clock = clock
        self._log = logger.bind(component="scenario_runner")

    def executor_for(self, scenario: BuildScenario) -> StepExecutor:
        inner = (
            self.executor_factory(scenario)
            if self.executor_factory is not None
            else ScriptedStepExecutor()
        )
        if not scenario.failures:
            return inner
        return InjectedFailureExecutor(inner, scenario.failures)

    def iso_options(self, scenario: BuildScenario, build_id: str) -> IsoGenerationOptions:
        iso = scenario.iso_generation
        name = iso.iso_name or f"lfs-{slugify(scenario.name)}.iso"
        return IsoGenerationOptions(
            build_id=build_id,
            source_dir=self.source_dir,
            output_path=str(self.output_dir / build_id / name),
            label=iso.label or DEFAULT_TEST_LABEL,
            bootable=iso.bootable,
            bootloader=iso.bootloader,
            config_name=scenario.name,
        )

    async def run(self, scenario: BuildScenario) -> ScenarioResult:
        """Run one scenario to the end of its build.

        The build stops at the first failed step. Prompts are answered
        from the scenario.
        """
        build_id = f"test-{int(self._clock() * 1000)}"
        log = self._log.bind(scenario=scenario.id, build_id=build_id)
        log.info("scenario_started")
        result = ScenarioResult(
            scenario_id=scenario.id,
            build_id=build_id,
            started_at=datetime.now(tz=UTC),
            logs=[
                f"Test build started: {scenario.name}",
                f"Using target disk: {scenario.target_disk}",
                f"Sources path: {scenario.sources_path}",
            ],
        )

        loop = BuildRunLoop(self.executor_for(scenario), notifier=self.notifier, advance_delay=0)
        loop.build_id = build_id
        await loop.start(scenario.to_build_config())
        while loop.input_request is not None:
            await loop.submit_input(scenario.answer_for(loop.input_request.step_id or ""))

        done = phase_completion(group_by_phase(loop.steps))
        result.completed_phases = [phase for phase in PHASE_ORDER if done.get(phase)]
        result.logs.extend(f"{phase.value} completed" for phase in result.completed_phases)

        failed = next((s for s in loop.steps if s.status == BuildStatus.FAILED), None)
        if failed is not None:
            error = self._step_error(loop, failed.id)
            result.failed_step = FailedStep(step_id=failed.id, error=error)
            result.logs.append(f"ERROR: {error}")
        succeeded = loop.build_complete and failed is None

        if succeeded and scenario.iso_generation.generate:
            succeeded = await self._generate_iso(scenario, result)

        if succeeded:
            result.status = ScenarioStatus.SUCCESS
            result.logs.append("Test build completed successfully")
        result.finished_at = datetime.now(tz=UTC)
        result.expectation_met = self.meets_expectation(scenario, result)
        log.info(
            "scenario_finished",
            status=result.status.value,
            expectation_met=result.expectation_met,
        )
        return result

    async def run_many(self, scenarios: Iterable[BuildScenario]) -> list[ScenarioResult]:
        """Run scenarios one after another; a crashing run is recorded as failed."""
        results: list[ScenarioResult] = []
        for scenario in scenarios:
            try:
                results.append(await self.run(scenario))
            except Exception as e:
                self._log.exception("scenario_crashed", scenario=scenario.id)
                now = datetime.now(tz=UTC)
                results.append(
                    ScenarioResult(
                        scenario_id=scenario.id,
                        build_id=f"test-{int(self._clock() * 1000)}",
                        started_at=now,
                        finished_at=now,
                        logs=[f"Failed to run test: {e}"],
                    )
                )
        return results

    @staticmethod
    def meets_expectation(scenario: BuildScenario, result: ScenarioResult) -> bool:
        expected = scenario.expected
        if result.succeeded != expected.should_complete:
            return False
        if expected.expected_error is None:
            return True
        return any(expected.expected_error in line for line in result.logs)

    @staticmethod
    def _step_error(loop: BuildRunLoop, step_id: str) -> str:
        for line in reversed(loop.step_logs.get(step_id, [])):
            if line.startswith("Error: "):
                return line.removeprefix("Error: ")
        return "Unknown error occurred"

    async def _generate_iso(self, scenario: BuildScenario, result: ScenarioResult) -> bool:
        if self.coordinator is None:
            result.logs.append("ERROR: ISO generation requested but no generator is configured")
            return False

        options = self.iso_options(scenario, result.build_id)
        result.logs.append("Starting ISO generation")
        try:
            run = await self.coordinator.generate_local(options, check=True)
        except IsoGenerationError as e:
            result.logs.append(f"ERROR: ISO generation failed: {e}")
            return False

        result.iso_generated = True
        result.iso_path = run.output or options.output_path
        result.logs.append(f"ISO created successfully: {options.iso_name}")
        if self.verifier is None:
            return True

        result.iso_verified = await self.verifier.verify(result.iso_path)
        if not result.iso_verified:
            result.logs.append(f"ERROR: ISO verification failed: {result.iso_path}")
            return False
        result.logs.append("ISO verification passed")
        return True
