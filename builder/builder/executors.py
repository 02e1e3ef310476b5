"""Step execution backends.

No real LFS commands are run. ``SimulatedStepExecutor`` produces a
plausible transcript with delays; ``ScriptedStepExecutor`` replays
fixed outcomes and is what the tests use.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from .interfaces import StepExecutionError, StepExecutor

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .interfaces import StepOutput
    from .models import BuildStep

logger = structlog.get_logger(__name__)

DEFAULT_STEP_DELAY = 2.0
DEFAULT_DELAY_CAP = 3.0

FDISK_TRANSCRIPT: tuple[str, ...] = (
    "Welcome to fdisk.",
    "Command (m for help): n",
    "Partition type: p (primary)",
    "Partition number (1-4): 1",
    "First sector: [default]",
    "Last sector: [default]",
    "Command (m for help): w",
    "The partition table has been altered.",
    "Syncing disks.",
)


class SimulatedStepExecutor(StepExecutor):
    """Simulates step execution with delays and canned output.

    Delay is ``min(estimated_time, delay_cap)`` seconds, or
    ``default_delay`` when the step has no estimate. Failures are only
    injected through ``failure_rate`` and the supplied ``rng``.
    """

    def __init__(
        self,
        delay_cap: float = DEFAULT_DELAY_CAP,
        default_delay: float = DEFAULT_STEP_DELAY,
        failure_rate: float = 0.0,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the simulated executor.

        Args:
            delay_cap: Upper bound for the simulated delay in seconds.
            default_delay: Delay used for steps without an estimated time.
            failure_rate: Probability that a step fails after its delay.
            rng: Random source for failure injection.
            sleep: Awaitable sleep, replaceable for fast runs.
        """
        self.delay_cap = delay_cap
        self.default_delay = default_delay
        self.failure_rate = failure_rate
        self._rng = rng or random.Random()
        self._sleep = sleep

    def delay_for(self, step: BuildStep) -> float:
        if step.estimated_time:
            return float(min(step.estimated_time, self.delay_cap))
        return self.default_delay

    async def execute(self, step: BuildStep, output: StepOutput) -> None:
        delay = self.delay_for(step)
        logger.debug("simulating_step", step=step.id, delay=delay)

        if step.id == "partition-disk":
            await self._simulate_partition(output, delay)
        elif "script" in step.id or "toolchain" in step.id or "system-build" in step.id:
            await self._simulate_script(step, output, delay)
        elif "docker-build" in step.id:
            await self._simulate_docker(step, output, delay)
        else:
            await self._sleep(delay)

        if self.failure_rate and self._rng.random() < self.failure_rate:
            raise StepExecutionError(step.id, f"Simulated failure in {step.name}")

        output.log(f"Completed: {step.name}")

    async def _simulate_partition(self, output: StepOutput, delay: float) -> None:
        pause = delay / (len(FDISK_TRANSCRIPT) + 2)
        output.log("Partitioning disk...")
        for line in FDISK_TRANSCRIPT:
            await self._sleep(pause)
            output.log(line)
        output.log("Formatting partition...")
        await self._sleep(pause)
        output.log("Writing superblocks and filesystem accounting information: done")
        output.log("Partition process completed successfully")

    async def _simulate_script(self, step: BuildStep, output: StepOutput, delay: float) -> None:
        total = 10
        milestones = {
            3: "Configuring build environment...",
            5: "Compiling toolchain components...",
            8: "Installing packages...",
        }
        output.script(f"Starting {step.name}...")
        for i in range(1, total + 1):
            await self._sleep(delay / total)
            output.script(f"[{i}/{total}] Executing step {i} of {step.name}")
            if i in milestones:
                output.script(milestones[i])
        output.script(f"{step.name} completed successfully.")

    async def _simulate_docker(self, step: BuildStep, output: StepOutput, delay: float) -> None:
        container = f"lfs-build-{int(time.time() * 1000)}"
        output.log(f"Starting Docker container {container} for LFS build...")
        output.log(
            f"$ docker run --name {container} -v ./lfs-sources:/iso-build/input "
            "-v ./output:/iso-build/output lfs-iso-builder"
        )
        await self._sleep(delay / 2)
        output.log(f"Executing build step: {step.name}")
        await self._sleep(delay / 2)
        output.log("Command executed successfully in Docker container")
        output.log(f"Container {container} stopped and removed")


@dataclass
class ScriptedOutcome:
    """Scripted result for one step.

    Attributes:
        lines: Log lines to emit.
        error: Exception to raise after emitting the lines.
    """

    lines: list[str] = field(default_factory=list)
    error: Exception | None = None


class ScriptedStepExecutor(StepExecutor):
    """Deterministic executor replaying scripted outcomes without delays.

    Steps without a scripted outcome succeed and log ``Completed: <name>``.
    Every executed step id is appended to ``executed``.
    """

    def __init__(self, outcomes: dict[str, ScriptedOutcome] | None = None) -> None:
        self.outcomes = outcomes or {}
        self.executed: list[str] = []

    def fail(self, step_id: str, reason: str) -> None:
        """Script a failure for ``step_id``."""
        self.outcomes[step_id] = ScriptedOutcome(error=StepExecutionError(step_id, reason))

    async def execute(self, step: BuildStep, output: StepOutput) -> None:
        self.executed.append(step.id)
        outcome = self.outcomes.get(step.id, ScriptedOutcome())
        for line in outcome.lines:
            output.log(line)
        # Yield so concurrent tasks interleave as they would with real delays
        await asyncio.sleep(0)
        if outcome.error is not None:
            raise outcome.error
        output.log(f"Completed: {step.name}")
