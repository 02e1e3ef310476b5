"""Tests for the step execution backends."""

from __future__ import annotations

import random

import pytest

from builder.executors import (
    FDISK_TRANSCRIPT,
    ScriptedOutcome,
    ScriptedStepExecutor,
    SimulatedStepExecutor,
)
from builder.interfaces import StepExecutionError, StepOutput
from builder.models import BuildPhase, BuildStep, UserContext
from builder.steps import LFS_BUILD_STEPS


class Sink:
    """Collects executor output."""

    def __init__(self) -> None:
        self.logs: list[str] = []
        self.script: list[str] = []

    def output(self) -> StepOutput:
        return StepOutput(log=self.logs.append, script=self.script.append)


class FakeSleep:
    """Records requested sleeps without waiting."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


def step(step_id: str) -> BuildStep:
    return next(s for s in LFS_BUILD_STEPS if s.id == step_id)


class TestSimulatedStepExecutor:
    """Tests for SimulatedStepExecutor."""

    def test_delay_is_capped(self) -> None:
        """Test that long estimates are capped."""
        executor = SimulatedStepExecutor(delay_cap=3.0, default_delay=2.0)

        assert executor.delay_for(step("run-cross-toolchain")) == 3.0
        assert executor.delay_for(step("mount-lfs")) == 2.0

    @pytest.mark.asyncio
    async def test_plain_step(self) -> None:
        """Test a step without special output."""
        sleep = FakeSleep()
        sink = Sink()
        executor = SimulatedStepExecutor(sleep=sleep)

        await executor.execute(step("mount-lfs"), sink.output())

        assert sleep.calls == [2.0]
        assert sink.logs == ["Completed: Mount LFS Filesystem"]

    @pytest.mark.asyncio
    async def test_partition_transcript(self) -> None:
        """Test the partitioning transcript."""
        sink = Sink()
        executor = SimulatedStepExecutor(sleep=FakeSleep())

        await executor.execute(step("partition-disk"), sink.output())

        assert sink.logs[0] == "Partitioning disk..."
        for line in FDISK_TRANSCRIPT:
            assert line in sink.logs
        assert "Partition process completed successfully" in sink.logs
        assert sink.logs[-1] == "Completed: Partition and Format Disk"

    @pytest.mark.asyncio
    async def test_script_output(self) -> None:
        """Test that build scripts write to the script pane."""
        sleep = FakeSleep()
        sink = Sink()
        executor = SimulatedStepExecutor(delay_cap=1.0, sleep=sleep)

        await executor.execute(step("run-system-build"), sink.output())

        assert sink.script[0] == "Starting Run System Build Script..."
        assert "[10/10] Executing step 10 of Run System Build Script" in sink.script
        assert "Compiling toolchain components..." in sink.script
        assert sink.script[-1] == "Run System Build Script completed successfully."
        assert len(sleep.calls) == 10
        assert sum(sleep.calls) == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_docker_transcript(self) -> None:
        """Test the container build transcript."""
        sink = Sink()
        executor = SimulatedStepExecutor(sleep=FakeSleep())
        docker_step = BuildStep(
            id="docker-build-base",
            name="Docker Build",
            phase=BuildPhase.FINAL_STEPS,
            context=UserContext.ROOT,
        )

        await executor.execute(docker_step, sink.output())

        assert sink.logs[0].startswith("Starting Docker container lfs-build-")
        assert "Command executed successfully in Docker container" in sink.logs

    @pytest.mark.asyncio
    async def test_injected_failure(self) -> None:
        """Test that failure_rate makes steps fail."""
        sink = Sink()
        executor = SimulatedStepExecutor(
            failure_rate=1.0, rng=random.Random(1), sleep=FakeSleep()
        )

        with pytest.raises(StepExecutionError) as exc_info:
            await executor.execute(step("mount-lfs"), sink.output())

        assert exc_info.value.step_id == "mount-lfs"
        assert "Completed: Mount LFS Filesystem" not in sink.logs


class TestScriptedStepExecutor:
    """Tests for ScriptedStepExecutor."""

    @pytest.mark.asyncio
    async def test_default_success(self) -> None:
        """Test unscripted steps succeed."""
        sink = Sink()
        executor = ScriptedStepExecutor()

        await executor.execute(step("mount-lfs"), sink.output())

        assert executor.executed == ["mount-lfs"]
        assert sink.logs == ["Completed: Mount LFS Filesystem"]

    @pytest.mark.asyncio
    async def test_scripted_lines_and_failure(self) -> None:
        """Test scripted output followed by an error."""
        sink = Sink()
        executor = ScriptedStepExecutor(
            {"mount-lfs": ScriptedOutcome(lines=["mount: busy"], error=RuntimeError("busy"))}
        )

        with pytest.raises(RuntimeError, match="busy"):
            await executor.execute(step("mount-lfs"), sink.output())

        assert sink.logs == ["mount: busy"]

    @pytest.mark.asyncio
    async def test_fail_helper(self) -> None:
        """Test the fail() shortcut."""
        executor = ScriptedStepExecutor()
        executor.fail("mount-lfs", "no device")

        with pytest.raises(StepExecutionError, match="no device"):
            await executor.execute(step("mount-lfs"), Sink().output())
