"""Build run-loop.

This module contains the state machine that walks the LFS step sequence
phase by phase. A single driver (:meth:`BuildRunLoop.advance`) chains
steps while the run flag is up; it stops on input requests, failures,
pauses and when the sequence is exhausted.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from .inputs import InputSlot, build_input_request, loggable_input, normalize_confirm
from .interfaces import StepOutput
from .models import (
    PHASE_CONTEXT_SWITCHES,
    PHASE_ORDER,
    BuildPhase,
    BuildStatus,
    BuildStep,
    InputRequest,
    RunState,
    UserContext,
)
from .notifications import NotificationManager
from .steps import (
    LFS_BUILD_STEPS,
    compute_progress,
    dependencies_satisfied,
    group_by_phase,
    initial_steps,
    next_phase,
    phase_completion,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Sequence

    from .interfaces import BuildListener, StepExecutor
    from .models import BuildConfig

logger = structlog.get_logger(__name__)

INITIAL_LOG_LINES: tuple[str, ...] = (
    "LFS Builder initialized",
    "Ready to begin Linux From Scratch (LFS) 11.2 build process",
    "Please select target disk to start the Initial Setup phase",
)

RESET_LOG_LINES: tuple[str, ...] = (
    "LFS Builder reset",
    "Ready to begin Linux From Scratch (LFS) 11.2 build process",
)

DEFAULT_ADVANCE_DELAY = 0.8


@dataclass(frozen=True)
class BuildSnapshot:
    """Read-only view of the run-loop state for presentation layers."""

    steps: tuple[BuildStep, ...]
    current_phase: BuildPhase
    current_context: UserContext
    progress: int
    run_state: RunState
    current_step_id: str | None
    input_request: InputRequest | None
    build_id: str | None
    phase_status: dict[BuildPhase, bool]
    logs: tuple[str, ...]
    script_output: tuple[str, ...]


class BuildRunLoop:
    """Drives a build through its step sequence.

    The run-loop owns its own copy of the steps; callers observe it via
    :meth:`snapshot` or by registering a :class:`BuildListener`.
    """

    def __init__(
        self,
        executor: StepExecutor,
        steps: Iterable[BuildStep] = LFS_BUILD_STEPS,
        notifier: NotificationManager | None = None,
        listeners: Sequence[BuildListener] = (),
        strict_dependencies: bool = False,
        advance_delay: float = DEFAULT_ADVANCE_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the run-loop.

        Args:
            executor: Backend that performs non-interactive steps.
            steps: Step definition; copied, never mutated.
            notifier: Notification channel. A private one is created if omitted.
            listeners: Observers told about run-loop events.
            strict_dependencies: Only pick steps whose dependencies are done.
            advance_delay: Pause in seconds between automatically chained steps.
            sleep: Awaitable sleep, replaceable for fast runs.
        """
        self._definition = tuple(steps)
        self.executor = executor
        self.notifier = notifier or NotificationManager()
        self.listeners: list[BuildListener] = list(listeners)
        self.strict_dependencies = strict_dependencies
        self.advance_delay = advance_delay
        self._sleep = sleep
        self._log = logger.bind(component="runloop")

        self.config: BuildConfig | None = None
        self.build_id: str | None = None
        self._slot = InputSlot()
        self._driving = False
        self._generation = 0
        self._init_state(INITIAL_LOG_LINES)

    def _init_state(self, log_lines: Iterable[str]) -> None:
        self.steps: list[BuildStep] = initial_steps(self._definition)
        self.current_phase = PHASE_ORDER[0]
        self.current_context = UserContext.ROOT
        self.progress = 0
        self.logs: list[str] = list(log_lines)
        self.script_output: list[str] = []
        self.step_logs: dict[str, list[str]] = {}
        self.run_state = RunState.PAUSED
        self.current_step_id: str | None = None
        self.build_complete = False
        self._slot.clear()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self.run_state == RunState.RUNNING

    @property
    def input_request(self) -> InputRequest | None:
        return self._slot.peek()

    def get_step(self, step_id: str) -> BuildStep | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def snapshot(self) -> BuildSnapshot:
        return BuildSnapshot(
            steps=tuple(step.model_copy() for step in self.steps),
            current_phase=self.current_phase,
            current_context=self.current_context,
            progress=self.progress,
            run_state=self.run_state,
            current_step_id=self.current_step_id,
            input_request=self._slot.peek(),
            build_id=self.build_id,
            phase_status=phase_completion(group_by_phase(self.steps)),
            logs=tuple(self.logs),
            script_output=tuple(self.script_output),
        )

    def step_log_text(self, step_id: str) -> str | None:
        lines = self.step_logs.get(step_id)
        return "\n".join(lines) if lines else None

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def append_log(self, message: str) -> None:
        self.logs.append(message)
        if self.current_step_id is not None:
            self.step_logs.setdefault(self.current_step_id, []).append(message)

    def append_script_output(self, message: str) -> None:
        self.script_output.append(message)

    def _step_output(self, step_id: str, generation: int) -> StepOutput:
        def log(message: str) -> None:
            if generation != self._generation:
                return
            self.logs.append(message)
            self.step_logs.setdefault(step_id, []).append(message)

        def script(message: str) -> None:
            if generation != self._generation:
                return
            self.script_output.append(message)

        return StepOutput(log=log, script=script)

    # -------------------------------------------------------------------------
    # Step selection
    # -------------------------------------------------------------------------

    def _first_pending(self, phase: BuildPhase) -> BuildStep | None:
        for step in self.steps:
            if step.phase != phase or step.status != BuildStatus.PENDING:
                continue
            if self.strict_dependencies and not dependencies_satisfied(step, self.steps):
                continue
            return step
        return None

    def blocked_steps(self) -> list[BuildStep]:
        """Pending steps of the current phase waiting on unfinished dependencies."""
        if not self.strict_dependencies:
            return []
        return [
            step
            for step in self.steps
            if step.phase == self.current_phase
            and step.status == BuildStatus.PENDING
            and not dependencies_satisfied(step, self.steps)
        ]

    def _enter_phase(self, phase: BuildPhase) -> None:
        self.current_phase = phase
        context = PHASE_CONTEXT_SWITCHES.get(phase)
        if context is not None and context != self.current_context:
            self.current_context = context
            self._log.info("context_switched", phase=phase.value, context=context.value)
        self._log.info("phase_entered", phase=phase.value)

    def find_next_step(self) -> BuildStep | None:
        """Find the next step to run.

        Returns the first pending step of the current phase. If there is
        none, the phase pointer moves forward (switching context where a
        phase requires it) until a phase with a pending step is found.
        In strict mode a phase whose pending steps are all blocked is not
        left behind.

        Returns:
            The next step, or None when the phases are exhausted or the
            current phase is blocked.
        """
        step = self._first_pending(self.current_phase)
        phase: BuildPhase | None = self.current_phase
        while step is None:
            if self.blocked_steps():
                return None
            phase = next_phase(phase) if phase is not None else None
            if phase is None:
                return None
            self._enter_phase(phase)
            step = self._first_pending(phase)
        return step

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def _set_status(self, step: BuildStep, status: BuildStatus) -> None:
        step.status = status
        now = datetime.now(tz=UTC)
        if status == BuildStatus.IN_PROGRESS:
            step.started_at = now
        elif status in (BuildStatus.COMPLETED, BuildStatus.FAILED, BuildStatus.SKIPPED):
            step.completed_at = now
        self.progress = compute_progress(self.steps)

        snapshot = step.model_copy()
        output_log = self.step_log_text(step.id)
        for listener in self.listeners:
            await listener.on_step_status(self, snapshot, output_log)
        await self._emit_progress()

    async def _emit_progress(self) -> None:
        for listener in self.listeners:
            await listener.on_progress(self)

    async def run_step(self, step_id: str) -> None:
        """Run one step.

        No-op unless the step is pending. Steps that require input are
        left in progress with an outstanding :class:`InputRequest`.
        Executor faults fail the step and pause the run.
        """
        step = self.get_step(step_id)
        if step is None or step.status != BuildStatus.PENDING:
            return

        generation = self._generation
        self.current_step_id = step.id
        self.append_log(f"Starting: {step.name}")
        await self._set_status(step, BuildStatus.IN_PROGRESS)

        if step.requires_input:
            request = build_input_request(step)
            self._slot.offer(request)
            self.append_log(f"Requesting input: {request.message}")
            self._log.info("input_requested", step=step.id, type=request.type)
            return

        for line in step.command_lines:
            self.append_log(f"$ {line}")

        try:
            await self.executor.execute(step.model_copy(), self._step_output(step.id, generation))
        except Exception as e:
            if generation != self._generation:
                return
            await self._fail_step(step, e)
            return

        if generation != self._generation:
            self._log.debug("stale_step_result_dropped", step=step.id)
            return
        await self._complete_step(step)

    async def _complete_step(self, step: BuildStep) -> None:
        await self._set_status(step, BuildStatus.COMPLETED)
        self._log.info("step_completed", step=step.id, progress=self.progress)
        self.notifier.success("Step Completed", f"{step.name} completed successfully")

    async def _fail_step(self, step: BuildStep, error: Exception) -> None:
        reason = str(error) or type(error).__name__
        self.append_log(f"Error: {reason}")
        await self._set_status(step, BuildStatus.FAILED)
        self.run_state = RunState.PAUSED
        self._log.error("step_failed", step=step.id, error=reason)
        self.notifier.error("Step Failed", f"{step.name} ({step.id}) failed: {reason}")

    async def submit_input(self, value: str | bool) -> None:
        """Answer the outstanding input request and continue the build.

        Raises:
            NoPendingInputError: If no request is outstanding.
        """
        request = self._slot.take()
        step = self.get_step(request.step_id) if request.step_id else None
        text = normalize_confirm(value) if request.type == "confirm" else str(value)
        if not text and request.default is not None:
            text = request.default

        self.append_log(loggable_input(step, text))
        self._log.info("input_submitted", step=request.step_id)

        if step is not None and step.status == BuildStatus.IN_PROGRESS:
            await self._complete_step(step)
        await self.advance()

    async def dismiss_input(self) -> bool:
        """Close the prompt without answering.

        A non-required request skips its step and the build continues.
        A required request stays outstanding.

        Returns:
            True if the request was dismissed.
        """
        request = self._slot.peek()
        if request is None or request.required:
            return False

        self._slot.take()
        step = self.get_step(request.step_id) if request.step_id else None
        if step is not None:
            self.append_log(f"Input dismissed, skipping: {step.name}")
            await self._set_status(step, BuildStatus.SKIPPED)
        await self.advance()
        return True

    async def skip_step(self, step_id: str) -> bool:
        """Mark a pending or failed step as skipped.

        Returns:
            True if the step was skipped.
        """
        step = self.get_step(step_id)
        if step is None or step.status not in (BuildStatus.PENDING, BuildStatus.FAILED):
            return False
        self.append_log(f"Skipped: {step.name}")
        await self._set_status(step, BuildStatus.SKIPPED)
        self._log.info("step_skipped", step=step_id)
        return True

    # -------------------------------------------------------------------------
    # Driver
    # -------------------------------------------------------------------------

    async def advance(self) -> None:
        """Run steps until input is needed, the run pauses or nothing is left.

        Only one driver runs at a time; re-entrant calls return immediately,
        so at most one step is in flight.
        """
        if self._driving:
            return
        self._driving = True
        try:
            first = True
            while self.is_running and self._slot.is_empty:
                if not first and self.advance_delay > 0:
                    await self._sleep(self.advance_delay)
                    if not (self.is_running and self._slot.is_empty):
                        break
                first = False

                phase_before = self.current_phase
                step = self.find_next_step()
                if self.current_phase != phase_before:
                    await self._emit_progress()
                if step is None:
                    blocked = self.blocked_steps()
                    if blocked:
                        self._block_build(blocked)
                    else:
                        await self._finish_build()
                    break
                await self.run_step(step.id)
        finally:
            self._driving = False

    async def _finish_build(self) -> None:
        self.run_state = RunState.PAUSED
        self.current_step_id = None
        if self.build_complete:
            return
        self.build_complete = True
        failed = [step.id for step in self.steps if step.status == BuildStatus.FAILED]
        if failed:
            self.append_log(f"Build finished with failed steps: {', '.join(failed)}")
            self._log.warning("build_finished_with_failures", failed=failed)
            self.notifier.error(
                "Build Finished With Errors", f"{len(failed)} step(s) failed: {', '.join(failed)}"
            )
        else:
            self.append_log("Build completed")
            self._log.info("build_completed", progress=self.progress)
            self.notifier.success("Build Complete", "All steps have been completed successfully")
        for listener in self.listeners:
            await listener.on_build_complete(self)

    def _block_build(self, blocked: list[BuildStep]) -> None:
        self.run_state = RunState.PAUSED
        self.current_step_id = None
        ids = ", ".join(step.id for step in blocked)
        self.append_log(f"Build blocked: {ids} waiting on unfinished dependencies")
        self._log.warning("build_blocked", phase=self.current_phase.value, steps=ids)
        self.notifier.error(
            "Build Blocked", f"{ids} cannot run until their dependencies complete or are skipped"
        )

    async def toggle_build(self) -> None:
        """Pause a running build or resume a paused one."""
        if self.is_running:
            self.run_state = RunState.PAUSED
            self._log.info("build_paused", step=self.current_step_id)
            self.notifier.info("Build Paused", "You can resume the build at any time")
            return

        self.run_state = RunState.RUNNING
        self._log.info("build_resumed", phase=self.current_phase.value)
        for listener in self.listeners:
            await listener.on_run_started(self)
        await self.advance()

    async def start(self, config: BuildConfig | None = None) -> None:
        """Attach a configuration and start the build."""
        if config is not None:
            self.config = config
        if not self.is_running:
            await self.toggle_build()

    async def reset_build(self, notify: bool = True) -> None:
        """Restore every step to pending and clear all run state."""
        self._generation += 1
        self.build_id = None
        self._init_state(RESET_LOG_LINES)
        self._log.info("build_reset")
        if notify:
            self.notifier.info("Build Reset", "All progress has been reset")
        await self._emit_progress()
