"""Core interfaces for the LFS builder.

This module defines the abstract base classes the run-loop is wired
against: the execution backend that performs a step and the listener
that observes run-loop events.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

    from .models import BuildStep
    from .runloop import BuildRunLoop


class StepExecutionError(Exception):
    """A build step failed while executing."""

    def __init__(self, step_id: str, reason: str) -> None:
        super().__init__(reason)
        self.step_id = step_id
        self.reason = reason


@dataclass(frozen=True)
class StepOutput:
    """Sinks an executor writes to while a step runs.

    Attributes:
        log: Appends a line to the main build log.
        script: Appends a line to the script output pane.
    """

    log: Callable[[str], None]
    script: Callable[[str], None]


class StepExecutor(ABC):
    """Execution backend for build steps.

    Implementations perform (or simulate) the work of a step and raise
    on failure. They never touch step status; the run-loop owns that.
    """

    @abstractmethod
    async def execute(self, step: BuildStep, output: StepOutput) -> None:
        """Execute a step.

        Args:
            step: Snapshot of the step being executed.
            output: Where to write log and script output lines.

        Raises:
            Exception: Any exception marks the step as failed.
        """
        ...


class BuildListener(ABC):  # noqa: B024
    """Observer of run-loop events.

    All hooks default to no-ops; override the ones you need. Hooks are
    awaited in order, so a slow listener delays the run-loop.
    """

    async def on_run_started(self, loop: BuildRunLoop) -> None:  # noqa: B027
        """Called when the run flag goes from paused to running."""
        pass

    async def on_step_status(  # noqa: B027
        self,
        loop: BuildRunLoop,
        step: BuildStep,
        output_log: str | None,
    ) -> None:
        """Called after every step status change.

        Args:
            loop: The run-loop.
            step: Snapshot of the step after the change.
            output_log: Log lines produced by the step so far, if any.
        """
        pass

    async def on_progress(self, loop: BuildRunLoop) -> None:  # noqa: B027
        """Called when progress, phase or current step changed."""
        pass

    async def on_build_complete(self, loop: BuildRunLoop) -> None:  # noqa: B027
        """Called once when no pending step is left."""
        pass
