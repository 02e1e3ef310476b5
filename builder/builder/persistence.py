"""Persistence bridge between the run-loop and the storage backend.

Every mutation requires an authenticated :class:`Actor`. Failures never
propagate to the caller: they are logged, surfaced as notifications and
reported through a ``None`` / ``False`` / ``[]`` return value.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from .interfaces import BuildListener
from .models import (
    PHASE_ORDER,
    BuildConfig,
    BuildPhase,
    BuildRecord,
    BuildStatus,
    BuildStepRecord,
    RecordStatus,
)
from .notifications import NotificationManager
from .storage import BUILD_CONFIGS_TABLE, BUILD_STEPS_TABLE, BUILDS_TABLE, StorageError

if TYPE_CHECKING:
    from .models import BuildStep
    from .runloop import BuildRunLoop
    from .storage import StorageBackend

logger = structlog.get_logger(__name__)

STORAGE_ERRORS = (StorageError, ValidationError)


class AuthenticationRequiredError(Exception):
    """Raised when a mutation is attempted without an authenticated actor."""


@dataclass(frozen=True)
class Actor:
    """Authenticated identity performing persistence mutations."""

    user_id: str
    email: str | None = None


def _now() -> str:
    return datetime.now(tz=UTC).isoformat()


def _row(model: Any, exclude: set[str] | None = None) -> dict[str, Any]:
    return model.model_dump(mode="json", exclude_none=True, exclude=exclude or set())


class PersistenceBridge:
    """Translates builder events and configuration CRUD into storage calls."""

    def __init__(
        self,
        storage: StorageBackend,
        notifier: NotificationManager | None = None,
        actor: Actor | None = None,
    ) -> None:
        self.storage = storage
        self.notifier = notifier or NotificationManager()
        self.actor = actor
        self._log = logger.bind(component="persistence")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def ensure_authenticated(self) -> bool:
        """Check for an actor, notifying the user if there is none."""
        if self.actor is None:
            self._log.warning("authentication_required")
            self.notifier.error(
                "Authentication required", "You must be signed in to perform this action"
            )
            return False
        return True

    def _authenticated_actor(self) -> Actor | None:
        return self.actor if self.ensure_authenticated() else None

    def require_actor(self) -> Actor:
        """Return the actor or raise.

        Raises:
            AuthenticationRequiredError: If no actor is set.
        """
        if not self.ensure_authenticated() or self.actor is None:
            raise AuthenticationRequiredError("You must be signed in to perform this action")
        return self.actor

    def handle_error(self, error: Exception, operation: str) -> None:
        self._log.error("storage_operation_failed", operation=operation, error=str(error))
        self.notifier.error("Operation failed", f"Failed to {operation}. Please try again.")

    # -------------------------------------------------------------------------
    # Builds
    # -------------------------------------------------------------------------

    async def start_build(self, config_id: str | None) -> BuildRecord | None:
        """Create an in-progress build record at the first phase."""
        actor = self._authenticated_actor()
        if actor is None:
            return None

        record = BuildRecord(
            config_id=config_id,
            status=RecordStatus.IN_PROGRESS,
            current_phase=PHASE_ORDER[0],
            current_step_id=None,
            progress_percentage=0,
            started_at=datetime.now(tz=UTC),
            user_id=actor.user_id,
        )
        try:
            row = await self.storage.insert(BUILDS_TABLE, _row(record, exclude={"id"}))
            created = BuildRecord.model_validate(row)
        except STORAGE_ERRORS as e:
            self.handle_error(e, "start build")
            return None

        self._log.info("build_started", build_id=created.id, config_id=config_id)
        return created

    async def update_build_status(
        self,
        build_id: str,
        status: RecordStatus,
        current_phase: BuildPhase,
        current_step_id: str | None,
        progress_percentage: int,
    ) -> bool:
        """Update status, phase, current step and progress of a build."""
        if not self.ensure_authenticated():
            return False

        values: dict[str, Any] = {
            "status": status.value,
            "current_phase": current_phase.value,
            "current_step_id": current_step_id,
            "progress_percentage": max(0, min(100, progress_percentage)),
        }
        if status.is_terminal:
            values["completed_at"] = _now()

        try:
            await self.storage.update(BUILDS_TABLE, values, {"id": build_id})
        except STORAGE_ERRORS as e:
            self.handle_error(e, f"update build status for build {build_id}")
            return False

        self._log.debug(
            "build_status_updated",
            build_id=build_id,
            status=status.value,
            progress=progress_percentage,
        )
        return True

    async def record_build_step(
        self,
        build_id: str,
        step_id: str,
        status: BuildStatus,
        output_log: str | None = None,
    ) -> bool:
        """Upsert the outcome of a step; a failed step also fails its build."""
        if not self.ensure_authenticated():
            return False

        values: dict[str, Any] = {
            "build_id": build_id,
            "step_id": step_id,
            "status": status.value,
        }
        if output_log is not None:
            values["output_log"] = output_log
        if status == BuildStatus.IN_PROGRESS:
            values["started_at"] = _now()
        elif status in (BuildStatus.COMPLETED, BuildStatus.FAILED):
            values["completed_at"] = _now()

        try:
            await self.storage.upsert(BUILD_STEPS_TABLE, values, ("build_id", "step_id"))
            if status == BuildStatus.FAILED:
                await self.storage.update(
                    BUILDS_TABLE,
                    {"status": RecordStatus.FAILED.value, "completed_at": _now()},
                    {"id": build_id},
                )
        except STORAGE_ERRORS as e:
            self.handle_error(e, f"record build step for build {build_id}, step {step_id}")
            return False

        return True

    async def get_builds_for_configuration(self, config_id: str) -> list[BuildRecord]:
        """Builds of a configuration, newest first."""
        try:
            rows = await self.storage.select(
                BUILDS_TABLE, {"config_id": config_id}, order_by="started_at", descending=True
            )
            return [BuildRecord.model_validate(row) for row in rows]
        except STORAGE_ERRORS as e:
            self.handle_error(e, f"fetch builds for config {config_id}")
            return []

    async def get_builds(self) -> list[BuildRecord]:
        """All builds, newest first."""
        try:
            rows = await self.storage.select(BUILDS_TABLE, order_by="started_at", descending=True)
            return [BuildRecord.model_validate(row) for row in rows]
        except STORAGE_ERRORS as e:
            self.handle_error(e, "fetch builds")
            return []

    async def get_build_steps(self, build_id: str) -> list[BuildStepRecord]:
        """Step records of a build, in start order."""
        try:
            rows = await self.storage.select(
                BUILD_STEPS_TABLE, {"build_id": build_id}, order_by="started_at"
            )
            return [BuildStepRecord.model_validate(row) for row in rows]
        except STORAGE_ERRORS as e:
            self.handle_error(e, f"fetch build steps for build {build_id}")
            return []

    async def get_step_logs(self, build_id: str, step_id: str) -> str | None:
        try:
            rows = await self.storage.select(
                BUILD_STEPS_TABLE, {"build_id": build_id, "step_id": step_id}
            )
        except STORAGE_ERRORS as e:
            self.handle_error(e, f"fetch logs for build {build_id}, step {step_id}")
            return None
        if not rows:
            return None
        return rows[0].get("output_log") or None

    # -------------------------------------------------------------------------
    # Configurations
    # -------------------------------------------------------------------------

    async def save_build_configuration(self, config: BuildConfig) -> BuildConfig | None:
        """Store a new configuration owned by the current actor."""
        actor = self._authenticated_actor()
        if actor is None:
            return None

        row = _row(config, exclude={"id", "created_at", "user_id"})
        row["user_id"] = actor.user_id
        row["created_at"] = _now()
        try:
            stored = await self.storage.insert(BUILD_CONFIGS_TABLE, row)
            saved = BuildConfig.model_validate(stored)
        except STORAGE_ERRORS as e:
            self.handle_error(e, "save build configuration")
            return None

        self._log.info("build_config_saved", config_id=saved.id, name=saved.name)
        return saved

    async def get_build_configurations(self) -> list[BuildConfig]:
        """All configurations, newest first."""
        try:
            rows = await self.storage.select(
                BUILD_CONFIGS_TABLE, order_by="created_at", descending=True
            )
            return [BuildConfig.model_validate(row) for row in rows]
        except STORAGE_ERRORS as e:
            self.handle_error(e, "fetch build configurations")
            return []

    async def get_build_configuration_by_id(self, config_id: str) -> BuildConfig | None:
        try:
            rows = await self.storage.select(BUILD_CONFIGS_TABLE, {"id": config_id})
            if not rows:
                raise StorageError(f"No build configuration with ID {config_id}")
            return BuildConfig.model_validate(rows[0])
        except STORAGE_ERRORS as e:
            self.handle_error(e, f"fetch build configuration with ID {config_id}")
            return None

    async def delete_build_configuration(self, config_id: str) -> bool:
        if not self.ensure_authenticated():
            return False

        try:
            removed = await self.storage.delete(BUILD_CONFIGS_TABLE, {"id": config_id})
        except STORAGE_ERRORS as e:
            self.handle_error(e, f"delete build configuration with ID {config_id}")
            return False

        self._log.info("build_config_deleted", config_id=config_id, removed=removed)
        return True


class BuildRecorder(BuildListener):
    """Listener persisting run-loop events through a :class:`PersistenceBridge`.

    The build record is created when the run starts. Its status is derived
    from the run-loop: failed while any step is failed, completed at 100%
    progress, in progress otherwise.
    """

    def __init__(self, bridge: PersistenceBridge) -> None:
        self.bridge = bridge
        self._log = logger.bind(component="build_recorder")

    async def on_run_started(self, loop: BuildRunLoop) -> None:
        if loop.build_id is not None:
            return
        config_id = loop.config.id if loop.config is not None else None
        record = await self.bridge.start_build(config_id)
        if record is not None:
            loop.build_id = record.id
            self._log.info("recording_build", build_id=record.id)

    async def on_step_status(
        self,
        loop: BuildRunLoop,
        step: BuildStep,
        output_log: str | None,
    ) -> None:
        if loop.build_id is None:
            return
        await self.bridge.record_build_step(loop.build_id, step.id, step.status, output_log)

    async def on_progress(self, loop: BuildRunLoop) -> None:
        if loop.build_id is None:
            return
        await self.bridge.update_build_status(
            loop.build_id,
            self._status(loop),
            loop.current_phase,
            loop.current_step_id,
            loop.progress,
        )

    async def on_build_complete(self, loop: BuildRunLoop) -> None:
        if loop.build_id is None:
            return
        status = self._status(loop)
        if status == RecordStatus.IN_PROGRESS:
            status = RecordStatus.COMPLETED
        await self.bridge.update_build_status(
            loop.build_id, status, loop.current_phase, None, loop.progress
        )

    @staticmethod
    def _status(loop: BuildRunLoop) -> RecordStatus:
        if any(step.status == BuildStatus.FAILED for step in loop.steps):
            return RecordStatus.FAILED
        if loop.progress >= 100:
            return RecordStatus.COMPLETED
        return RecordStatus.IN_PROGRESS
