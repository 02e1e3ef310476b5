"""Requests an ISO when a build that asks for one completes."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from builder.interfaces import BuildListener
from builder.models import BuildStatus
from builder.notifications import NotificationManager

from .errors import IsoGenerationError
from .models import IsoGenerationOptions

if TYPE_CHECKING:
    from builder.models import BuildConfig
    from builder.runloop import BuildRunLoop

    from .coordinator import IsoGenerationCoordinator
    from .polling import JobPoller

logger = structlog.get_logger(__name__)

DEFAULT_SOURCE_DIR = "/mnt/lfs"
DEFAULT_LABEL = "LFS"


class IsoBuildTrigger(BuildListener):
    """Build listener that starts ISO generation on build completion.

    Nothing happens when the build has no configuration, the configuration
    does not ask for an ISO, or any step failed.
    """

    def __init__(
        self,
        coordinator: IsoGenerationCoordinator,
        poller: JobPoller | None = None,
        output_dir: Path = Path("/tmp/iso"),
        source_dir: str = DEFAULT_SOURCE_DIR,
        notifier: NotificationManager | None = None,
    ) -> None:
        self.coordinator = coordinator
        self.poller = poller
        self.output_dir = output_dir
        self.source_dir = source_dir
        self.notifier = notifier or coordinator.notifier
        self.job_ids: list[str] = []
        self._log = logger.bind(component="iso_trigger")

    def options_for(self, config: BuildConfig, build_id: str | None) -> IsoGenerationOptions:
        iso = config.iso_generation
        build = build_id or config.id or config.name
        name = iso.iso_name or f"lfs-{build}.iso"
        return IsoGenerationOptions(
            build_id=build,
            source_dir=self.source_dir,
            output_path=str(self.output_dir / name),
            label=iso.label or DEFAULT_LABEL,
            bootable=iso.bootable,
            bootloader=iso.bootloader,
            config_name=config.name,
        )

    async def on_build_complete(self, loop: BuildRunLoop) -> None:
        config = loop.config
        if config is None or not config.iso_generation.generate:
            return
        if any(step.status == BuildStatus.FAILED for step in loop.steps):
            self._log.info("iso_skipped_failed_build", build_id=loop.build_id)
            return

        options = self.options_for(config, loop.build_id)
        try:
            response = await self.coordinator.request_iso_generation(
                options, allow_local=config.iso_generation.use_docker
            )
        except IsoGenerationError as e:
            self._log.error("iso_request_failed", build_id=options.build_id, error=str(e))
            self.notifier.error("ISO Generation Failed", str(e))
            return

        self.job_ids.append(response.job_id)
        self._log.info("iso_requested", job_id=response.job_id, build_id=options.build_id)
        self.notifier.info("ISO Generation Started", f"Job {response.job_id} for {config.name}")
        if self.poller is not None:
            self.poller.watch(response.job_id)
