"""Tests for requesting an ISO when a build completes."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from builder.executors import ScriptedStepExecutor
from builder.models import BuildConfig, BuildStatus, IsoGenerationConfig
from builder.notifications import NotificationManager
from builder.runloop import BuildRunLoop
from isogen.api_client import IsoApiClient
from isogen.container import ScriptedContainerRuntime
from isogen.coordinator import IsoGenerationCoordinator
from isogen.models import JobStatus
from isogen.polling import JobPoller
from isogen.trigger import IsoBuildTrigger

ANSWERS = {
    "select-disk": "/dev/sdb",
    "prepare-sources": "/srv/lfs/sources",
    "create-lfs-user": "lfs",
    "set-root-password-chroot": "secret",
}


def make_config(**iso: object) -> BuildConfig:
    return BuildConfig(
        id="cfg-1",
        name="Default",
        target_disk="/dev/sdb",
        sources_path="/srv/lfs/sources",
        scripts_path="/srv/lfs/scripts",
        iso_generation=IsoGenerationConfig.model_validate({"generate": True, **iso}),
    )


def make_coordinator(runtime: ScriptedContainerRuntime | None = None) -> IsoGenerationCoordinator:
    return IsoGenerationCoordinator(
        IsoApiClient(None),
        runtime or ScriptedContainerRuntime(),
        notifier=NotificationManager(),
        clock=lambda: 1.0,
    )


async def run_to_end(loop: BuildRunLoop, config: BuildConfig | None) -> None:
    await loop.start(config)
    while not loop.build_complete:
        request = loop.input_request
        if request is not None:
            await loop.submit_input(ANSWERS[request.step_id or ""])
        else:
            await loop.toggle_build()


class TestIsoBuildTrigger:
    """Tests for IsoBuildTrigger."""

    def test_options_defaults(self) -> None:
        """Test generation options derived from a configuration."""
        trigger = IsoBuildTrigger(make_coordinator(), output_dir=Path("/srv/iso"))

        options = trigger.options_for(make_config(), None)

        assert options.build_id == "cfg-1"
        assert options.output_path == "/srv/iso/lfs-cfg-1.iso"
        assert options.label == "LFS"
        assert options.bootloader == "grub"
        assert options.source_dir == "/mnt/lfs"
        assert options.config_name == "Default"

    def test_options_from_configuration(self) -> None:
        """Test that configured ISO settings are used."""
        trigger = IsoBuildTrigger(make_coordinator(), output_dir=Path("/srv/iso"))
        config = make_config(iso_name="custom.iso", label="MYLFS", bootloader="isolinux")

        options = trigger.options_for(config, "build-7")

        assert options.build_id == "build-7"
        assert options.iso_name == "custom.iso"
        assert options.label == "MYLFS"
        assert options.bootloader == "isolinux"

    @pytest.mark.asyncio
    async def test_completed_build_requests_iso(self, tmp_path: Path) -> None:
        """Test that a successful build starts a local ISO job."""
        coordinator = make_coordinator()
        trigger = IsoBuildTrigger(coordinator, output_dir=tmp_path)
        loop = BuildRunLoop(ScriptedStepExecutor(), listeners=[trigger], advance_delay=0)

        await run_to_end(loop, make_config())

        assert len(trigger.job_ids) == 1
        assert "ISO Generation Started" in coordinator.notifier.titles()
        await coordinator.wait_for_local_jobs()
        status = await coordinator.check_status(trigger.job_ids[0])
        assert status.status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_poller_watches_job(self, tmp_path: Path) -> None:
        """Test that requested jobs are handed to the poller."""
        release = asyncio.Event()
        coordinator = make_coordinator(ScriptedContainerRuntime(release=release))
        poller = JobPoller(coordinator, interval=0.01)
        trigger = IsoBuildTrigger(coordinator, poller=poller, output_dir=tmp_path)
        loop = BuildRunLoop(ScriptedStepExecutor(), listeners=[trigger], advance_delay=0)

        await run_to_end(loop, make_config())
        job_id = trigger.job_ids[0]
        assert poller.is_watching(job_id)

        release.set()
        result = await asyncio.wait_for(poller.wait(job_id), timeout=5)
        assert result is not None and result.status == JobStatus.COMPLETED
        await poller.close()
        await coordinator.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("config", [None, make_config(generate=False)])
    async def test_nothing_requested(self, config: BuildConfig | None) -> None:
        """Test builds that do not ask for an ISO."""
        coordinator = make_coordinator()
        trigger = IsoBuildTrigger(coordinator)
        loop = BuildRunLoop(ScriptedStepExecutor(), listeners=[trigger], advance_delay=0)

        await run_to_end(loop, config)

        assert trigger.job_ids == []
        assert coordinator.get_active_jobs() == {}

    @pytest.mark.asyncio
    async def test_failed_build_is_skipped(self) -> None:
        """Test that a build with a failed step gets no ISO."""
        coordinator = make_coordinator()
        trigger = IsoBuildTrigger(coordinator)
        executor = ScriptedStepExecutor()
        executor.fail("mount-lfs", "device busy")
        loop = BuildRunLoop(executor, listeners=[trigger], advance_delay=0)

        await run_to_end(loop, make_config())

        assert loop.get_step("mount-lfs").status == BuildStatus.FAILED  # type: ignore[union-attr]
        assert trigger.job_ids == []

    @pytest.mark.asyncio
    async def test_request_failure_notifies(self) -> None:
        """Test that a failed request is reported."""
        coordinator = make_coordinator(ScriptedContainerRuntime(available=False))
        trigger = IsoBuildTrigger(coordinator)
        loop = BuildRunLoop(ScriptedStepExecutor(), listeners=[trigger], advance_delay=0)

        await run_to_end(loop, make_config())

        assert trigger.job_ids == []
        assert "ISO Generation Failed" in coordinator.notifier.titles()

    @pytest.mark.asyncio
    async def test_docker_disallowed(self) -> None:
        """Test that use_docker=False keeps the job off the local runtime."""
        runtime = ScriptedContainerRuntime()
        coordinator = make_coordinator(runtime)
        trigger = IsoBuildTrigger(coordinator)
        loop = BuildRunLoop(ScriptedStepExecutor(), listeners=[trigger], advance_delay=0)

        await run_to_end(loop, make_config(use_docker=False))

        assert runtime.runs == []
        assert trigger.job_ids == []
