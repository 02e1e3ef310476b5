"""Tests for the local container runtimes."""

from __future__ import annotations

import asyncio
import random
from pathlib import Path

import pytest

from isogen.container import (
    NOT_AVAILABLE_MESSAGE,
    DockerContainerRuntime,
    ScriptedContainerRuntime,
    SimulatedContainerRuntime,
)
from isogen.models import ContainerStatus, IsoGenerationOptions


def make_options(tmp_path: Path | None = None, **overrides: object) -> IsoGenerationOptions:
    base = tmp_path or Path("/tmp/iso")
    values: dict[str, object] = {
        "build_id": "build-1",
        "source_dir": "/mnt/lfs",
        "output_path": str(base / "out" / "lfs.iso"),
        "label": "LFS",
    }
    values.update(overrides)
    return IsoGenerationOptions.model_validate(values)


async def no_sleep(_: float) -> None:
    await asyncio.sleep(0)


FAKE_DOCKER = """#!/bin/sh
case "$1" in
  info) echo "24.0.0"; exit 0 ;;
  image) exit 0 ;;
  run) echo "xorriso: writing image"; echo "ISO written"; exit "${FAKE_DOCKER_EXIT:-0}" ;;
esac
exit 1
"""


class TestScriptedContainerRuntime:
    """Tests for the shared runtime behaviour via ScriptedContainerRuntime."""

    @pytest.mark.asyncio
    async def test_availability_is_cached(self) -> None:
        """Test that the runtime is probed once."""
        runtime = ScriptedContainerRuntime()

        assert await runtime.check_availability() is True
        assert await runtime.check_availability() is True
        assert runtime.probe_count == 1

    @pytest.mark.asyncio
    async def test_unavailable(self) -> None:
        """Test a run without a container runtime."""
        runtime = ScriptedContainerRuntime(available=False)

        result = await runtime.run_iso_generation(make_options())

        assert result.success is False
        assert result.logs == [NOT_AVAILABLE_MESSAGE]
        assert runtime.runs == []

    @pytest.mark.asyncio
    async def test_success_publishes_status(self) -> None:
        """Test the status feed of a successful run."""
        runtime = ScriptedContainerRuntime(logs=["Copying files"])
        updates: list[ContainerStatus] = []
        runtime.on_status_update(updates.append)

        result = await runtime.run_iso_generation(make_options(), "c-1")

        assert result.success is True
        assert result.output == "/tmp/iso/out/lfs.iso"
        assert updates[0].running is True
        assert updates[0].container_id == "c-1"
        progress = [u.progress for u in updates]
        assert progress == sorted(progress)

        final = runtime.get_container_status()
        assert final.running is False
        assert final.progress == 100
        assert final.last_log == "ISO file created successfully at /tmp/iso/out/lfs.iso"

    @pytest.mark.asyncio
    async def test_failure_never_reports_100(self) -> None:
        """Test that failed runs stay below 100%."""
        runtime = ScriptedContainerRuntime(succeed=False)

        result = await runtime.run_iso_generation(make_options())

        assert result.success is False
        assert result.output is None
        assert result.last_log == "Error: ISO generation failed with exit code 1"
        assert runtime.get_container_status().progress < 100

    @pytest.mark.asyncio
    async def test_running_until_released(self) -> None:
        """Test the running state while a run is in flight."""
        release = asyncio.Event()
        runtime = ScriptedContainerRuntime(release=release)

        task = asyncio.create_task(runtime.run_iso_generation(make_options(), "c-1"))
        await asyncio.sleep(0)
        assert runtime.get_container_status().running is True

        release.set()
        await task
        assert runtime.get_container_status().running is False

    @pytest.mark.asyncio
    async def test_unsubscribe(self) -> None:
        """Test removing a status subscriber."""
        runtime = ScriptedContainerRuntime()
        updates: list[ContainerStatus] = []
        unsubscribe = runtime.on_status_update(updates.append)
        unsubscribe()

        await runtime.run_iso_generation(make_options())

        assert updates == []

    def test_status_is_a_copy(self) -> None:
        """Test that callers cannot mutate the live status."""
        runtime = ScriptedContainerRuntime()
        status = runtime.get_container_status()
        status.logs.append("mutated")

        assert runtime.get_container_status().logs == []

    def test_docker_command(self) -> None:
        """Test the docker run invocation."""
        runtime = ScriptedContainerRuntime(image="custom-iso")
        options = make_options(bootable=False)

        cmd = runtime.get_docker_command(options, "c-1")

        assert cmd[:5] == ["docker", "run", "--rm", "--name", "c-1"]
        assert "/mnt/lfs:/lfs-source:ro" in cmd
        assert "/tmp/iso/out:/output" in cmd
        assert "custom-iso" in cmd
        assert "--output=/output/lfs.iso" in cmd
        assert "--bootloader=none" in cmd
        assert "--bootable=false" in cmd

    def test_new_container_id(self) -> None:
        """Test generated container names."""
        assert ScriptedContainerRuntime.new_container_id().startswith("lfs-iso-")


class TestSimulatedContainerRuntime:
    """Tests for SimulatedContainerRuntime."""

    def make_runtime(self, **kwargs: object) -> SimulatedContainerRuntime:
        values: dict[str, object] = {
            "rng": random.Random(7),
            "availability_chance": 1.0,
            "failure_rate": 0.0,
            "sleep": no_sleep,
        }
        values.update(kwargs)
        return SimulatedContainerRuntime(**values)  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_grub_run(self) -> None:
        """Test a successful GRUB run."""
        result = await self.make_runtime().run_iso_generation(make_options())

        assert result.success is True
        assert "Setting up grub bootloader" in result.logs
        assert "Installing GRUB bootloader files" in result.logs
        assert "Volume label: LFS" in result.logs

    @pytest.mark.asyncio
    async def test_isolinux_run(self) -> None:
        """Test a successful ISOLINUX run."""
        result = await self.make_runtime().run_iso_generation(
            make_options(bootloader="isolinux")
        )

        assert "Installing ISOLINUX bootloader files" in result.logs
        assert "Installing GRUB bootloader files" not in result.logs

    @pytest.mark.asyncio
    async def test_non_bootable_run(self) -> None:
        """Test that non-bootable images skip the bootloader."""
        result = await self.make_runtime().run_iso_generation(make_options(bootable=False))

        assert result.success is True
        assert not any("bootloader" in line for line in result.logs if line.startswith("Setting"))
        assert "Bootable: no" in result.logs

    @pytest.mark.asyncio
    async def test_injected_failure(self) -> None:
        """Test the simulated failure path."""
        result = await self.make_runtime(failure_rate=1.0).run_iso_generation(make_options())

        assert result.success is False
        assert result.last_log == "Error: ISO generation failed with exit code 1"

    @pytest.mark.asyncio
    async def test_unavailable(self) -> None:
        """Test a simulated host without Docker."""
        runtime = self.make_runtime(availability_chance=0.0)

        assert await runtime.check_availability() is False
        assert await runtime.build_image() is False

    @pytest.mark.asyncio
    async def test_deterministic_with_seed(self) -> None:
        """Test that the same seed gives the same outcome."""
        first = self.make_runtime(rng=random.Random(3), availability_chance=0.5, failure_rate=0.5)
        second = self.make_runtime(rng=random.Random(3), availability_chance=0.5, failure_rate=0.5)

        a = await first.run_iso_generation(make_options())
        b = await second.run_iso_generation(make_options())

        assert a.success == b.success
        assert a.logs == b.logs


class TestDockerContainerRuntime:
    """Tests for DockerContainerRuntime with a stand-in docker binary."""

    @pytest.fixture
    def fake_docker(self, tmp_path: Path) -> Path:
        script = tmp_path / "docker"
        script.write_text(FAKE_DOCKER)
        script.chmod(0o755)
        return script

    @pytest.mark.asyncio
    async def test_missing_binary(self) -> None:
        """Test that a missing docker binary means unavailable."""
        runtime = DockerContainerRuntime(docker_binary="/nonexistent/docker")

        assert await runtime.check_availability() is False
        result = await runtime.run_iso_generation(make_options())
        assert result.logs == [NOT_AVAILABLE_MESSAGE]

    @pytest.mark.asyncio
    async def test_run_streams_output(self, fake_docker: Path, tmp_path: Path) -> None:
        """Test a successful run streaming container output."""
        runtime = DockerContainerRuntime(docker_binary=str(fake_docker))
        options = make_options(tmp_path)

        result = await runtime.run_iso_generation(options, "c-1")

        assert result.success is True
        assert "xorriso: writing image" in result.logs
        assert "ISO written" in result.logs
        assert result.output == options.output_path
        assert (tmp_path / "out").is_dir()
        assert runtime.get_container_status().progress == 100

    @pytest.mark.asyncio
    async def test_run_failure_exit_code(
        self, fake_docker: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that a non-zero container exit fails the run."""
        monkeypatch.setenv("FAKE_DOCKER_EXIT", "3")
        runtime = DockerContainerRuntime(docker_binary=str(fake_docker))

        result = await runtime.run_iso_generation(make_options(tmp_path))

        assert result.success is False
        assert result.last_log == "Error: ISO generation failed with exit code 3"
