"""Local container runtimes for ISO generation.

A runtime probes availability (cached after the first probe), prepares the
builder image, runs one generation and publishes a live
:class:`ContainerStatus` feed to subscribers.
"""

from __future__ import annotations

import asyncio
import random
import tempfile
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from .docker_assets import DOCKERFILE, GENERATE_ISO_SCRIPT
from .errors import ContainerRuntimeError
from .models import ContainerRunResult, ContainerStatus

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .models import IsoGenerationOptions

logger = structlog.get_logger(__name__)

DEFAULT_IMAGE = "lfs-iso-builder"
NOT_AVAILABLE_MESSAGE = "Docker is not available on this system"


class ContainerRuntime(ABC):
    """Base class for local ISO generation runtimes."""

    def __init__(self, image: str = DEFAULT_IMAGE) -> None:
        self.image = image
        self._available: bool | None = None
        self._status = ContainerStatus()
        self._subscribers: list[Callable[[ContainerStatus], None]] = []
        self._log = logger.bind(component=type(self).__name__)

    async def check_availability(self) -> bool:
        """Probe the runtime once and cache the answer."""
        if self._available is None:
            try:
                self._available = await self._probe()
            except ContainerRuntimeError as e:
                self._log.warning("container_probe_failed", error=str(e))
                self._available = False
            self._log.info("container_runtime_probed", available=self._available)
        return self._available

    @abstractmethod
    async def _probe(self) -> bool:
        """Check whether the runtime can run containers."""
        ...

    @abstractmethod
    async def build_image(self, force: bool = False) -> bool:
        """Make sure the builder image exists."""
        ...

    @abstractmethod
    async def run_iso_generation(
        self,
        options: IsoGenerationOptions,
        container_id: str | None = None,
    ) -> ContainerRunResult:
        """Run one ISO generation and collect its log lines.

        Args:
            options: Generation parameters.
            container_id: Name for the container; generated if omitted.
        """
        ...

    def get_container_status(self) -> ContainerStatus:
        return self._status.model_copy(deep=True)

    def on_status_update(self, callback: Callable[[ContainerStatus], None]) -> Callable[[], None]:
        """Subscribe to status changes; returns the unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, **changes: Any) -> None:
        self._status = self._status.model_copy(
            update={**changes, "last_updated": datetime.now(tz=UTC)}
        )
        snapshot = self.get_container_status()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as e:
                self._log.error("status_subscriber_error", error=str(e))

    def _start(self, container_id: str) -> list[str]:
        logs: list[str] = []
        self._publish(running=True, container_id=container_id, progress=0, logs=[])
        return logs

    def _emit(self, logs: list[str], line: str, progress: int | None = None) -> None:
        logs.append(line)
        changes: dict[str, Any] = {"logs": list(logs)}
        if progress is not None:
            changes["progress"] = max(self._status.progress, min(progress, 100))
        self._publish(**changes)

    def _finish(self, logs: list[str], success: bool, output: str | None) -> ContainerRunResult:
        if success:
            self._publish(running=False, progress=100, logs=list(logs))
        else:
            self._publish(running=False, progress=min(self._status.progress, 99), logs=list(logs))
        return ContainerRunResult(
            success=success, logs=list(logs), output=output if success else None
        )

    @staticmethod
    def new_container_id() -> str:
        return f"lfs-iso-{int(datetime.now(tz=UTC).timestamp() * 1000)}"

    def get_docker_command(
        self,
        options: IsoGenerationOptions,
        container_id: str | None = None,
    ) -> list[str]:
        """The ``docker run`` invocation for ``options``."""
        output = Path(options.output_path)
        bootloader = options.bootloader if options.bootable else "none"
        cmd = ["docker", "run", "--rm"]
        if container_id:
            cmd += ["--name", container_id]
        cmd += [
            "-v",
            f"{options.source_dir}:/lfs-source:ro",
            "-v",
            f"{output.parent}:/output",
            self.image,
            "--source=/lfs-source",
            f"--output=/output/{output.name}",
            f"--label={options.label}",
            f"--bootloader={bootloader}",
            f"--bootable={'true' if options.bootable else 'false'}",
        ]
        return cmd


class SimulatedContainerRuntime(ContainerRuntime):
    """Runtime that simulates a container run with canned output.

    All randomness comes from the injected ``rng``.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        availability_chance: float = 0.7,
        failure_rate: float = 0.1,
        step_delay: float = 0.5,
        image: str = DEFAULT_IMAGE,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        super().__init__(image)
        self._rng = rng or random.Random()
        self.availability_chance = availability_chance
        self.failure_rate = failure_rate
        self.step_delay = step_delay
        self._sleep = sleep

    async def _probe(self) -> bool:
        await self._sleep(self.step_delay)
        return self._rng.random() < self.availability_chance

    async def build_image(self, force: bool = False) -> bool:
        if not await self.check_availability():
            return False
        await self._sleep(self.step_delay * 3)
        self._log.debug("image_build_simulated", image=self.image, force=force)
        return True

    async def run_iso_generation(
        self,
        options: IsoGenerationOptions,
        container_id: str | None = None,
    ) -> ContainerRunResult:
        if not await self.check_availability():
            return ContainerRunResult(success=False, logs=[NOT_AVAILABLE_MESSAGE])

        logs = self._start(container_id or self.new_container_id())
        self._emit(logs, "Starting ISO generation in Docker container", 5)

        if not await self.build_image():
            self._emit(logs, "Failed to build or find Docker image")
            return self._finish(logs, False, None)

        self._emit(logs, "Docker image is ready", 10)
        self._emit(logs, f"Source directory: {options.source_dir}")
        self._emit(logs, f"Output path: {options.output_path}")
        self._emit(logs, f"Volume label: {options.label}")
        self._emit(logs, f"Bootloader: {options.bootloader}")
        self._emit(logs, f"Bootable: {'yes' if options.bootable else 'no'}")
        self._emit(logs, "Running Docker container...", 20)
        await self._sleep(self.step_delay * 4)

        self._emit(logs, "Starting ISO generation process in container", 30)
        self._emit(logs, "Creating ISO directory structure", 40)
        self._emit(logs, "Copying LFS files to ISO image", 50)

        if options.bootable:
            self._emit(logs, f"Setting up {options.bootloader} bootloader", 60)
            if options.bootloader == "grub":
                self._emit(logs, "Installing GRUB bootloader files")
                self._emit(logs, "Creating GRUB configuration")
                self._emit(logs, "Building El Torito boot image", 70)
            elif options.bootloader == "isolinux":
                self._emit(logs, "Installing ISOLINUX bootloader files")
                self._emit(logs, "Creating ISOLINUX configuration", 70)

        self._emit(logs, "Running xorriso to create ISO image", 80)
        await self._sleep(self.step_delay * 3)

        if self._rng.random() < self.failure_rate:
            self._emit(logs, "Error: ISO generation failed with exit code 1")
            return self._finish(logs, False, None)

        self._emit(logs, "Docker container execution complete", 95)
        self._emit(logs, f"ISO file created successfully at {options.output_path}")
        return self._finish(logs, True, options.output_path)


class DockerContainerRuntime(ContainerRuntime):
    """Runtime driving the real ``docker`` CLI through asyncio subprocesses."""

    def __init__(
        self,
        image: str = DEFAULT_IMAGE,
        docker_binary: str = "docker",
        timeout_seconds: float = 1800.0,
    ) -> None:
        super().__init__(image)
        self.docker_binary = docker_binary
        self.timeout_seconds = timeout_seconds

    async def _run(self, *args: str, timeout: float = 60.0) -> tuple[int, str, str]:
        cmd = [self.docker_binary, *args]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ContainerRuntimeError(f"Failed to run {self.docker_binary}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except TimeoutError:
            process.kill()
            await process.wait()
            raise ContainerRuntimeError(
                f"Failed to run {' '.join(args[:2])}: timed out after {timeout}s"
            ) from None

        return (
            process.returncode or 0,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )

    async def _probe(self) -> bool:
        code, _, stderr = await self._run("info", "--format", "{{.ServerVersion}}", timeout=15.0)
        if code != 0:
            self._log.debug("docker_info_failed", stderr=stderr.strip())
        return code == 0

    async def build_image(self, force: bool = False) -> bool:
        if not await self.check_availability():
            return False

        if not force:
            code, _, _ = await self._run("image", "inspect", self.image)
            if code == 0:
                return True

        with tempfile.TemporaryDirectory(prefix="lfs-iso-image-") as context_dir:
            context = Path(context_dir)
            (context / "Dockerfile").write_text(DOCKERFILE)
            (context / "generate-iso.sh").write_text(GENERATE_ISO_SCRIPT)
            self._log.info("building_image", image=self.image)
            try:
                code, _, stderr = await self._run(
                    "build", "-t", self.image, str(context), timeout=self.timeout_seconds
                )
            except ContainerRuntimeError as e:
                self._log.error("image_build_failed", error=str(e))
                return False

        if code != 0:
            self._log.error("image_build_failed", image=self.image, stderr=stderr.strip())
            return False
        return True

    async def run_iso_generation(
        self,
        options: IsoGenerationOptions,
        container_id: str | None = None,
    ) -> ContainerRunResult:
        if not await self.check_availability():
            return ContainerRunResult(success=False, logs=[NOT_AVAILABLE_MESSAGE])

        container_id = container_id or self.new_container_id()
        logs = self._start(container_id)
        self._emit(logs, "Starting ISO generation in Docker container", 5)

        if not await self.build_image():
            self._emit(logs, "Failed to build or find Docker image")
            return self._finish(logs, False, None)
        self._emit(logs, "Docker image is ready", 10)

        Path(options.output_path).parent.mkdir(parents=True, exist_ok=True)
        cmd = self.get_docker_command(options, container_id)
        self._emit(logs, "Running Docker container...", 20)

        try:
            process = await asyncio.create_subprocess_exec(
                self.docker_binary,
                *cmd[1:],
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except FileNotFoundError as e:
            self._emit(logs, f"Error running Docker container: {e}")
            return self._finish(logs, False, None)

        try:
            await asyncio.wait_for(self._stream(process, logs), timeout=self.timeout_seconds)
            return_code = await process.wait()
        except TimeoutError:
            process.kill()
            await process.wait()
            self._emit(logs, f"Error: container timed out after {self.timeout_seconds}s")
            return self._finish(logs, False, None)

        if return_code != 0:
            self._emit(logs, f"Error: ISO generation failed with exit code {return_code}")
            return self._finish(logs, False, None)

        self._emit(logs, "Docker container execution complete", 95)
        self._emit(logs, f"ISO file created successfully at {options.output_path}")
        return self._finish(logs, True, options.output_path)

    async def _stream(self, process: asyncio.subprocess.Process, logs: list[str]) -> None:
        if process.stdout is None:
            return
        progress = 20
        while True:
            line = await process.stdout.readline()
            if not line:
                break
            # Creep towards 90% as output arrives
            progress = min(90, progress + 2)
            self._emit(logs, line.decode("utf-8", errors="replace").rstrip(), progress)


class ScriptedContainerRuntime(ContainerRuntime):
    """Deterministic runtime for tests.

    ``release`` gates the end of a run so callers can observe the running
    state; runs finish immediately when it is None.
    """

    def __init__(
        self,
        available: bool = True,
        succeed: bool = True,
        logs: list[str] | None = None,
        release: asyncio.Event | None = None,
        image: str = DEFAULT_IMAGE,
    ) -> None:
        super().__init__(image)
        self.available = available
        self.succeed = succeed
        self.logs = logs
        self.release = release
        self.probe_count = 0
        self.runs: list[tuple[IsoGenerationOptions, str]] = []

    async def _probe(self) -> bool:
        self.probe_count += 1
        return self.available

    async def build_image(self, force: bool = False) -> bool:
        return await self.check_availability()

    async def run_iso_generation(
        self,
        options: IsoGenerationOptions,
        container_id: str | None = None,
    ) -> ContainerRunResult:
        if not await self.check_availability():
            return ContainerRunResult(success=False, logs=[NOT_AVAILABLE_MESSAGE])

        container_id = container_id or self.new_container_id()
        self.runs.append((options, container_id))
        logs = self._start(container_id)
        self._emit(logs, "Starting ISO generation in Docker container", 10)
        for line in self.logs or []:
            self._emit(logs, line, 50)

        if self.release is not None:
            await self.release.wait()
        else:
            await asyncio.sleep(0)

        if not self.succeed:
            self._emit(logs, "Error: ISO generation failed with exit code 1")
            return self._finish(logs, False, None)
        self._emit(logs, f"ISO file created successfully at {options.output_path}", 95)
        return self._finish(logs, True, options.output_path)

    def interrupt(self) -> None:
        """Report the current container as stopped while its run is still pending."""
        self._publish(running=False)
