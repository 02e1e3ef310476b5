"""Construction of the services the commands use, from configuration."""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

from rich.console import Console

from builder.notifications import Notification, NotificationLevel, NotificationManager
from builder.persistence import Actor, PersistenceBridge
from builder.storage import InMemoryStorage, RestStorage, StorageBackend
from isogen.api_client import IsoApiClient
from isogen.container import ContainerRuntime, DockerContainerRuntime, SimulatedContainerRuntime
from isogen.coordinator import IsoGenerationCoordinator
from isogen.metadata import IsoMetadataStore
from isogen.scenarios import FileIsoVerifier, IsoVerifier, SimulatedIsoVerifier

if TYPE_CHECKING:
    from builder.config import BuilderConfig, ConfigManager

LEVEL_STYLES = {
    NotificationLevel.INFO: "blue",
    NotificationLevel.SUCCESS: "green",
    NotificationLevel.WARNING: "yellow",
    NotificationLevel.ERROR: "red",
}


def build_notifier(config: BuilderConfig, console: Console) -> NotificationManager:
    """Notification manager that also prints every notification."""
    notifier = NotificationManager(config.notifications.to_config())

    def show(notification: Notification) -> None:
        style = LEVEL_STYLES[notification.level]
        console.print(
            f"[bold {style}]{notification.title}[/bold {style}]: {notification.message}",
            highlight=False,
        )

    notifier.subscribe(show)
    return notifier


def build_runtime(config: BuilderConfig, kind: str | None = None) -> ContainerRuntime:
    """Container runtime selected by ``kind`` or by the configuration."""
    settings = config.container
    kind = kind or settings.runtime
    if kind == "docker":
        return DockerContainerRuntime(image=settings.image, docker_binary=settings.docker_binary)
    if kind == "simulated":
        return SimulatedContainerRuntime(
            rng=random.Random(settings.seed),
            availability_chance=settings.availability_chance,
            failure_rate=settings.failure_rate,
            step_delay=settings.step_delay_seconds,
            image=settings.image,
        )
    raise ValueError(f"Unknown container runtime: {kind}")


def build_verifier(config: BuilderConfig) -> IsoVerifier:
    """Real image check for the docker runtime, simulated otherwise."""
    if config.container.runtime == "docker":
        return FileIsoVerifier()
    return SimulatedIsoVerifier(
        rng=random.Random(config.container.seed),
        failure_rate=config.iso.verification_failure_rate,
    )


def build_coordinator(
    manager: ConfigManager,
    notifier: NotificationManager,
    runtime: ContainerRuntime | None = None,
) -> IsoGenerationCoordinator:
    config = manager.get_config()
    return IsoGenerationCoordinator(
        IsoApiClient.from_settings(config.backend),
        runtime or build_runtime(config),
        notifier=notifier,
        metadata_store=IsoMetadataStore(manager.metadata_file()),
    )


def build_storage(config: BuilderConfig) -> StorageBackend:
    """REST storage when a URL is configured, in-memory otherwise."""
    settings = config.storage
    if settings.url:
        return RestStorage(
            settings.url,
            api_key=settings.api_key,
            access_token=settings.access_token,
            timeout_seconds=settings.timeout_seconds,
        )
    return InMemoryStorage()


def build_bridge(config: BuilderConfig, notifier: NotificationManager) -> PersistenceBridge:
    actor = Actor(user_id=config.storage.user_id) if config.storage.user_id else None
    return PersistenceBridge(build_storage(config), notifier=notifier, actor=actor)
