"""Configuration management for the LFS builder.

This module provides YAML-based configuration loading and saving,
following the XDG Base Directory Specification. A few environment
variables override values from the file.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any, Literal

import structlog
import yaml
from pydantic import BaseModel, Field

from .notifications import NotificationConfig

logger = structlog.get_logger(__name__)

APP_NAME = "lfs-builder"

ENV_BACKEND_URL = "LFS_ISO_BACKEND_URL"
ENV_STORAGE_URL = "LFS_STORAGE_URL"
ENV_STORAGE_TOKEN = "LFS_STORAGE_TOKEN"


class LogLevel(str, Enum):
    """Log level for builder output."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class GlobalSettings(BaseModel):
    """Global settings."""

    log_level: LogLevel = Field(default=LogLevel.WARNING, description="Log level of the CLI")


class EndpointSettings(BaseModel):
    """Paths of the ISO backend API, relative to ``api_url``."""

    health: str = "/health"
    generate_iso: str = "/api/iso/generate"
    status: str = "/api/iso/status"
    download: str = "/api/iso/download"


class BackendSettings(BaseModel):
    """Remote ISO generation backend."""

    api_url: str | None = Field(default=None, description="Base URL; None = not configured")
    endpoints: EndpointSettings = Field(default_factory=EndpointSettings)
    request_timeout_seconds: float = Field(
        default=10.0, description="Timeout for the initial generation request"
    )
    timeout_seconds: float = Field(default=300.0, description="Timeout for other API calls")
    poll_interval_seconds: float = Field(default=3.0, description="Job status poll interval")


class StorageSettings(BaseModel):
    """Hosted storage backend for builds and configurations."""

    url: str | None = Field(default=None, description="Base URL; None = in-memory storage")
    api_key: str | None = Field(default=None, description="Project API key")
    access_token: str | None = Field(default=None, description="Session access token")
    user_id: str | None = Field(default=None, description="Authenticated actor id")
    timeout_seconds: float = Field(default=30.0)


class BuildSettings(BaseModel):
    """Run-loop behaviour."""

    strict_dependencies: bool = Field(
        default=False, description="Only run steps whose dependencies are done"
    )
    step_delay_cap_seconds: float = Field(
        default=3.0, description="Upper bound of a simulated step delay"
    )
    default_step_delay_seconds: float = Field(
        default=2.0, description="Simulated delay for steps without an estimate"
    )
    advance_delay_seconds: float = Field(
        default=0.8, description="Pause between automatically chained steps"
    )
    failure_rate: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Injected simulated step failure chance"
    )


class ContainerSettings(BaseModel):
    """Local container runtime used as the ISO generation fallback."""

    runtime: Literal["simulated", "docker"] = Field(default="simulated")
    image: str = Field(default="lfs-iso-builder")
    docker_binary: str = Field(default="docker")
    availability_chance: float = Field(default=0.7, ge=0.0, le=1.0)
    failure_rate: float = Field(default=0.1, ge=0.0, le=1.0)
    step_delay_seconds: float = Field(default=0.5, ge=0.0)
    seed: int | None = Field(default=None, description="Seed for the simulation RNG")


class IsoSettings(BaseModel):
    """ISO output and bookkeeping."""

    metadata_file: Path | None = Field(default=None, description="ISO metadata JSON file")
    output_dir: Path = Field(default=Path("/tmp/iso"))
    verification_failure_rate: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Simulated ISO verification failure chance"
    )


class NotificationSettings(BaseModel):
    """User-visible notifications."""

    enabled: bool = True
    desktop: bool = False
    history_size: int = 200

    def to_config(self) -> NotificationConfig:
        return NotificationConfig(
            enabled=self.enabled,
            desktop=self.desktop,
            history_size=self.history_size,
        )


class BuilderConfig(BaseModel):
    """Complete builder configuration."""

    global_settings: GlobalSettings = Field(default_factory=GlobalSettings)
    backend: BackendSettings = Field(default_factory=BackendSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    build: BuildSettings = Field(default_factory=BuildSettings)
    container: ContainerSettings = Field(default_factory=ContainerSettings)
    iso: IsoSettings = Field(default_factory=IsoSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)


def get_config_dir() -> Path:
    """Get the configuration directory following XDG spec.

    Returns:
        Path to the configuration directory.
    """
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg_config_home) if xdg_config_home else Path.home() / ".config"

    config_dir = base / APP_NAME
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_data_dir() -> Path:
    """Get the data directory following XDG spec."""
    xdg_data_home = os.environ.get("XDG_DATA_HOME")
    base = Path(xdg_data_home) if xdg_data_home else Path.home() / ".local" / "share"

    data_dir = base / APP_NAME
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    return get_config_dir() / "config.yaml"


class YamlConfigLoader:
    """Loads and saves configuration dictionaries from/to YAML files."""

    def load(self, path: str) -> dict[str, Any]:
        """Load configuration from a YAML file.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            yaml.YAMLError: If the file is not valid YAML.
        """
        config_path = Path(path)

        if not config_path.exists():
            logger.debug("config_file_not_found", path=path)
            raise FileNotFoundError(f"Configuration file not found: {path}")

        data = yaml.safe_load(config_path.read_text())

        if data is None:
            return {}

        return data  # type: ignore[no-any-return]

    def save(self, config: dict[str, Any], path: str) -> None:
        """Save configuration to a YAML file."""
        config_path = Path(path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        content = yaml.dump(config, default_flow_style=False, sort_keys=False)
        config_path.write_text(content)

        logger.info("config_saved", path=path)


def _clean_env(name: str) -> str | None:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


class ConfigManager:
    """Manages application configuration.

    Provides high-level methods for loading, saving, and accessing
    configuration values.
    """

    def __init__(self, config_path: Path | None = None) -> None:
        """Initialize the configuration manager.

        Args:
            config_path: Optional path to configuration file.
                        Uses default path if not provided.
        """
        self.config_path = config_path or get_default_config_path()
        self._loader = YamlConfigLoader()
        self._config: BuilderConfig | None = None

    def load(self) -> BuilderConfig:
        """Load configuration from file, then apply environment overrides.

        Returns:
            BuilderConfig with loaded values, or defaults if file doesn't exist.
        """
        try:
            data = self._loader.load(str(self.config_path))
            config = self._parse_config(data)
        except FileNotFoundError:
            logger.info("using_default_config")
            config = BuilderConfig()

        self._config = self._apply_env_overrides(config)
        return self._config

    def save(self, config: BuilderConfig | None = None) -> None:
        """Save configuration to file."""
        if config is not None:
            self._config = config

        if self._config is None:
            self._config = BuilderConfig()

        self._loader.save(self._serialize_config(self._config), str(self.config_path))

    def get_config(self) -> BuilderConfig:
        """Get the current configuration, loading it if needed."""
        if self._config is None:
            self.load()
        return self._config or BuilderConfig()

    def init_config(self, force: bool = False) -> bool:
        """Initialize a new configuration file with defaults.

        Returns:
            True if configuration was created, False if it already exists.
        """
        if self.config_path.exists() and not force:
            logger.info("config_exists", path=str(self.config_path))
            return False

        self.save(BuilderConfig())
        logger.info("config_initialized", path=str(self.config_path))
        return True

    def metadata_file(self) -> Path:
        """Resolved location of the ISO metadata file."""
        configured = self.get_config().iso.metadata_file
        return configured or get_data_dir() / "iso-metadata.json"

    def _parse_config(self, data: dict[str, Any]) -> BuilderConfig:
        sections = dict(data)
        global_data = sections.pop("global", None) or {}
        return BuilderConfig(global_settings=GlobalSettings(**global_data), **sections)

    def _serialize_config(self, config: BuilderConfig) -> dict[str, Any]:
        data = config.model_dump(mode="json", exclude={"global_settings"})
        return {"global": config.global_settings.model_dump(mode="json"), **data}

    def _apply_env_overrides(self, config: BuilderConfig) -> BuilderConfig:
        backend_url = _clean_env(ENV_BACKEND_URL)
        if backend_url:
            config.backend.api_url = backend_url
        elif config.backend.api_url is not None and not config.backend.api_url.strip():
            config.backend.api_url = None

        storage_url = _clean_env(ENV_STORAGE_URL)
        if storage_url:
            config.storage.url = storage_url

        storage_token = _clean_env(ENV_STORAGE_TOKEN)
        if storage_token:
            config.storage.access_token = storage_token

        return config
