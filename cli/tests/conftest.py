"""Shared test fixtures for CLI tests."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
import structlog

from builder.persistence import Actor, PersistenceBridge
from builder.storage import InMemoryStorage

if TYPE_CHECKING:
    from collections.abc import Generator
    from pathlib import Path


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Isolate tests from the real user configuration and data.

    Points XDG_CONFIG_HOME and XDG_DATA_HOME at temporary directories and
    clears the LFS_* overrides, so tests never read or write the real
    config.yaml or ISO metadata file.
    """
    config_home = tmp_path / "xdg_config"
    data_home = tmp_path / "xdg_data"
    config_home.mkdir(parents=True, exist_ok=True)
    data_home.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    monkeypatch.setenv("XDG_DATA_HOME", str(data_home))
    for name in ("LFS_ISO_BACKEND_URL", "LFS_STORAGE_URL", "LFS_STORAGE_TOKEN"):
        monkeypatch.delenv(name, raising=False)

    yield tmp_path

    # Commands point structlog at the runner's captured stderr
    structlog.reset_defaults()


@pytest.fixture
def memory_storage(monkeypatch: pytest.MonkeyPatch) -> InMemoryStorage:
    """In-memory storage behind every bridge the commands build.

    Also sets a storage URL so storage-backed commands are enabled, and
    signs in as ``user-1``.
    """
    storage = InMemoryStorage()
    monkeypatch.setenv("LFS_STORAGE_URL", "http://storage.test")

    def bridge_factory(config: Any, notifier: Any) -> PersistenceBridge:
        return PersistenceBridge(storage, notifier=notifier, actor=Actor(user_id="user-1"))

    monkeypatch.setattr("cli.main.build_bridge", bridge_factory)
    return storage
