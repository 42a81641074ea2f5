"""
Pytest configuration and fixtures for packstore tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Generator
from unittest.mock import patch

import pytest

from packstore.config import Settings, clear_settings_cache
from packstore.packs.manager import PackManager

START_TIME = 1_700_000_000


class FakeClock:
    """Manually advanced Unix-seconds clock."""

    def __init__(self, now: int = START_TIME) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage_dir(temp_dir: Path) -> Path:
    return temp_dir / "storage"


@pytest.fixture
async def manager(storage_dir: Path, clock: FakeClock) -> PackManager:
    """Started pack manager with a one hour lifespan and a fake clock."""
    pack_manager = PackManager(storage_dir, pack_lifespan=3600, clock=clock)
    await pack_manager.start()
    return pack_manager


@pytest.fixture
def mock_env_vars(temp_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide environment configuration pointing at temp_dir."""
    env_vars = {
        "PACKSTORE_SERVER__URL": "http://packs.example.com/",
        "PACKSTORE_SERVER__PORT": "9000",
        "PACKSTORE_REQUEST__MAX_SIZE": "1024",
        "PACKSTORE_CLEANER__DELAY": "60",
        "PACKSTORE_CLEANER__PACK_LIFESPAN": "3600",
        "PACKSTORE_STORAGE__DIRECTORY": str(temp_dir / "storage"),
        "PACKSTORE_LOG_LEVEL": "debug",
        "PACKSTORE_LOG_FILE": "",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str], temp_dir: Path) -> Settings:
    """Provide a Settings instance that ignores any settings.toml on disk."""
    return Settings(_env_file=None)


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def isolated_cwd(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run every test from temp_dir so a stray settings.toml or .env is never read."""
    monkeypatch.chdir(temp_dir)
