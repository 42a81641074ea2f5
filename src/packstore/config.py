"""
Configuration management using pydantic-settings.

Settings are read from (highest priority first) constructor arguments,
PACKSTORE_* environment variables, a .env file and settings.toml.
Nested sections use a double underscore in environment variables, e.g.
PACKSTORE_CLEANER__PACK_LIFESPAN=3600.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

from packstore.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SETTINGS_FILE = Path("settings.toml")

DEFAULT_SETTINGS_TOML = """\
[server]
# Interface and port the HTTP server binds to
host = "0.0.0.0"
port = 8080
# Public prefix used to build download links
url = "http://localhost:8080"

[request]
# Largest accepted pack, in bytes
max_size = 104857600

[cleaner]
# Seconds between cleanup passes
delay = 3600
# Seconds a pack may go undownloaded before it is deleted
pack_lifespan = 604800

[storage]
directory = "storage"
"""


class ServerSettings(BaseModel):
    """HTTP listener and public URL."""

    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8080, ge=0, le=65535, description="Bind port")
    url: str = Field(
        default="http://localhost:8080",
        description="Public URL prefix used to build download links",
    )

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize so download links never contain '//pack.zip'."""
        v = v.strip()
        if not v:
            raise ValueError("server.url must not be empty")
        return v.rstrip("/")

    def download_url(self, content_hash: str) -> str:
        """Build the public download link for a pack."""
        return f"{self.url}/pack.zip?id={content_hash}"


class RequestSettings(BaseModel):
    """Upload limits."""

    max_size: int = Field(
        default=100 * 1024 * 1024, ge=0, description="Maximum pack size in bytes"
    )


class CleanerSettings(BaseModel):
    """Reconcile schedule and eviction window."""

    delay: int = Field(default=3600, gt=0, description="Seconds between cleanup passes")
    pack_lifespan: int = Field(
        default=7 * 24 * 3600,
        ge=0,
        description="Seconds of inactivity before a pack is evicted",
    )


class StorageSettings(BaseModel):
    """On-disk layout root."""

    directory: Path = Field(default=Path("storage"), description="Storage root")


class Settings(BaseSettings):
    """Application settings.

    Sections:
        server: host, port, public url
        request: max_size
        cleaner: delay, pack_lifespan
        storage: directory

    Top level:
        log_level: Console logging level
        log_file: JSON-lines log file (empty string disables it)
    """

    model_config = SettingsConfigDict(
        env_prefix="PACKSTORE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        toml_file=DEFAULT_SETTINGS_FILE,
        extra="ignore",
    )

    server: ServerSettings = Field(default_factory=ServerSettings)
    request: RequestSettings = Field(default_factory=RequestSettings)
    cleaner: CleanerSettings = Field(default_factory=CleanerSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_file: Path | None = Field(
        default=Path("packstore.log"), description="JSON-lines log file"
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v

    @field_validator("log_file", mode="before")
    @classmethod
    def empty_log_file_disables(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    def redacted_display(self) -> dict[str, str | int | None]:
        """Return a flat view of the effective settings for display."""
        return {
            "server.host": self.server.host,
            "server.port": self.server.port,
            "server.url": self.server.url,
            "request.max_size": self.request.max_size,
            "cleaner.delay": self.cleaner.delay,
            "cleaner.pack_lifespan": self.cleaner.pack_lifespan,
            "storage.directory": str(self.storage.directory),
            "log_level": self.log_level,
            "log_file": str(self.log_file) if self.log_file else None,
        }


def load_settings(path: Path | str | None = None) -> Settings:
    """Load settings from a specific TOML file.

    Args:
        path: TOML file to read. Defaults to ./settings.toml.

    Returns:
        Settings instance.

    Raises:
        pydantic.ValidationError: If a value is missing or out of range.
    """
    if path is None:
        return Settings()

    toml_path = Path(path)

    class _FileSettings(Settings):
        model_config = SettingsConfigDict(toml_file=toml_path)

    return _FileSettings()


def write_default_settings(path: Path | str = DEFAULT_SETTINGS_FILE, force: bool = False) -> bool:
    """Write the bundled default settings file.

    Args:
        path: Destination file.
        force: Overwrite an existing file.

    Returns:
        True if the file was written, False if it already existed.
    """
    path = Path(path)
    if path.exists() and not force:
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_SETTINGS_TOML, encoding="utf-8")
    logger.info("Wrote default settings", path=str(path))
    return True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from the environment and settings.toml.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
