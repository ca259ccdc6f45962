"""CollectionMarker Configuration Settings."""

from __future__ import annotations

import os
from functools import cached_property, lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from src.models.media import MediaKind
from src.utils.logging import _get_logger
from src.utils.types import BaseStrEnum

__all__ = [
    "AutoRunConfig",
    "CacheConfig",
    "CollectionMarkerConfig",
    "JellyfinConfig",
    "LogLevel",
    "WatcherConfig",
    "WebConfig",
    "get_config",
]

_log = _get_logger(__name__)


def find_yaml_config_file() -> Path:
    """Find the YAML configuration file in the data path.

    Returns:
        Path: The path to an existing YAML configuration file or the default location.
    """
    data_path = Path(os.getenv("CM_DATA_PATH", "./data")).resolve()

    for ext in ("yaml", "yml"):
        yaml_file = data_path / f"config.{ext}"
        if yaml_file.exists():
            _log.debug(f"Using YAML config file: {yaml_file.resolve()}")
            return yaml_file.resolve()
    return data_path / "config.yaml"


class LogLevel(BaseStrEnum):
    """Enumeration of available logging levels.

    Note: SUCCESS is a custom level used by this application.
    """

    DEBUG = "DEBUG"
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class JellyfinConfig(BaseModel):
    """Connection settings for the Jellyfin server."""

    url: str = Field(
        default="http://localhost:8096", description="Base URL of the Jellyfin server"
    )
    token: SecretStr = Field(
        default=SecretStr(""), description="API key or user access token"
    )
    user_id: str | None = Field(
        default=None,
        description="User whose view of the library is queried; resolved from the "
        "token when unset",
    )
    request_timeout: float = Field(
        default=30.0, gt=0, description="Total timeout for a single request (seconds)"
    )

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        """Normalize the base URL so paths can be appended directly."""
        return value.rstrip("/")


class CacheConfig(BaseModel):
    """Time-to-live settings for the persisted caches (seconds)."""

    movie_membership_ttl: float = Field(
        default=3600, gt=0, description="Movie collection membership cache TTL"
    )
    series_membership_ttl: float = Field(
        default=300, gt=0, description="Series collection membership cache TTL"
    )
    library_index_ttl: float = Field(
        default=300, gt=0, description="Provider id to library item index TTL"
    )

    def membership_ttl(self, kind: MediaKind) -> float:
        """Return the membership cache TTL configured for ``kind``."""
        if kind == MediaKind.MOVIE:
            return self.movie_membership_ttl
        return self.series_membership_ttl


class AutoRunConfig(BaseModel):
    """Background reconciliation settings."""

    enabled: bool = Field(
        default=False,
        description="Initial value of the persisted auto-run opt-in flag",
    )
    interval: float = Field(
        default=300, gt=0, description="Seconds between scheduled reconciliations"
    )
    initial_delay: float = Field(
        default=15, ge=0, description="Seconds to wait before the first scheduled run"
    )


class WatcherConfig(BaseModel):
    """Debounce settings for collection mutation events (seconds)."""

    debounce_window: float = Field(
        default=1.2, ge=0, description="Quiet period after the last mutation event"
    )
    settle_delay: float = Field(
        default=1.2,
        ge=0,
        description="Extra wait after the window so the server finishes its writes",
    )


class WebConfig(BaseModel):
    """Configuration for the embedded web server."""

    enabled: bool = Field(default=True, description="Enable the web API")
    host: str = Field(default="0.0.0.0", description="Host for the web server")
    port: int = Field(default=4849, description="Port for the web server")


class CollectionMarkerConfig(BaseSettings):
    """Configuration for the CollectionMarker application.

    Configuration is sourced from a YAML file in the data directory, optionally
    combined with parameters passed directly to the model.
    """

    jellyfin: JellyfinConfig = Field(
        default_factory=JellyfinConfig, description="Jellyfin connection settings"
    )
    marker_tag: str = Field(
        default="NotInCollection",
        min_length=1,
        description="Tag applied to items that are not in any collection",
    )
    kinds: list[MediaKind] = Field(
        default_factory=lambda: [MediaKind.MOVIE, MediaKind.SERIES],
        min_length=1,
        description="Media kinds that are reconciled",
    )
    cache: CacheConfig = Field(default_factory=CacheConfig)
    auto_run: AutoRunConfig = Field(default_factory=AutoRunConfig)
    watcher: WatcherConfig = Field(default_factory=WatcherConfig)
    update_delay: float = Field(
        default=0.05,
        ge=0,
        description="Minimum seconds between two item update requests",
    )
    log_level: LogLevel = Field(
        default=LogLevel.INFO, description="Logging level for the application"
    )
    web: WebConfig = Field(
        default_factory=WebConfig, description="Embedded web server configuration"
    )

    @cached_property
    def data_path(self) -> Path:
        """Get the data path for CollectionMarker.

        Returns:
            Path: The data path resolved from the environment or default location.
        """
        return Path(os.getenv("CM_DATA_PATH", "./data")).resolve()

    @field_validator("marker_tag")
    @classmethod
    def validate_marker_tag(cls, value: str) -> str:
        """Reject marker tags that are blank once stripped."""
        value = value.strip()
        if not value:
            raise ValueError("marker_tag must not be blank")
        return value

    @model_validator(mode="after")
    def dedupe_kinds(self) -> CollectionMarkerConfig:
        """Drop duplicate media kinds while keeping their order."""
        self.kinds = list(dict.fromkeys(self.kinds))
        if not self.jellyfin.token.get_secret_value():
            _log.warning(
                "No Jellyfin token configured; library requests will be rejected"
            )
        return self

    def __str__(self) -> str:
        """Creates a human-readable representation of the configuration."""
        return (
            f"CollectionMarker Config: JELLYFIN_URL: {self.jellyfin.url}, "
            f"MARKER_TAG: {self.marker_tag}, "
            f"KINDS: [{', '.join(str(k) for k in self.kinds)}], "
            f"AUTO_RUN: {self.auto_run.enabled} ({self.auto_run.interval:g}s), "
            f"DATA_PATH: {self.data_path}, LOG_LEVEL: {self.log_level}"
        )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize the order of configuration sources."""
        return (
            init_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=find_yaml_config_file()),
        )

    model_config = SettingsConfigDict(extra="ignore")


@lru_cache(maxsize=1)
def get_config() -> CollectionMarkerConfig:
    """Get the singleton instance of CollectionMarkerConfig.

    Returns:
        CollectionMarkerConfig: The singleton configuration instance.
    """
    return CollectionMarkerConfig()
