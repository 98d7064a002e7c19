"""Application settings.

Hey future me - settings come from (highest priority first): init kwargs, environment
variables (CARDCATALOG_ prefix, "__" for nested sections), .env, then config.yaml.
The YAML file path is taken from CARDCATALOG_CONFIG_FILE so the CLI can point us at
another file with --config. A missing YAML file is fine, we just use defaults.

The old config.yaml layout (top-level "paths" list and "api_keys: {acoustid: ...}")
is still accepted - see Settings._accept_legacy_layout.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from cardcatalog.domain.exceptions import ConfigurationError
from cardcatalog.domain.value_objects import AUDIO_EXTENSIONS

CONFIG_FILE_ENV = "CARDCATALOG_CONFIG_FILE"
DEFAULT_CONFIG_FILE = "config.yaml"


def _get_sqlite_db_path() -> str:
    """Default SQLite database URL (next to the working directory)."""
    return f"sqlite+aiosqlite:///{Path('cardcatalog.db').absolute()}"


def _config_file_path() -> Path:
    return Path(os.environ.get(CONFIG_FILE_ENV, DEFAULT_CONFIG_FILE))


class DatabaseSettings(BaseModel):
    """Catalog store connection."""

    url: str = Field(default_factory=_get_sqlite_db_path)
    echo: bool = False
    pool_pre_ping: bool = True
    # Pool settings only apply to PostgreSQL
    pool_size: int = Field(default=5, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    pool_timeout: int = Field(default=30, ge=1)
    pool_recycle: int = Field(default=3600, ge=-1)


class ScanSettings(BaseModel):
    """Library roots and pipeline sizing."""

    paths: list[Path] = Field(default_factory=list)
    extensions: list[str] = Field(default_factory=lambda: sorted(AUDIO_EXTENSIONS))
    follow_symlinks: bool = True
    cpu_workers: int = Field(default_factory=lambda: os.cpu_count() or 4, ge=1)
    queue_size: int = Field(default=64, ge=1)
    fingerprint: bool = True


class FingerprintSettings(BaseModel):
    """Chromaprint fpcalc invocation."""

    fpcalc_path: str = "fpcalc"
    # fpcalc never looks at more than 120 seconds of audio
    length_seconds: int = Field(default=120, ge=1, le=120)
    timeout_seconds: float = Field(default=60.0, gt=0)


class AcoustIdSettings(BaseModel):
    """AcoustID web service."""

    api_key: str | None = None
    base_url: str = "https://api.acoustid.org/v2"
    requests_per_second: float = Field(default=3.0, gt=0)
    timeout_seconds: float = Field(default=30.0, gt=0)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


class ResolverSettings(BaseModel):
    """Match acceptance and lookup scheduling."""

    accept_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    duration_tolerance_seconds: int = Field(default=5, ge=0)
    # 2 weeks
    cooldown_seconds: int = Field(default=1_209_600, ge=0)
    concurrency: int = Field(default=3, ge=1)
    skip_resolved_entries: bool = True
    allow_missing_reference_duration: bool = False


class SearchIndexSettings(BaseModel):
    """Elasticsearch mirror of the catalog."""

    enabled: bool = True
    url: str = "http://localhost:9200"
    index_name: str = "music_card_catalog"
    max_attempts: int = Field(default=3, ge=1)
    retry_backoff_seconds: float = Field(default=0.5, ge=0)
    timeout_seconds: float = Field(default=10.0, gt=0)


class ReferenceSettings(BaseModel):
    """Where canonical recording data is read from."""

    backend: Literal["musicbrainz_api", "database"] = "musicbrainz_api"
    database_url: str | None = None
    schema_name: str = "musicbrainz"


class MusicBrainzSettings(BaseModel):
    """MusicBrainz web service (reference backend "musicbrainz_api")."""

    base_url: str = "https://musicbrainz.org/ws/2"
    app_name: str = "MusicCardCatalog"
    app_version: str = "0.1.0"
    contact: str = "https://github.com/music-card-catalog"
    requests_per_second: float = Field(default=1.0, gt=0)
    timeout_seconds: float = Field(default=30.0, gt=0)


class PruneSettings(BaseModel):
    """Safeguards for removing entries whose files are gone."""

    require_reachable_roots: bool = True
    max_delete_fraction: float = Field(default=0.5, ge=0.0, le=1.0)
    clear_fulfilled_checkpoints: bool = False


class AuditSettings(BaseModel):
    page_size: int = Field(default=100, ge=1)


class LogSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    json_format: bool = False


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        env_prefix="CARDCATALOG_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "cardcatalog"
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    scan: ScanSettings = Field(default_factory=ScanSettings)
    fingerprint: FingerprintSettings = Field(default_factory=FingerprintSettings)
    acoustid: AcoustIdSettings = Field(default_factory=AcoustIdSettings)
    resolver: ResolverSettings = Field(default_factory=ResolverSettings)
    search_index: SearchIndexSettings = Field(default_factory=SearchIndexSettings)
    reference: ReferenceSettings = Field(default_factory=ReferenceSettings)
    musicbrainz: MusicBrainzSettings = Field(default_factory=MusicBrainzSettings)
    prune: PruneSettings = Field(default_factory=PruneSettings)
    audit: AuditSettings = Field(default_factory=AuditSettings)
    log: LogSettings = Field(default_factory=LogSettings)

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
            YamlConfigSettingsSource(settings_cls, yaml_file=_config_file_path()),
            file_secret_settings,
        )

    # Hey future me - the first config.yaml format was flat:
    #   paths: [/music]
    #   api_keys: {acoustid: xxx}
    # We fold those into the sections so old files keep working. Explicit section
    # values win over the legacy keys.
    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_layout(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        legacy_paths = data.pop("paths", None)
        api_keys = data.pop("api_keys", None)

        if legacy_paths:
            scan = dict(data.get("scan") or {})
            scan.setdefault("paths", legacy_paths)
            data["scan"] = scan
        if isinstance(api_keys, dict) and api_keys.get("acoustid"):
            acoustid = dict(data.get("acoustid") or {})
            acoustid.setdefault("api_key", api_keys["acoustid"])
            data["acoustid"] = acoustid
        return data


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process.

    Raises:
        ConfigurationError: If any source holds an invalid value
    """
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
