"""Unified configuration loaded from .folio.toml, env vars, and CLI flags.

Loading order: defaults → TOML file → env vars → CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".folio.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
]
GLOBAL_CONFIG = Path.home() / ".config" / "folio" / "config.toml"


class MigrationSectionConfig(BaseModel):
    """[migration] section."""

    state_dir: str = "."
    sample_size: int = 10


class DatabaseSectionConfig(BaseModel):
    """[database] section."""

    path: str = "./folio.db"


class LocalSectionConfig(BaseModel):
    """[local] section."""

    root: str = "./content"
    base_path: str = ""


class S3SectionConfig(BaseModel):
    """[s3] section."""

    bucket: str = ""
    region: str = "us-east-1"
    prefix: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    endpoint_url: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.bucket)


class GcsSectionConfig(BaseModel):
    """[gcs] section."""

    bucket: str = ""
    prefix: str = ""
    project: str = ""
    credentials_file: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.bucket)


class AzureSectionConfig(BaseModel):
    """[azure] section."""

    connection_string: str = ""
    container: str = ""
    prefix: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.connection_string and self.container)


class GitHubSectionConfig(BaseModel):
    """[github] section."""

    repository: str = ""
    branch: str = "main"
    token: str = ""
    prefix: str = ""
    api_url: str = "https://api.github.com"

    @property
    def is_configured(self) -> bool:
        return bool(self.repository)


class FolioConfig(BaseModel):
    """Top-level configuration for drivers, path patterns and migrations."""

    migration: MigrationSectionConfig = Field(default_factory=MigrationSectionConfig)
    paths: dict[str, str] = Field(default_factory=dict)
    database: DatabaseSectionConfig = Field(default_factory=DatabaseSectionConfig)
    local: LocalSectionConfig = Field(default_factory=LocalSectionConfig)
    s3: S3SectionConfig = Field(default_factory=S3SectionConfig)
    gcs: GcsSectionConfig = Field(default_factory=GcsSectionConfig)
    azure: AzureSectionConfig = Field(default_factory=AzureSectionConfig)
    github: GitHubSectionConfig = Field(default_factory=GitHubSectionConfig)

    @property
    def state_path(self) -> Path:
        return Path(self.migration.state_dir)


def load_config(path: str | Path | None = None) -> FolioConfig:
    """Load configuration from a TOML file.

    Search order:
    1. Explicit path (if provided)
    2. .folio.toml in CWD
    3. ~/.config/folio/config.toml

    Then overlay environment variables.

    Args:
        path: Explicit path to a TOML file.

    Returns:
        Merged FolioConfig.
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break
        if not data and GLOBAL_CONFIG.exists():
            data = _load_toml(GLOBAL_CONFIG)
            logger.info("Loaded config from %s", GLOBAL_CONFIG)

    config = FolioConfig.model_validate(data) if data else FolioConfig()

    return _apply_env_vars(config)


def merge_cli_overrides(config: FolioConfig, **cli_kwargs: object) -> FolioConfig:
    """Overlay explicitly-set CLI flags onto the config.

    Only overrides values where the CLI flag was explicitly provided
    (i.e., not None).
    """
    data = config.model_dump()

    mapping: dict[str, tuple[str, str]] = {
        "state_dir": ("migration", "state_dir"),
        "sample_size": ("migration", "sample_size"),
        "database_path": ("database", "path"),
        "local_root": ("local", "root"),
    }

    for key, value in cli_kwargs.items():
        if value is None:
            continue
        if key in mapping:
            section, field = mapping[key]
            data[section][field] = value

    return FolioConfig.model_validate(data)


def _load_toml(path: Path) -> dict[str, object]:
    """Load a TOML file and return the data dict."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _apply_env_vars(config: FolioConfig) -> FolioConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    env_mapping: dict[str, tuple[str, str]] = {
        "FOLIO_STATE_DIR": ("migration", "state_dir"),
        "FOLIO_DATABASE_PATH": ("database", "path"),
        "FOLIO_LOCAL_ROOT": ("local", "root"),
        "FOLIO_S3_BUCKET": ("s3", "bucket"),
        "AWS_REGION": ("s3", "region"),
        "AWS_ACCESS_KEY_ID": ("s3", "access_key_id"),
        "AWS_SECRET_ACCESS_KEY": ("s3", "secret_access_key"),
        "FOLIO_GCS_BUCKET": ("gcs", "bucket"),
        "GOOGLE_APPLICATION_CREDENTIALS": ("gcs", "credentials_file"),
        "AZURE_STORAGE_CONNECTION_STRING": ("azure", "connection_string"),
        "FOLIO_AZURE_CONTAINER": ("azure", "container"),
        "GITHUB_TOKEN": ("github", "token"),
        "FOLIO_GITHUB_REPOSITORY": ("github", "repository"),
    }

    for env_var, (section, field) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is not None:
            data[section][field] = value

    sample_raw = os.environ.get("FOLIO_SAMPLE_SIZE")
    if sample_raw is not None:
        try:
            data["migration"]["sample_size"] = int(sample_raw)
        except ValueError:
            logger.warning("Ignoring non-integer FOLIO_SAMPLE_SIZE: %r", sample_raw)

    return FolioConfig.model_validate(data)
