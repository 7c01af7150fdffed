"""Storage drivers and the repository factory."""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import Any

from folio.config import FolioConfig
from folio.errors import StorageError, UnknownDriverError
from folio.storage.base import ContentRepository, ObjectStoreRepository

logger = logging.getLogger(__name__)

__all__ = [
    "ContentRepository",
    "Driver",
    "ObjectStoreRepository",
    "create_repository",
]


class Driver(StrEnum):
    """Supported storage backends."""

    DATABASE = "database"
    LOCAL = "local"
    S3 = "s3"
    GCS = "gcs"
    AZURE = "azure"
    GITHUB = "github"


def create_repository(
    driver: Driver | str,
    content_type: str = "pages",
    config: FolioConfig | None = None,
    *,
    client: Any = None,
) -> ContentRepository:
    """Create a repository for the given driver.

    Args:
        driver: The backend identifier.
        content_type: Content type the repository serves (scopes database rows).
        config: Connection settings; defaults are used when omitted.
        client: Pre-built vendor client (boto3 S3 client, GCS client, Azure
            ContainerClient).  Built from config when omitted.

    Returns:
        A ContentRepository instance for the driver.

    Raises:
        UnknownDriverError: If the driver is unknown.
        StorageError: If the driver's SDK is not installed or not configured.
    """
    try:
        driver = Driver(driver)
    except ValueError:
        raise UnknownDriverError(str(driver)) from None

    config = config or FolioConfig()
    builders = {
        Driver.DATABASE: _build_database,
        Driver.LOCAL: _build_local,
        Driver.S3: _build_s3,
        Driver.GCS: _build_gcs,
        Driver.AZURE: _build_azure,
        Driver.GITHUB: _build_github,
    }
    repository = builders[driver](config, content_type, client)
    logger.debug("Created %s repository for %s", driver, content_type)
    return repository


def _build_database(config: FolioConfig, content_type: str, client: Any) -> ContentRepository:
    from folio.storage.database import DatabaseRepository

    return DatabaseRepository(config.database.path, content_type=content_type)


def _build_local(config: FolioConfig, content_type: str, client: Any) -> ContentRepository:
    from folio.storage.local import LocalRepository

    return LocalRepository(config.local.root, base_path=config.local.base_path)


def _build_s3(config: FolioConfig, content_type: str, client: Any) -> ContentRepository:
    from folio.storage.s3 import S3Repository

    s3 = config.s3
    if not s3.is_configured:
        raise StorageError("S3 bucket not configured (set [s3] bucket or FOLIO_S3_BUCKET)")
    if client is None:
        try:
            import boto3
        except ImportError:
            raise StorageError("boto3 is not installed: pip install 'folio[s3]'") from None

        kwargs: dict[str, str] = {"region_name": s3.region}
        if s3.access_key_id and s3.secret_access_key:
            kwargs["aws_access_key_id"] = s3.access_key_id
            kwargs["aws_secret_access_key"] = s3.secret_access_key
        if s3.endpoint_url:
            kwargs["endpoint_url"] = s3.endpoint_url
        client = boto3.client("s3", **kwargs)
    return S3Repository(client, s3.bucket, prefix=s3.prefix)


def _build_gcs(config: FolioConfig, content_type: str, client: Any) -> ContentRepository:
    from folio.storage.gcs import GcsRepository

    gcs = config.gcs
    if not gcs.is_configured:
        raise StorageError("GCS bucket not configured (set [gcs] bucket or FOLIO_GCS_BUCKET)")
    if client is None:
        try:
            from google.cloud import storage
        except ImportError:
            raise StorageError(
                "google-cloud-storage is not installed: pip install 'folio[gcs]'"
            ) from None

        if gcs.credentials_file:
            client = storage.Client.from_service_account_json(
                gcs.credentials_file, project=gcs.project or None
            )
        else:
            client = storage.Client(project=gcs.project or None)
    return GcsRepository(client, gcs.bucket, prefix=gcs.prefix)


def _build_azure(config: FolioConfig, content_type: str, client: Any) -> ContentRepository:
    from folio.storage.azure import AzureRepository

    azure = config.azure
    if client is None:
        if not azure.is_configured:
            raise StorageError(
                "Azure not configured (set [azure] connection_string and container)"
            )
        try:
            from azure.storage.blob import ContainerClient
        except ImportError:
            raise StorageError(
                "azure-storage-blob is not installed: pip install 'folio[azure]'"
            ) from None

        client = ContainerClient.from_connection_string(
            azure.connection_string, container_name=azure.container
        )
    return AzureRepository(client, prefix=azure.prefix)


def _build_github(config: FolioConfig, content_type: str, client: Any) -> ContentRepository:
    from folio.storage.github import GitHubRepository

    gh = config.github
    if not gh.is_configured:
        raise StorageError(
            "GitHub repository not configured (set [github] repository or FOLIO_GITHUB_REPOSITORY)"
        )
    return GitHubRepository(
        gh.repository,
        token=gh.token,
        branch=gh.branch,
        prefix=gh.prefix,
        api_url=gh.api_url,
    )
