"""Tests for the driver enum and repository factory."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from folio.config import FolioConfig
from folio.errors import StorageError, UnknownDriverError
from folio.storage import Driver, create_repository
from folio.storage.azure import AzureRepository
from folio.storage.database import DatabaseRepository
from folio.storage.gcs import GcsRepository
from folio.storage.github import GitHubRepository
from folio.storage.local import LocalRepository
from folio.storage.s3 import S3Repository


@pytest.fixture
def config(tmp_path: Path) -> FolioConfig:
    return FolioConfig.model_validate(
        {
            "database": {"path": str(tmp_path / "folio.db")},
            "local": {"root": str(tmp_path / "content")},
            "s3": {"bucket": "b", "prefix": "p"},
            "gcs": {"bucket": "g"},
            "azure": {"connection_string": "cs", "container": "c"},
            "github": {"repository": "acme/site", "token": "t"},
        }
    )


class TestDriver:
    def test_values(self):
        assert {d.value for d in Driver} == {"database", "local", "s3", "gcs", "azure", "github"}


class TestCreateRepository:
    def test_database(self, config: FolioConfig):
        repo = create_repository("database", "posts", config)

        assert isinstance(repo, DatabaseRepository)
        assert repo.content_type == "posts"
        repo.close()

    def test_local(self, config: FolioConfig):
        repo = create_repository(Driver.LOCAL, config=config)

        assert isinstance(repo, LocalRepository)
        assert repo.root == Path(config.local.root)

    def test_s3_with_injected_client(self, config: FolioConfig):
        client = MagicMock()

        repo = create_repository("s3", config=config, client=client)

        assert isinstance(repo, S3Repository)
        assert repo.client is client
        assert repo.prefix == "p"

    def test_gcs_with_injected_client(self, config: FolioConfig):
        client = MagicMock()

        repo = create_repository("gcs", config=config, client=client)

        assert isinstance(repo, GcsRepository)
        client.bucket.assert_called_once_with("g")

    def test_azure_with_injected_client(self, config: FolioConfig):
        container = MagicMock()

        repo = create_repository("azure", config=config, client=container)

        assert isinstance(repo, AzureRepository)
        assert repo.container is container

    def test_github(self, config: FolioConfig):
        repo = create_repository("github", config=config)

        assert isinstance(repo, GitHubRepository)
        assert repo.repository == "acme/site"
        assert repo.get_driver_name() == "github"

    def test_unknown_driver(self):
        with pytest.raises(UnknownDriverError) as exc_info:
            create_repository("ftp")

        assert exc_info.value.driver == "ftp"
        assert isinstance(exc_info.value, ValueError)

    @pytest.mark.parametrize("driver", ["s3", "gcs", "github"])
    def test_unconfigured_cloud_driver(self, driver: str):
        with pytest.raises(StorageError, match="not configured"):
            create_repository(driver, config=FolioConfig(), client=MagicMock())

    def test_unconfigured_azure_without_client(self):
        with pytest.raises(StorageError, match="not configured"):
            create_repository("azure", config=FolioConfig())
