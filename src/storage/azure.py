"""Azure Blob Storage driver."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from folio.content.codec import parse, serialize
from folio.content.models import ContentItem
from folio.errors import ContentNotFoundError, ReadFailedError, StorageError, WriteFailedError
from folio.storage.base import ObjectStoreRepository

logger = logging.getLogger(__name__)

_list = list


def _is_not_found(exc: Exception) -> bool:
    if getattr(exc, "status_code", None) == 404:
        return True
    return str(getattr(exc, "error_code", "")) == "BlobNotFound"


class AzureRepository(ObjectStoreRepository):
    """Markdown blobs in one container, via an ``azure.storage.blob.ContainerClient``."""

    driver_name = "azure"

    def __init__(self, container: Any, prefix: str = "") -> None:
        super().__init__(prefix)
        self.container = container

    def read(self, path: str) -> ContentItem:
        blob = self.container.get_blob_client(self._build_key(path))
        try:
            downloader = blob.download_blob()
            raw = downloader.readall()
        except Exception as exc:
            if _is_not_found(exc):
                raise ContentNotFoundError(path) from exc
            raise ReadFailedError(path, str(exc)) from exc

        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        modified = getattr(getattr(downloader, "properties", None), "last_modified", None)
        if not isinstance(modified, datetime):
            modified = datetime.now(tz=UTC)
        return parse(raw, modified_at=modified)

    def write(self, path: str, item: ContentItem) -> bool:
        try:
            self.container.upload_blob(
                name=self._build_key(path),
                data=serialize(item).encode("utf-8"),
                overwrite=True,
                metadata={"content_hash": item.hash},
            )
        except Exception as exc:
            raise WriteFailedError(path, str(exc)) from exc
        logger.info("Content written to azure blob %s", self._build_key(path))
        return True

    def exists(self, path: str) -> bool:
        try:
            return bool(self.container.get_blob_client(self._build_key(path)).exists())
        except Exception:
            return False

    def delete(self, path: str) -> bool:
        try:
            self.container.delete_blob(self._build_key(path))
        except Exception as exc:
            if _is_not_found(exc):
                return False
            raise WriteFailedError(path, f"Failed to delete: {exc}") from exc
        return True

    def list(self, directory: str = "") -> _list[str]:
        try:
            # ItemPaged fetches continuation pages while iterating.
            blobs = self.container.list_blobs(name_starts_with=self._list_prefix(directory) or None)
            keys = [blob.name for blob in blobs]
        except Exception as exc:
            raise StorageError(f"Failed to list directory {directory!r}: {exc}") from exc
        return self._collect(keys)

    def test_connection(self) -> bool:
        try:
            return bool(self.container.exists())
        except Exception:
            logger.warning("Azure connection test failed", exc_info=True)
            return False
