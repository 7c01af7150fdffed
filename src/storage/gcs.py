"""Google Cloud Storage driver."""

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
    return getattr(exc, "code", None) == 404 or type(exc).__name__ == "NotFound"


class GcsRepository(ObjectStoreRepository):
    """Markdown blobs in a GCS bucket, via a ``google.cloud.storage.Client``."""

    driver_name = "gcs"

    def __init__(self, client: Any, bucket: str, prefix: str = "") -> None:
        super().__init__(prefix)
        self.client = client
        self.bucket_name = bucket
        self.bucket = client.bucket(bucket)

    def read(self, path: str) -> ContentItem:
        blob = self.bucket.blob(self._build_key(path))
        try:
            raw = blob.download_as_text(encoding="utf-8")
        except Exception as exc:
            if _is_not_found(exc):
                raise ContentNotFoundError(path) from exc
            raise ReadFailedError(path, str(exc)) from exc

        modified = getattr(blob, "updated", None)
        if not isinstance(modified, datetime):
            modified = datetime.now(tz=UTC)
        return parse(raw, modified_at=modified)

    def write(self, path: str, item: ContentItem) -> bool:
        blob = self.bucket.blob(self._build_key(path))
        blob.metadata = {"content-hash": item.hash}
        try:
            blob.upload_from_string(serialize(item), content_type="text/markdown; charset=utf-8")
        except Exception as exc:
            raise WriteFailedError(path, str(exc)) from exc
        logger.info("Content written to gs://%s/%s", self.bucket_name, self._build_key(path))
        return True

    def exists(self, path: str) -> bool:
        try:
            return bool(self.bucket.blob(self._build_key(path)).exists())
        except Exception:
            return False

    def delete(self, path: str) -> bool:
        blob = self.bucket.blob(self._build_key(path))
        try:
            blob.delete()
        except Exception as exc:
            if _is_not_found(exc):
                return False
            raise WriteFailedError(path, f"Failed to delete: {exc}") from exc
        return True

    def list(self, directory: str = "") -> _list[str]:
        try:
            # The iterator follows page tokens on its own.
            blobs = self.client.list_blobs(self.bucket_name, prefix=self._list_prefix(directory))
            keys = [blob.name for blob in blobs]
        except Exception as exc:
            raise StorageError(f"Failed to list directory {directory!r}: {exc}") from exc
        return self._collect(keys)

    def test_connection(self) -> bool:
        try:
            return bool(self.bucket.exists())
        except Exception:
            logger.warning("GCS connection test failed for bucket %s", self.bucket_name, exc_info=True)
            return False
