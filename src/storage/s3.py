"""Amazon S3 driver.

Takes an already-built boto3 S3 client; ``folio.storage.create_repository``
builds one from config when none is supplied.
"""

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

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


def _error_code(exc: Exception) -> str:
    response = getattr(exc, "response", None) or {}
    return str(response.get("Error", {}).get("Code", ""))


class S3Repository(ObjectStoreRepository):
    """Markdown objects in an S3 bucket under an optional key prefix."""

    driver_name = "s3"

    def __init__(self, client: Any, bucket: str, prefix: str = "") -> None:
        super().__init__(prefix)
        self.client = client
        self.bucket = bucket

    def read(self, path: str) -> ContentItem:
        key = self._build_key(path)
        try:
            result = self.client.get_object(Bucket=self.bucket, Key=key)
            raw = result["Body"].read().decode("utf-8")
        except Exception as exc:
            if _error_code(exc) in _NOT_FOUND_CODES:
                raise ContentNotFoundError(path) from exc
            raise ReadFailedError(path, str(exc)) from exc

        modified = result.get("LastModified")
        if not isinstance(modified, datetime):
            modified = datetime.now(tz=UTC)
        return parse(raw, modified_at=modified)

    def write(self, path: str, item: ContentItem) -> bool:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=self._build_key(path),
                Body=serialize(item).encode("utf-8"),
                ContentType="text/markdown; charset=utf-8",
                Metadata={"content-hash": item.hash},
            )
        except Exception as exc:
            raise WriteFailedError(path, str(exc)) from exc
        logger.info("Content written to s3://%s/%s", self.bucket, self._build_key(path))
        return True

    def exists(self, path: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=self._build_key(path))
        except Exception:
            return False
        return True

    def delete(self, path: str) -> bool:
        if not self.exists(path):
            return False
        try:
            self.client.delete_object(Bucket=self.bucket, Key=self._build_key(path))
        except Exception as exc:
            raise WriteFailedError(path, f"Failed to delete: {exc}") from exc
        return True

    def list(self, directory: str = "") -> _list[str]:
        prefix = self._list_prefix(directory)
        keys: _list[str] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
        except Exception as exc:
            raise StorageError(f"Failed to list directory {directory!r}: {exc}") from exc
        return self._collect(keys)

    def test_connection(self) -> bool:
        try:
            self.client.list_objects_v2(Bucket=self.bucket, MaxKeys=1)
        except Exception:
            logger.warning("S3 connection test failed for bucket %s", self.bucket, exc_info=True)
            return False
        return True
