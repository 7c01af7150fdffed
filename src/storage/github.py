"""GitHub repository driver.

Talks to the GitHub REST API (contents + git trees) via urllib.  Each
write or delete is a commit on the configured branch.
"""

from __future__ import annotations

import base64
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

from folio.content.codec import parse, serialize
from folio.content.models import ContentItem
from folio.errors import (
    ContentNotFoundError,
    NetworkFailureError,
    ReadFailedError,
    StorageError,
    WriteFailedError,
)
from folio.storage.base import ObjectStoreRepository

logger = logging.getLogger(__name__)

_list = list

DEFAULT_API_URL = "https://api.github.com"


class GitHubRepository(ObjectStoreRepository):
    """Markdown files in a GitHub repository branch."""

    driver_name = "github"

    def __init__(
        self,
        repository: str,
        token: str = "",
        branch: str = "main",
        prefix: str = "",
        api_url: str = DEFAULT_API_URL,
        committer: str = "folio",
    ) -> None:
        super().__init__(prefix)
        self.repository = repository.strip("/")
        self.token = token
        self.branch = branch
        self.api_url = api_url.rstrip("/")
        self.committer = committer

    # ── HTTP ─────────────────────────────────────────────────────

    def _request(self, method: str, endpoint: str, data: dict | None = None) -> Any:
        """Make an authenticated request and return the decoded JSON body."""
        url = f"{self.api_url}{endpoint}"
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        body = None
        if data is not None:
            body = json.dumps(data).encode("utf-8")
            headers["Content-Type"] = "application/json"

        req = urllib.request.Request(url, data=body, method=method, headers=headers)
        with urllib.request.urlopen(req) as resp:
            payload = resp.read().decode("utf-8")
        return json.loads(payload) if payload else {}

    def _contents_endpoint(self, key: str) -> str:
        quoted = urllib.parse.quote(key)
        return f"/repos/{self.repository}/contents/{quoted}"

    def _get_file(self, key: str) -> dict:
        ref = urllib.parse.urlencode({"ref": self.branch})
        return self._request("GET", f"{self._contents_endpoint(key)}?{ref}")

    def _sha_of(self, key: str) -> str | None:
        try:
            return self._get_file(key).get("sha")
        except urllib.error.HTTPError as exc:
            if exc.code == 404:
                return None
            raise

    # ── Contract ─────────────────────────────────────────────────

    def read(self, path: str) -> ContentItem:
        try:
            data = self._get_file(self._build_key(path))
        except urllib.error.HTTPError as exc:
            if exc.code == 404:
                raise ContentNotFoundError(path) from exc
            raise ReadFailedError(path, f"HTTP {exc.code}: {exc.reason}") from exc
        except (urllib.error.URLError, OSError, ValueError) as exc:
            raise ReadFailedError(path, str(exc)) from exc

        if isinstance(data, list) or data.get("type", "file") != "file":
            raise ContentNotFoundError(path)
        try:
            raw = base64.b64decode(data.get("content", "")).decode("utf-8")
        except (ValueError, UnicodeDecodeError) as exc:
            raise ReadFailedError(path, f"undecodable content: {exc}") from exc
        return parse(raw)

    def write(self, path: str, item: ContentItem) -> bool:
        key = self._build_key(path)
        try:
            payload: dict[str, Any] = {
                "message": f"Update {key}",
                "content": base64.b64encode(serialize(item).encode("utf-8")).decode("ascii"),
                "branch": self.branch,
                "committer": {"name": self.committer, "email": f"{self.committer}@users.noreply.github.com"},
            }
            sha = self._sha_of(key)
            if sha:
                payload["sha"] = sha
            else:
                payload["message"] = f"Create {key}"
            self._request("PUT", self._contents_endpoint(key), payload)
        except urllib.error.HTTPError as exc:
            raise WriteFailedError(path, f"HTTP {exc.code}: {exc.reason}") from exc
        except (urllib.error.URLError, OSError) as exc:
            raise NetworkFailureError(self.driver_name, str(exc)) from exc
        logger.info("Content committed to %s@%s: %s", self.repository, self.branch, key)
        return True

    def exists(self, path: str) -> bool:
        try:
            return self._sha_of(self._build_key(path)) is not None
        except Exception:
            return False

    def delete(self, path: str) -> bool:
        key = self._build_key(path)
        try:
            sha = self._sha_of(key)
            if sha is None:
                return False
            self._request(
                "DELETE",
                self._contents_endpoint(key),
                {"message": f"Delete {key}", "sha": sha, "branch": self.branch},
            )
        except urllib.error.HTTPError as exc:
            raise WriteFailedError(path, f"Failed to delete: HTTP {exc.code}: {exc.reason}") from exc
        except (urllib.error.URLError, OSError) as exc:
            raise NetworkFailureError(self.driver_name, str(exc)) from exc
        return True

    def list(self, directory: str = "") -> _list[str]:
        prefix = self._list_prefix(directory)
        branch = urllib.parse.quote(self.branch, safe="")
        try:
            tree = self._request("GET", f"/repos/{self.repository}/git/trees/{branch}?recursive=1")
            if tree.get("truncated"):
                logger.info("Git tree for %s is truncated, walking directories", self.repository)
                keys = self._walk(prefix.rstrip("/"))
            else:
                keys = [
                    entry["path"]
                    for entry in tree.get("tree", [])
                    if entry.get("type") == "blob" and entry["path"].startswith(prefix)
                ]
        except urllib.error.HTTPError as exc:
            if exc.code == 404:
                return []
            raise StorageError(f"Failed to list directory {directory!r}: HTTP {exc.code}") from exc
        except (urllib.error.URLError, OSError, ValueError) as exc:
            raise StorageError(f"Failed to list directory {directory!r}: {exc}") from exc
        return self._collect(sorted(keys))

    def _walk(self, directory: str) -> _list[str]:
        """List every file below ``directory`` one contents call per folder."""
        ref = urllib.parse.urlencode({"ref": self.branch})
        entries = self._request("GET", f"{self._contents_endpoint(directory)}?{ref}")
        keys: _list[str] = []
        for entry in entries if isinstance(entries, list) else []:
            if entry.get("type") == "dir":
                keys.extend(self._walk(entry["path"]))
            elif entry.get("type") == "file":
                keys.append(entry["path"])
        return keys

    def test_connection(self) -> bool:
        try:
            self._request("GET", f"/repos/{self.repository}")
        except Exception:
            logger.warning("GitHub connection test failed for %s", self.repository, exc_info=True)
            return False
        return True
