"""
GitHub contents API client used as the remote file store.

Stores named JSON documents at path keys in a repository:
- conversations/<YYYY-MM-DD>.json
- courseList/courseProgress.json
- prompts/*.md (read-only prompt material)

Reads return None on not-found. Network errors and non-success statuses are
logged and mapped to None/False; they never propagate past this client.
"""

from __future__ import annotations

import base64
import posixpath
from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

from config import Settings, get_settings
from studymate.errors import ConfigurationError

PLACEHOLDER_NAME = ".gitkeep"


@dataclass
class RemoteFile:
    """A file read from (or just written to) the store."""

    path: str
    content: str
    sha: str | None = None  # Change token required to update the file


@dataclass
class RemoteEntry:
    """A directory listing entry."""

    name: str
    path: str
    type: str  # "file" or "dir"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteEntry:
        return cls(
            name=data.get("name", ""),
            path=data.get("path", ""),
            type=data.get("type", "file"),
        )


class GitHubFileStore:
    """Async HTTP client for the repository contents API."""

    def __init__(self, settings: Settings | None = None):
        """
        Initialize the store.

        Args:
            settings: Settings instance (uses get_settings() if None)
        """
        self._settings = settings or get_settings()
        self.owner = self._settings.repo_owner
        self.repo = self._settings.repo_name
        api_url = self._settings.github_api_url.rstrip("/")

        headers = {"Accept": "application/vnd.github.v3+json"}
        if self._settings.github_token:
            headers["Authorization"] = f"token {self._settings.github_token}"

        self.client = httpx.AsyncClient(
            base_url=f"{api_url}/repos/{self.owner}/{self.repo}/",
            headers=headers,
            timeout=httpx.Timeout(self._settings.http_timeout_seconds),
            follow_redirects=True,
        )

    @property
    def ready(self) -> bool:
        """Check if token and repository are configured."""
        return self._settings.has_remote_store

    def _require_ready(self) -> None:
        if not self.ready:
            raise ConfigurationError("请先配置 GitHub Token、仓库所有者和仓库名称！")

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    # =========================================================================
    # Files
    # =========================================================================

    async def get(self, path: str) -> RemoteFile | None:
        """
        Read a file.

        Returns:
            The decoded file, or None if absent or unreachable

        Raises:
            ConfigurationError: If the store is not configured
        """
        self._require_ready()
        try:
            response = await self.client.get(f"contents/{path}")
        except httpx.HTTPError as e:
            logger.error(f"GitHub read failed for {path}: {e}")
            return None

        if response.status_code == 404:
            return None
        if not response.is_success:
            logger.error(f"GitHub API error reading {path}: {response.status_code} {response.text}")
            return None

        try:
            data = response.json()
            raw = base64.b64decode(data.get("content") or "")
            content = raw.decode("utf-8")
        except (ValueError, TypeError, AttributeError) as e:
            logger.error(f"Could not decode {path} from GitHub: {e}")
            return None
        return RemoteFile(path=path, content=content, sha=data.get("sha"))

    async def put(
        self,
        path: str,
        content: str,
        message: str,
        sha: str | None = None,
    ) -> RemoteFile | None:
        """
        Create or update a file.

        Args:
            path: Path inside the repository
            content: Text content (utf-8)
            message: Commit message
            sha: Change token of the version being replaced; omit to create

        Returns:
            The written file with its new change token, or None on failure

        Raises:
            ConfigurationError: If the store is not configured
        """
        self._require_ready()
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
        }
        if sha:
            body["sha"] = sha

        try:
            response = await self.client.put(f"contents/{path}", json=body)
        except httpx.HTTPError as e:
            logger.error(f"GitHub write failed for {path}: {e}")
            return None

        if not response.is_success:
            logger.warning(f"GitHub API error writing {path}: {response.status_code} {response.text}")
            return None

        new_sha = None
        try:
            new_sha = (response.json().get("content") or {}).get("sha")
        except ValueError:
            logger.debug(f"GitHub write for {path} returned no JSON body")
        logger.debug(f"Wrote {path} ({len(content)} chars)")
        return RemoteFile(path=path, content=content, sha=new_sha)

    # =========================================================================
    # Directories
    # =========================================================================

    async def ensure_directory(self, directory: str) -> bool:
        """
        Make sure a directory exists by writing a placeholder file into it.

        Git has no empty directories; a placeholder entry is what makes the
        directory appear.

        Returns:
            True if the placeholder exists or was created
        """
        placeholder = posixpath.join(directory.strip("/"), PLACEHOLDER_NAME)
        if await self.get(placeholder) is not None:
            return True
        written = await self.put(placeholder, "", f"Create {directory.strip('/')}/")
        return written is not None

    async def list_directory(self, directory: str) -> list[RemoteEntry]:
        """
        List a directory.

        Returns:
            Entries (empty if the directory is absent or unreachable)
        """
        self._require_ready()
        try:
            response = await self.client.get(f"contents/{directory.strip('/')}")
        except httpx.HTTPError as e:
            logger.error(f"GitHub listing failed for {directory}: {e}")
            return []

        if response.status_code == 404:
            return []
        if not response.is_success:
            logger.error(f"GitHub API error listing {directory}: {response.status_code}")
            return []

        try:
            data = response.json()
        except ValueError:
            logger.error(f"GitHub listing for {directory} was not JSON")
            return []
        if not isinstance(data, list):
            return []
        return [RemoteEntry.from_dict(item) for item in data]
