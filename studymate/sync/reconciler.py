"""
Reconciliation between the local cache and the remote file store.

Policy:
- save: local cache first (always), then a best-effort remote put.
  A failed put triggers one directory-ensure + retry; there is no other retry.
- load: remote first, then local cache, then a default. Malformed JSON, or a
  value the caller's parser rejects, is a parse failure and counts as absent;
  the cache is only refreshed from a remote copy that parsed.
- Conflicts: full-overwrite, last write wins. The change token from the
  latest read or write is attached to updates; a path with no known token is
  read once to obtain one (no token after that read means "create").
"""

from __future__ import annotations

import json
import posixpath
from typing import Any, Callable

from loguru import logger

from studymate.storage.github_store import GitHubFileStore
from studymate.storage.local_cache import LocalCache


class Reconciler:
    """Persists JSON documents locally and remotely."""

    def __init__(self, store: GitHubFileStore, cache: LocalCache):
        self._store = store
        self._cache = cache
        self._change_tokens: dict[str, str | None] = {}

    def change_token(self, path: str) -> str | None:
        """Last known change token for a path."""
        return self._change_tokens.get(path)

    # =========================================================================
    # Save
    # =========================================================================

    async def save(
        self,
        path: str,
        cache_key: str,
        payload: Any,
        message: str,
    ) -> bool:
        """
        Persist a document.

        Args:
            path: Remote path (e.g. "courseList/courseProgress.json")
            cache_key: Local cache key
            payload: JSON-serializable document
            message: Change label for the remote write

        Returns:
            True only if the remote write succeeded; the local cache is
            written regardless
        """
        self._cache.set_json(cache_key, payload)

        if not self._store.ready:
            logger.info(f"Remote store not configured; {path} saved locally only")
            return False

        content = json.dumps(payload, ensure_ascii=False, indent=2)
        if await self._put(path, content, message):
            return True

        directory = posixpath.dirname(path)
        if not directory:
            return False

        logger.warning(f"Write to {path} failed; ensuring {directory}/ exists and retrying once")
        if not await self._store.ensure_directory(directory):
            logger.error(f"Could not create {directory}/ in the remote store")
        # Token may be stale after a failed write
        self._change_tokens.pop(path, None)
        return await self._put(path, content, message)

    async def _put(self, path: str, content: str, message: str) -> bool:
        if path not in self._change_tokens:
            existing = await self._store.get(path)
            self._change_tokens[path] = existing.sha if existing else None

        written = await self._store.put(path, content, message, sha=self._change_tokens[path])
        if written is None:
            return False
        self._change_tokens[path] = written.sha
        return True

    # =========================================================================
    # Load
    # =========================================================================

    async def load(
        self,
        path: str,
        cache_key: str,
        default: Any = None,
        parse: Callable[[Any], Any] | None = None,
    ) -> Any:
        """
        Load a document, preferring the remote copy.

        Args:
            path: Remote path
            cache_key: Local cache key
            default: Returned when neither side has a usable value
            parse: Optional converter from decoded JSON to the caller's type.
                A converter that raises marks that copy as malformed.

        Returns:
            Remote value, else cached value, else `default`
        """
        if self._store.ready:
            remote = await self._store.get(path)
            if remote is not None:
                self._change_tokens[path] = remote.sha
                try:
                    raw = json.loads(remote.content)
                    value = parse(raw) if parse else raw
                except (KeyError, TypeError, ValueError, AttributeError) as e:
                    logger.error(f"Parse failure for remote {path}, falling back to cache: {e}")
                else:
                    self._cache.set_json(cache_key, raw)
                    return value

        cached = self._cache.get_json(cache_key)
        if cached is not None:
            if parse is None:
                return cached
            try:
                return parse(cached)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.error(f"Parse failure for cached {cache_key}: {e}")
        return default

    async def read_text(self, path: str) -> str | None:
        """Read a non-JSON remote file (prompt material). None if unavailable."""
        if not self._store.ready:
            return None
        remote = await self._store.get(path)
        return remote.content if remote else None

    async def list_names(self, directory: str) -> list[str] | None:
        """File names in a remote directory, or None if the store is not configured."""
        if not self._store.ready:
            return None
        entries = await self._store.list_directory(directory)
        return [entry.name for entry in entries if entry.type == "file"]
