"""
Unit tests for the GitHub contents API file store.
"""

import base64

import pytest
import pytest_asyncio
from httpx import ConnectError, Request, Response

from studymate.errors import ConfigurationError
from studymate.storage.github_store import GitHubFileStore

BASE = "https://api.github.test/repos/learner/notes/"


def _encoded(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


@pytest_asyncio.fixture
async def store(remote_settings):
    """Store configured for learner/notes."""
    store = GitHubFileStore(remote_settings)
    yield store
    await store.close()


class TestGitHubFileStore:
    """Tests for GitHubFileStore."""

    def test_client_headers(self, store):
        assert store.client.headers["Authorization"] == "token ghp_test"
        assert str(store.client.base_url) == BASE

    @pytest.mark.asyncio
    async def test_unconfigured_store_raises(self, settings):
        store = GitHubFileStore(settings)
        try:
            assert store.ready is False
            with pytest.raises(ConfigurationError):
                await store.get("conversations/2024-05-01.json")
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_get_decodes_content(self, store, monkeypatch):
        async def mock_get(url, **kwargs):
            assert url == "contents/conversations/2024-05-01.json"
            return Response(
                200,
                json={"content": _encoded('[{"role": "user", "content": "你好"}]'), "sha": "abc"},
                request=Request("GET", BASE + url),
            )

        monkeypatch.setattr(store.client, "get", mock_get)

        remote = await store.get("conversations/2024-05-01.json")

        assert remote.content == '[{"role": "user", "content": "你好"}]'
        assert remote.sha == "abc"

    @pytest.mark.asyncio
    async def test_get_not_found_is_none(self, store, monkeypatch):
        async def mock_get(url, **kwargs):
            return Response(404, json={"message": "Not Found"}, request=Request("GET", BASE + url))

        monkeypatch.setattr(store.client, "get", mock_get)

        assert await store.get("missing.json") is None

    @pytest.mark.asyncio
    async def test_get_network_error_is_none(self, store, monkeypatch):
        async def mock_get(url, **kwargs):
            raise ConnectError("offline")

        monkeypatch.setattr(store.client, "get", mock_get)

        assert await store.get("x.json") is None

    @pytest.mark.asyncio
    async def test_put_sends_sha_and_returns_new_token(self, store, monkeypatch):
        sent = {}

        async def mock_put(url, json=None, **kwargs):
            sent.update(json)
            return Response(200, json={"content": {"sha": "new-sha"}}, request=Request("PUT", BASE + url))

        monkeypatch.setattr(store.client, "put", mock_put)

        written = await store.put("courseList/courseProgress.json", "{}", "Update", sha="old-sha")

        assert written.sha == "new-sha"
        assert sent["sha"] == "old-sha"
        assert sent["message"] == "Update"
        assert base64.b64decode(sent["content"]).decode("utf-8") == "{}"

    @pytest.mark.asyncio
    async def test_put_without_sha_creates(self, store, monkeypatch):
        sent = {}

        async def mock_put(url, json=None, **kwargs):
            sent.update(json)
            return Response(201, json={"content": {"sha": "s1"}}, request=Request("PUT", BASE + url))

        monkeypatch.setattr(store.client, "put", mock_put)

        assert (await store.put("a.json", "[]", "Create")).sha == "s1"
        assert "sha" not in sent

    @pytest.mark.asyncio
    async def test_put_failure_is_none(self, store, monkeypatch):
        async def mock_put(url, **kwargs):
            return Response(409, json={"message": "conflict"}, request=Request("PUT", BASE + url))

        monkeypatch.setattr(store.client, "put", mock_put)

        assert await store.put("a.json", "[]", "Update") is None

    @pytest.mark.asyncio
    async def test_ensure_directory_writes_placeholder(self, store, monkeypatch):
        written = []

        async def mock_get(url, **kwargs):
            return Response(404, request=Request("GET", BASE + url))

        async def mock_put(url, json=None, **kwargs):
            written.append(url)
            return Response(201, json={"content": {"sha": "s"}}, request=Request("PUT", BASE + url))

        monkeypatch.setattr(store.client, "get", mock_get)
        monkeypatch.setattr(store.client, "put", mock_put)

        assert await store.ensure_directory("conversations/") is True
        assert written == ["contents/conversations/.gitkeep"]

    @pytest.mark.asyncio
    async def test_list_directory(self, store, monkeypatch):
        async def mock_get(url, **kwargs):
            return Response(
                200,
                json=[
                    {"name": "2024-05-01.json", "path": "conversations/2024-05-01.json", "type": "file"},
                    {"name": "archive", "path": "conversations/archive", "type": "dir"},
                ],
                request=Request("GET", BASE + url),
            )

        monkeypatch.setattr(store.client, "get", mock_get)

        entries = await store.list_directory("conversations")

        assert [e.name for e in entries] == ["2024-05-01.json", "archive"]
        assert entries[1].type == "dir"
