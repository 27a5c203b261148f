"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from datetime import datetime
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings
from studymate.core.courses import Course, Difficulty
from studymate.storage.github_store import RemoteEntry, RemoteFile
from studymate.storage.local_cache import LocalCache


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


def make_settings(**overrides) -> Settings:
    """Settings isolated from the environment and any .env file."""
    values = {
        "github_token": "",
        "repo_owner": "",
        "repo_name": "",
        "github_api_url": "https://api.github.test",
        "ai_api_key": "",
        "proxy_url": "",
        "ai_model": "qwen-turbo",
        "notion_api_key": "",
        "sessions_db_id": None,
        "protect_notion": False,
        "dry_run": False,
        "local_cache_url": "sqlite://",
        "notifications_enabled": True,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings():
    """Settings with nothing remote configured."""
    return make_settings()


@pytest.fixture
def remote_settings():
    """Settings with the GitHub store and the proxy configured."""
    return make_settings(
        github_token="ghp_test",
        repo_owner="learner",
        repo_name="notes",
        ai_api_key="sk-test",
        proxy_url="https://proxy.test/generate",
    )


@pytest.fixture
def cache():
    """In-memory local cache."""
    cache = LocalCache("sqlite://")
    yield cache
    cache.close()


@pytest.fixture
def now():
    return datetime(2024, 5, 1, 9, 0, 0)


@pytest.fixture
def python_course():
    """A beginner course with template modules."""
    course = Course(
        id="c0ffee01",
        name="Python 编程",
        description="从零开始学习 Python",
        difficulty=Difficulty.BEGINNER,
    )
    course.ensure_modules()
    return course


@pytest.fixture
def settings_factory():
    """Build isolated settings with overrides."""
    return make_settings


class FakeFileStore:
    """
    In-memory stand-in for GitHubFileStore.

    Enforces the change-token rule: updates must carry the current sha,
    creates must carry none. `fail_puts` makes the next N puts fail.
    """

    def __init__(self, ready: bool = True):
        self.ready = ready
        self.files: dict[str, RemoteFile] = {}
        self.puts: list[tuple[str, str | None]] = []
        self.ensured: list[str] = []
        self.fail_puts = 0

    async def get(self, path):
        return self.files.get(path)

    async def put(self, path, content, message, sha=None):
        self.puts.append((path, sha))
        if self.fail_puts:
            self.fail_puts -= 1
            return None
        existing = self.files.get(path)
        if (existing.sha if existing else None) != sha:
            return None
        written = RemoteFile(path=path, content=content, sha=f"sha-{len(self.puts)}")
        self.files[path] = written
        return written

    async def ensure_directory(self, directory):
        self.ensured.append(directory)
        return True

    async def list_directory(self, directory):
        prefix = directory.strip("/") + "/"
        return [
            RemoteEntry(name=path[len(prefix):], path=path, type="file")
            for path in self.files
            if path.startswith(prefix) and "/" not in path[len(prefix):]
        ]

    async def close(self):
        pass


@pytest.fixture
def fake_store():
    return FakeFileStore()
