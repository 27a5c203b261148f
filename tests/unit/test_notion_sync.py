"""
Unit tests for the Notion sessions client and the session merge.
"""

from datetime import date, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from studymate.progress.records import Credibility, ProgressStore
from studymate.sync.notion_client import NotionClient
from studymate.sync.progress_sync import ProgressSync, SyncStats


def _page(page_id, day, subject="Python", module="基础概念", minutes=30, credibility="high"):
    return {
        "id": page_id,
        "properties": {
            "Date": {"date": {"start": day}},
            "Subject": {"title": [{"plain_text": subject}]},
            "Module": {"rich_text": [{"plain_text": module}]},
            "Duration": {"number": minutes},
            "Status": {"select": {"name": "focused"}},
            "Credibility": {"select": {"name": credibility}} if credibility else {"select": None},
            "Summary": {"rich_text": [{"plain_text": "学习了变量"}]},
            "Challenge": {"rich_text": []},
        },
    }


@pytest.fixture
def notion_settings(settings_factory):
    return settings_factory(notion_api_key="secret_test", sessions_db_id="db-123")


@pytest.fixture
def sdk():
    """Notion SDK mock without data_sources (databases.query only)."""
    return MagicMock(spec=["databases", "pages"])


@pytest.fixture
def notion(notion_settings, sdk):
    return NotionClient(settings=notion_settings, client=sdk)


class TestNotionClient:
    """Tests for NotionClient."""

    def test_not_ready_without_database(self, settings_factory, sdk):
        client = NotionClient(settings=settings_factory(notion_api_key="k"), client=sdk)

        assert client.ready is False
        assert client.query_sessions(date(2024, 5, 1), date(2024, 5, 2)) == []
        sdk.databases.query.assert_not_called()

    def test_query_paginates_with_date_filter(self, notion, sdk):
        sdk.databases.query.side_effect = [
            {"results": [_page("p1", "2024-05-01")], "has_more": True, "next_cursor": "c2"},
            {"results": [_page("p2", "2024-05-02"), {"id": "no-date", "properties": {}}], "has_more": False},
        ]

        rows = notion.query_sessions(date(2024, 5, 1), date(2024, 5, 7))

        assert [row["id"] for row in rows] == ["p1", "p2"]
        first_call = sdk.databases.query.call_args_list[0].kwargs
        second_call = sdk.databases.query.call_args_list[1].kwargs
        assert first_call["database_id"] == "db-123"
        assert first_call["filter"]["and"][0]["date"] == {"on_or_after": "2024-05-01"}
        assert "start_cursor" not in first_call
        assert second_call["start_cursor"] == "c2"

    def test_query_failure_returns_no_rows(self, notion, sdk):
        sdk.databases.query.side_effect = RuntimeError("API down")

        assert notion.query_sessions(date(2024, 5, 1), date(2024, 5, 2)) == []

    def test_parse_session_row(self):
        row = NotionClient.parse_session_row(_page("p1", "2024-05-01T08:00:00.000Z"))

        assert row == {
            "id": "p1",
            "date": "2024-05-01T08:00:00.000Z",
            "subject": "Python",
            "module": "基础概念",
            "duration": 30,
            "status": "focused",
            "credibility": "high",
            "summary": "学习了变量",
            "challenge": "",
        }

    def test_create_session_page(self, notion, sdk, now):
        sdk.pages.create.return_value = {"id": "page-9"}
        session = ProgressStore().record("Python", "基础概念", 30, summary="s", now=now)

        assert notion.create_session_page(session) == "page-9"
        properties = sdk.pages.create.call_args.kwargs["properties"]
        assert properties["Subject"]["title"][0]["text"]["content"] == "Python"
        assert properties["Duration"] == {"number": 30}

    def test_protect_notion_blocks_writes(self, settings_factory, sdk, now):
        client = NotionClient(
            settings=settings_factory(notion_api_key="k", sessions_db_id="db", protect_notion=True),
            client=sdk,
        )
        session = ProgressStore().record("Python", "a", now=now)

        assert client.create_session_page(session) is None
        sdk.pages.create.assert_not_called()

    def test_dry_run_does_not_write(self, notion, sdk, now):
        session = ProgressStore().record("Python", "a", now=now)

        assert notion.create_session_page(session, dry_run=True) is None
        sdk.pages.create.assert_not_called()


class TestProgressSync:
    """Tests for merging Notion rows into the session log."""

    def _row(self, page_id, day, **overrides):
        row = NotionClient.parse_session_row(_page(page_id, day))
        row.update(overrides)
        return row

    def test_unknown_rows_are_appended(self, notion):
        store = ProgressStore()

        stats = ProgressSync(store, notion).merge_rows(
            [self._row("p2", "2024-05-02"), self._row("p1", "2024-05-01")]
        )

        assert stats.added == 2
        assert [s.remote_id for s in store.sessions] == ["p1", "p2"]  # Chronological
        assert len({s.id for s in store.sessions}) == 2

    def test_known_rows_overwrite_and_keep_local_id(self, notion, now):
        store = ProgressStore()
        local = store.record("Python", "基础概念", 10, now=now)
        local.remote_id = "p1"

        stats = ProgressSync(store, notion).merge_rows([self._row("p1", "2024-05-01", duration=90)])

        assert stats.updated == 1
        assert stats.added == 0
        assert len(store.sessions) == 1
        assert store.sessions[0].id == local.id
        assert store.sessions[0].duration_minutes == 90

    def test_merge_is_idempotent(self, notion):
        store = ProgressStore()
        sync = ProgressSync(store, notion)
        rows = [self._row("p1", "2024-05-01")]

        sync.merge_rows(rows)
        sync.merge_rows(rows)

        assert len(store.sessions) == 1

    def test_missing_credibility_is_computed(self, notion):
        store = ProgressStore()

        ProgressSync(store, notion).merge_rows([self._row("p1", "2024-05-01", credibility="")])

        # 30 min (30) + short summary (5) + focused (20)
        assert store.sessions[0].credibility == Credibility.MEDIUM

    def test_rows_without_id_or_with_bad_date(self, notion):
        store = ProgressStore()

        stats = ProgressSync(store, notion).merge_rows(
            [self._row("p1", "2024-05-01", id=None), self._row("p2", "not-a-date")]
        )

        assert stats.skipped == 1
        assert stats.errors == 1
        assert store.sessions == []

    def test_pull_queries_range(self, notion, sdk):
        sdk.databases.query.return_value = {"results": [_page("p1", "2024-05-01")], "has_more": False}
        store = ProgressStore()

        stats = ProgressSync(store, notion).pull(date(2024, 4, 1), date(2024, 5, 1))

        assert stats.added == 1
        assert store.sessions[0].timestamp == datetime(2024, 5, 1)

    def test_push_creates_pages_for_unsynced_sessions(self, notion, sdk, now):
        sdk.pages.create.return_value = {"id": "new-page"}
        store = ProgressStore()
        synced = store.record("Python", "a", now=now - timedelta(days=1))
        synced.remote_id = "old-page"
        fresh = store.record("Python", "b", now=now)

        stats = ProgressSync(store, notion).push()

        assert stats.added == 1
        assert stats.skipped == 1
        assert fresh.remote_id == "new-page"
        assert sdk.pages.create.call_count == 1


class TestSyncStats:
    """Tests for SyncStats."""

    def test_to_dict_limits_error_details(self):
        stats = SyncStats()
        stats.error_details = [f"e{i}" for i in range(15)]
        stats.finish()

        data = stats.to_dict()

        assert len(data["error_details"]) == 10
        assert data["duration_seconds"] >= 0
