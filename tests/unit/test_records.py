"""
Unit tests for the progress record store and credibility scoring.
"""

from datetime import datetime, timedelta

import pytest

from studymate.errors import InputValidationError
from studymate.progress.records import (
    Credibility,
    ProgressStore,
    SessionStatus,
    credibility_for,
    credibility_score,
)


class TestCredibility:
    """Tests for credibility scoring."""

    def test_long_focused_session_with_summary_is_high(self):
        assert credibility_score(35, "x" * 250, "focused") == 80
        assert credibility_for(35, "x" * 250, "focused") == Credibility.HIGH

    @pytest.mark.parametrize(
        "minutes,summary_len,status,score",
        [
            (0, 0, "focused", 20),
            (5, 1, "review", 30),
            (15, 50, "practice", 50),
            (29, 100, "problem-solving", 55),
            (30, 199, "other", 50),
        ],
    )
    def test_score_components(self, minutes, summary_len, status, score):
        assert credibility_score(minutes, "x" * summary_len, status) == score

    def test_grade_thresholds(self):
        assert credibility_for(15, "x" * 50, "practice") == Credibility.MEDIUM
        assert credibility_for(4, "", "review") == Credibility.LOW
        assert credibility_for(30, "x" * 100, "focused") == Credibility.HIGH


class TestRecord:
    """Tests for ProgressStore.record."""

    def test_record_appends_graded_session(self, now):
        store = ProgressStore()

        session = store.record("Python", "基础概念", 45, "focused", "x" * 120, "装饰器", now=now)

        assert store.sessions == [session]
        assert session.credibility == Credibility.HIGH
        assert session.timestamp == now

    def test_ids_are_unique_for_same_instant(self, now):
        store = ProgressStore()

        first = store.record("Python", "a", now=now)
        second = store.record("Python", "b", now=now)

        assert second.id > first.id

    def test_accepts_status_enum(self, now):
        session = ProgressStore().record("Python", "a", 10, SessionStatus.REVIEW, now=now)

        assert session.status == "review"

    @pytest.mark.parametrize(
        "subject,module,minutes",
        [("", "a", 10), ("Python", "  ", 10), ("Python", "a", -1)],
    )
    def test_invalid_input_raises_before_storing(self, subject, module, minutes, now):
        store = ProgressStore()

        with pytest.raises(InputValidationError):
            store.record(subject, module, minutes, now=now)
        assert store.sessions == []


class TestAggregates:
    """Tests for aggregates and overall credibility."""

    @pytest.fixture
    def store(self, now):
        store = ProgressStore()
        store.record("Python", "a", 30, now=now - timedelta(days=10))
        store.record("Python", "b", 20, now=now - timedelta(days=2))
        store.record("Go", "c", 15, now=now - timedelta(hours=1))
        return store

    def test_window(self, store, now):
        assert store.aggregate(7, now) == {"totalMinutes": 35, "sessionCount": 2}
        assert store.aggregate("all", now) == {"totalMinutes": 65, "sessionCount": 3}

    def test_minutes_on_day(self, store, now):
        assert store.minutes_on(now.date()) == 15
        assert store.minutes_on((now - timedelta(days=2)).date()) == 20

    def test_overall_credibility_empty_is_high(self):
        assert ProgressStore().overall_credibility() == Credibility.HIGH

    def test_overall_credibility_uses_recent_sessions(self, now):
        store = ProgressStore()
        for i in range(10):
            store.record("Python", "a", 0, "other", now=now + timedelta(minutes=i))  # low
        assert store.overall_credibility() == Credibility.LOW

        for i in range(10):
            store.record("Python", "a", 60, "focused", "x" * 300, now=now + timedelta(hours=i + 1))
        assert store.overall_credibility() == Credibility.HIGH

    def test_overall_credibility_medium(self, now):
        store = ProgressStore()
        store.record("Python", "a", 60, "focused", "x" * 300, now=now)  # high (3)
        store.record("Python", "a", 0, "other", now=now)  # low (1)

        assert store.overall_credibility() == Credibility.MEDIUM


class TestSerialization:
    """Tests for the cached session list format."""

    def test_round_trip(self, now):
        store = ProgressStore()
        store.record("Python", "a", 30, "practice", "summary", "challenge", now=now)

        restored = ProgressStore.from_list(store.to_list())

        assert restored.to_list() == store.to_list()
        assert store.to_list()[0]["durationMinutes"] == 30

    def test_malformed_entries_are_skipped(self, now):
        store = ProgressStore()
        store.record("Python", "a", now=now)
        data = store.to_list() + [{"id": "x"}, {"subject": "missing id"}]

        assert len(ProgressStore.from_list(data).sessions) == 1

    def test_none_gives_empty_store(self):
        assert ProgressStore.from_list(None).sessions == []
