"""
Progress Sync - merges the local session log with the Notion Sessions database.

Policy:
- Pull: rows are matched to local sessions by Notion page id. Known ids
  overwrite the local record (last write wins); unknown ids are appended.
- Push: local sessions without a page id are created in Notion.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from loguru import logger

from studymate.core import clock
from studymate.progress.records import (
    Credibility,
    ProgressStore,
    StudySession,
    credibility_for,
)
from studymate.sync.notion_client import NotionClient


MAX_ERROR_DETAILS = 10


@dataclass
class SyncStats:
    """Counters for one pull or push."""

    added: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    error_details: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=clock.now)
    finished_at: datetime | None = None

    def record_error(self, ref: Any, reason: Any) -> None:
        self.errors += 1
        self.error_details.append(f"{ref}: {reason}")

    def finish(self) -> SyncStats:
        self.finished_at = clock.now()
        return self

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at or clock.now()
        return (end - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Summary for logging/CLI output."""
        return {
            "added": self.added,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
            "duration_seconds": round(self.duration_seconds, 2),
            "error_details": self.error_details[:MAX_ERROR_DETAILS],
        }


class ProgressSync:
    """Pulls and pushes study sessions between the local log and Notion."""

    def __init__(self, store: ProgressStore, notion: NotionClient | None = None) -> None:
        self._store = store
        self._notion = notion or NotionClient()

    def pull(self, start: date, end: date) -> SyncStats:
        """Fetch sessions in [start, end] from Notion and merge them."""
        rows = self._notion.query_sessions(start, end)
        return self.merge_rows(rows)

    def merge_rows(self, rows: list[dict[str, Any]]) -> SyncStats:
        """Create-if-absent / overwrite-if-present merge by page id."""
        stats = SyncStats()
        for row in rows:
            remote_id = row.get("id")
            if not remote_id:
                stats.skipped += 1
                continue
            try:
                session = self._session_from_row(row)
            except (KeyError, TypeError, ValueError) as e:
                stats.record_error(remote_id, e)
                continue

            index = self._store.find_by_remote_id(remote_id)
            if index is None:
                session.id = self._store.next_id(session.timestamp)
                self._store.sessions.append(session)
                stats.added += 1
            else:
                session.id = self._store.sessions[index].id
                self._store.sessions[index] = session
                stats.updated += 1

        # Sessions stay in timestamp order
        self._store.sessions.sort(key=lambda s: s.timestamp)
        stats.finish()
        logger.info(f"Notion pull: {stats.to_dict()}")
        return stats

    def push(self, dry_run: bool = False) -> SyncStats:
        """Create Notion pages for local sessions that have never been synced."""
        stats = SyncStats()
        for session in self._store.sessions:
            if session.remote_id:
                stats.skipped += 1
                continue
            page_id = self._notion.create_session_page(session, dry_run=dry_run)
            if page_id:
                session.remote_id = page_id
                stats.added += 1
            elif dry_run:
                stats.skipped += 1
            else:
                stats.record_error(f"session {session.id}", "not pushed")
        stats.finish()
        logger.info(f"Notion push: {stats.to_dict()}")
        return stats

    @staticmethod
    def _session_from_row(row: dict[str, Any]) -> StudySession:
        duration = int(row.get("duration") or 0)
        summary = row.get("summary") or ""
        status = row.get("status") or "focused"
        try:
            credibility = Credibility(row.get("credibility"))
        except ValueError:
            credibility = credibility_for(duration, summary, status)
        return StudySession(
            id=0,
            subject=row.get("subject") or "",
            module=row.get("module") or "",
            duration_minutes=duration,
            status=status,
            summary=summary,
            challenge=row.get("challenge") or "",
            timestamp=clock.parse_instant(row["date"]),
            credibility=credibility,
            remote_id=row["id"],
        )
