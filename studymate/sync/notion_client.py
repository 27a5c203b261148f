"""
Notion Client - Typed wrapper around the official Notion SDK.

Only the Sessions database is used: study sessions are queried by date range
and local sessions can be pushed as new pages.
Allowed methods: client.data_sources.query(), client.databases.query(),
                 client.pages.create()
"""

from __future__ import annotations

from datetime import date
from typing import Any

from loguru import logger
from notion_client import Client

from config import Settings, get_settings
from studymate.progress.records import StudySession

# Sessions database property names
PROP_DATE = "Date"
PROP_SUBJECT = "Subject"
PROP_MODULE = "Module"
PROP_DURATION = "Duration"
PROP_STATUS = "Status"
PROP_CREDIBILITY = "Credibility"
PROP_SUMMARY = "Summary"
PROP_CHALLENGE = "Challenge"


class NotionClient:
    """
    Wrapper around the Notion SDK for the Sessions database.

    Handles:
    - Pagination
    - Fallback query methods (data_sources -> databases)
    - Write protection via PROTECT_NOTION setting
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: Client | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._client = client

        if self._client is None and self._settings.notion_api_key:
            self._client = Client(
                auth=self._settings.notion_api_key,
                notion_version=self._settings.notion_version,
            )
            logger.info("Notion client initialized")
        elif self._client is None:
            logger.debug("Notion credentials missing. Set NOTION_API_KEY to enable syncing.")

    @property
    def ready(self) -> bool:
        """Check if client and sessions database are configured."""
        return self._client is not None and bool(self._settings.sessions_db_id)

    # =========================================================================
    # QUERY
    # =========================================================================

    def query_sessions(self, start: date, end: date) -> list[dict[str, Any]]:
        """
        Fetch session rows dated within [start, end].

        Returns:
            Parsed rows (see parse_session_row); empty if not configured
        """
        if not self.ready:
            logger.warning("Notion sessions database not configured; returning no rows")
            return []

        date_filter = {
            "and": [
                {"property": PROP_DATE, "date": {"on_or_after": start.isoformat()}},
                {"property": PROP_DATE, "date": {"on_or_before": end.isoformat()}},
            ]
        }

        pages: list[dict[str, Any]] = []
        start_cursor: str | None = None
        while True:
            response = self._query_any_database(
                self._settings.sessions_db_id,
                filter=date_filter,
                start_cursor=start_cursor,
            )
            pages.extend(response.get("results", []))
            if not response.get("has_more"):
                break
            start_cursor = response.get("next_cursor")

        rows = [row for row in (self.parse_session_row(p) for p in pages) if row]
        logger.info(f"Fetched {len(rows)} sessions from Notion ({start} to {end})")
        return rows

    def _query_any_database(
        self,
        database_id: str,
        filter: dict[str, Any] | None = None,
        start_cursor: str | None = None,
    ) -> dict[str, Any]:
        """
        Query a database by ID.

        Tries data_sources.query first (newer SDKs), then databases.query.
        """
        if not self._client:
            return {"results": [], "has_more": False}

        payload: dict[str, Any] = {"page_size": 100}
        if filter:
            payload["filter"] = filter
        if start_cursor:
            payload["start_cursor"] = start_cursor

        data_sources = getattr(self._client, "data_sources", None)
        query_fn = getattr(data_sources, "query", None) if data_sources is not None else None
        if callable(query_fn):
            try:
                return query_fn(data_source_id=database_id, **payload)
            except TypeError:
                pass
            except Exception as e:
                logger.debug(f"data_sources.query failed for {database_id}: {e}")

        databases = getattr(self._client, "databases", None)
        query_fn = getattr(databases, "query", None) if databases is not None else None
        if callable(query_fn):
            try:
                return query_fn(database_id=database_id, **payload)
            except Exception as e:
                logger.error(f"All query methods failed for {database_id}: {e}")

        return {"results": [], "has_more": False}

    # =========================================================================
    # PARSING
    # =========================================================================

    @classmethod
    def parse_session_row(cls, page: dict[str, Any]) -> dict[str, Any] | None:
        """
        Flatten a Sessions page into a row.

        Returns:
            {id, date, subject, module, duration, status, credibility,
             summary, challenge} or None if the page has no id or date
        """
        props = page.get("properties") or {}
        row = {
            "id": page.get("id"),
            "date": cls._date(props.get(PROP_DATE)),
            "subject": cls._text(props.get(PROP_SUBJECT)),
            "module": cls._text(props.get(PROP_MODULE)),
            "duration": cls._number(props.get(PROP_DURATION)),
            "status": cls._select(props.get(PROP_STATUS)),
            "credibility": cls._select(props.get(PROP_CREDIBILITY)),
            "summary": cls._text(props.get(PROP_SUMMARY)),
            "challenge": cls._text(props.get(PROP_CHALLENGE)),
        }
        if not row["id"] or not row["date"]:
            return None
        return row

    @staticmethod
    def _text(prop: dict[str, Any] | None) -> str:
        """Plain text of a title or rich_text property."""
        if not prop:
            return ""
        items = prop.get("title") or prop.get("rich_text") or []
        return "".join(
            item.get("plain_text", "") or item.get("text", {}).get("content", "")
            for item in items
        )

    @staticmethod
    def _number(prop: dict[str, Any] | None) -> int:
        if not prop or prop.get("number") is None:
            return 0
        return int(prop["number"])

    @staticmethod
    def _select(prop: dict[str, Any] | None) -> str:
        if not prop or not prop.get("select"):
            return ""
        return prop["select"].get("name", "")

    @staticmethod
    def _date(prop: dict[str, Any] | None) -> str | None:
        if not prop or not prop.get("date"):
            return None
        return prop["date"].get("start")

    # =========================================================================
    # WRITE OPERATIONS (protected by PROTECT_NOTION)
    # =========================================================================

    def create_session_page(self, session: StudySession, dry_run: bool = False) -> str | None:
        """
        Create a Sessions page for a local session.

        Returns:
            The new page id, or None if protected, dry-run or failed
        """
        if not self.ready:
            logger.warning("Notion client not ready")
            return None

        if self._settings.protect_notion:
            logger.warning(f"Skipping push of session {session.id}: PROTECT_NOTION=true")
            return None

        properties = self._session_properties(session)
        if dry_run or self._settings.dry_run:
            logger.info(f"DRY RUN: Would create session page {properties}")
            return None

        try:
            page = self._client.pages.create(
                parent={"database_id": self._settings.sessions_db_id},
                properties=properties,
            )
        except Exception as e:
            logger.error(f"Failed to create Notion page for session {session.id}: {e}")
            return None
        return page.get("id")

    @staticmethod
    def _session_properties(session: StudySession) -> dict[str, Any]:
        def rich_text(value: str) -> dict[str, Any]:
            return {"rich_text": [{"text": {"content": value[:2000]}}]}

        return {
            PROP_SUBJECT: {"title": [{"text": {"content": session.subject}}]},
            PROP_DATE: {"date": {"start": session.timestamp.isoformat()}},
            PROP_MODULE: rich_text(session.module),
            PROP_DURATION: {"number": session.duration_minutes},
            PROP_STATUS: {"select": {"name": session.status}},
            PROP_CREDIBILITY: {"select": {"name": session.credibility.value}},
            PROP_SUMMARY: rich_text(session.summary),
            PROP_CHALLENGE: rich_text(session.challenge),
        }
