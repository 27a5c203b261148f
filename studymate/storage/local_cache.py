"""
SQLite-backed local cache.

Key/value store for the locally persisted state:
- configuration overrides
- course/mastery snapshot
- flat study session log
- reminder settings
- in-progress assessment payload
- mirrors of the daily conversation logs

Values are JSON documents. Writes always succeed or raise; reads of
malformed JSON are logged and treated as absent.

Database location: ~/.studymate/cache.db (settings.local_cache_url)
"""

from __future__ import annotations

import json
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from loguru import logger
from sqlalchemy import DateTime, String, Text, create_engine, select
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool


class CacheKey(str, Enum):
    """Well-known local state keys."""

    CONFIG = "config"
    COURSE_PROGRESS = "course_progress"
    STUDY_SESSIONS = "study_sessions"
    REMINDER_SETTINGS = "reminder_settings"
    PENDING_ASSESSMENT = "pending_assessment"

    @staticmethod
    def conversation(day: str) -> str:
        """Key mirroring conversations/<day>.json."""
        return f"conversation:{day}"


CONVERSATION_PREFIX = "conversation:"


def _key(key: str) -> str:
    return key.value if isinstance(key, Enum) else key


class Base(DeclarativeBase):
    pass


class CacheEntry(Base):
    """A single cached JSON document."""

    __tablename__ = "local_state"

    key: Mapped[str] = mapped_column(String(200), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)


class LocalCache:
    """JSON key/value cache on SQLAlchemy."""

    def __init__(self, url: str):
        """
        Initialize the cache.

        Args:
            url: SQLAlchemy URL, e.g. sqlite:////home/me/.studymate/cache.db
        """
        parsed = make_url(url)
        engine_kwargs: dict[str, Any] = {}
        if parsed.drivername.startswith("sqlite"):
            database = parsed.database
            if database and database != ":memory:":
                Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)
            else:
                engine_kwargs["poolclass"] = StaticPool
            engine_kwargs["connect_args"] = {"check_same_thread": False}

        self.engine = create_engine(url, **engine_kwargs)
        self._session_factory = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        Base.metadata.create_all(bind=self.engine)
        logger.debug(f"LocalCache initialized at {url}")

    @contextmanager
    def _session_scope(self) -> Generator[Session, None, None]:
        """Provide a transactional scope around a series of operations."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:  # Intentionally broad - rollback on any error before re-raising
            session.rollback()
            raise
        finally:
            session.close()

    def get_json(self, key: str) -> Any | None:
        """
        Read a cached document.

        Returns:
            Parsed JSON, or None if absent or malformed
        """
        with self._session_scope() as session:
            entry = session.get(CacheEntry, _key(key))
            raw = entry.value if entry else None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Cached value for {key} is not valid JSON, ignoring: {e}")
            return None

    def set_json(self, key: str, value: Any) -> None:
        """Write a document, replacing any previous value."""
        raw = json.dumps(value, ensure_ascii=False)
        with self._session_scope() as session:
            entry = session.get(CacheEntry, _key(key))
            if entry is None:
                session.add(CacheEntry(key=_key(key), value=raw, updated_at=datetime.now()))
            else:
                entry.value = raw
                entry.updated_at = datetime.now()

    def delete(self, key: str) -> bool:
        """Remove a document. Returns True if it existed."""
        with self._session_scope() as session:
            entry = session.get(CacheEntry, _key(key))
            if entry is None:
                return False
            session.delete(entry)
            return True

    def keys(self, prefix: str = "") -> list[str]:
        """Stored keys, optionally filtered by prefix, sorted."""
        with self._session_scope() as session:
            stmt = select(CacheEntry.key)
            if prefix:
                stmt = stmt.where(CacheEntry.key.startswith(prefix))
            return sorted(session.scalars(stmt).all())

    def close(self) -> None:
        self.engine.dispose()
