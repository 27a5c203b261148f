"""
Progress Record Store.

Append-only log of self-reported study sessions. Each session gets a
credibility grade from three independent signals (duration, summary length,
status) so that aggregate statistics can be weighed against how much the
learner actually wrote down.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Literal

from loguru import logger

from studymate.core import clock
from studymate.errors import InputValidationError


class SessionStatus(str, Enum):
    """How the learner spent a session."""

    FOCUSED = "focused"
    REVIEW = "review"
    PRACTICE = "practice"
    PROBLEM_SOLVING = "problem-solving"


class Credibility(str, Enum):
    """Confidence in a self-reported session."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def points(self) -> int:
        return {Credibility.LOW: 1, Credibility.MEDIUM: 2, Credibility.HIGH: 3}[self]


STATUS_BONUS = {
    SessionStatus.FOCUSED.value: 20,
    SessionStatus.PRACTICE.value: 20,
    SessionStatus.REVIEW.value: 15,
    SessionStatus.PROBLEM_SOLVING.value: 15,
}

RECENT_SESSIONS = 10  # Window for overall credibility


def duration_points(minutes: int) -> int:
    if minutes >= 30:
        return 30
    elif minutes >= 15:
        return 20
    elif minutes >= 5:
        return 10
    return 0


def summary_points(summary: str) -> int:
    length = len(summary or "")
    if length >= 200:
        return 30
    elif length >= 100:
        return 20
    elif length >= 50:
        return 10
    elif length > 0:
        return 5
    return 0


def credibility_score(duration_minutes: int, summary: str, status: str) -> int:
    """Credibility on a 0-80 scale."""
    status_value = status.value if isinstance(status, SessionStatus) else status
    return (
        duration_points(duration_minutes)
        + summary_points(summary)
        + STATUS_BONUS.get(status_value, 0)
    )


def credibility_for(duration_minutes: int, summary: str, status: str) -> Credibility:
    """
    Grade a session.

    Returns:
        HIGH for scores >= 70, MEDIUM for >= 50, LOW otherwise
    """
    score = credibility_score(duration_minutes, summary, status)
    if score >= 70:
        return Credibility.HIGH
    elif score >= 50:
        return Credibility.MEDIUM
    return Credibility.LOW


@dataclass
class StudySession:
    """One recorded study session. Immutable once recorded."""

    id: int
    subject: str
    module: str
    duration_minutes: int
    status: str
    summary: str
    challenge: str
    timestamp: datetime
    credibility: Credibility
    remote_id: str | None = None  # Notion page id once synced

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "subject": self.subject,
            "module": self.module,
            "durationMinutes": self.duration_minutes,
            "status": self.status,
            "summary": self.summary,
            "challenge": self.challenge,
            "timestamp": clock.format_instant(self.timestamp),
            "credibility": self.credibility.value,
            "remoteId": self.remote_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StudySession:
        return cls(
            id=int(data["id"]),
            subject=data["subject"],
            module=data["module"],
            duration_minutes=int(data.get("durationMinutes", 0)),
            status=data.get("status", SessionStatus.FOCUSED.value),
            summary=data.get("summary", ""),
            challenge=data.get("challenge", ""),
            timestamp=clock.parse_instant(data["timestamp"]),
            credibility=Credibility(data.get("credibility", Credibility.LOW.value)),
            remote_id=data.get("remoteId"),
        )


class ProgressStore:
    """
    In-memory session log.

    Persistence is handled by the caller (AppState writes `to_list()` to the
    local cache after every mutation).
    """

    def __init__(self, sessions: list[StudySession] | None = None):
        self.sessions: list[StudySession] = sessions or []

    def next_id(self, moment: datetime) -> int:
        candidate = int(time.mktime(moment.timetuple()) * 1000) + moment.microsecond // 1000
        if self.sessions:
            candidate = max(candidate, max(s.id for s in self.sessions) + 1)
        return candidate

    def record(
        self,
        subject: str,
        module: str,
        duration_minutes: int = 0,
        status: str = SessionStatus.FOCUSED.value,
        summary: str = "",
        challenge: str = "",
        now: datetime | None = None,
    ) -> StudySession:
        """
        Validate, grade and append a study session.

        Raises:
            InputValidationError: If subject or module is missing, or the
                duration is negative
        """
        subject = (subject or "").strip()
        module = (module or "").strip()
        if not subject or not module:
            raise InputValidationError("请填写科目和模块！")
        if duration_minutes < 0:
            raise InputValidationError("学习时长不能为负数！")

        if isinstance(status, SessionStatus):
            status = status.value
        moment = now or clock.now()
        session = StudySession(
            id=self.next_id(moment),
            subject=subject,
            module=module,
            duration_minutes=int(duration_minutes),
            status=status,
            summary=summary or "",
            challenge=challenge or "",
            timestamp=moment,
            credibility=credibility_for(duration_minutes, summary, status),
        )
        self.sessions.append(session)
        logger.info(
            f"Recorded {session.duration_minutes}min {subject}/{module} "
            f"({session.credibility.value} credibility)"
        )
        return session

    def aggregate(
        self,
        window_days: int | Literal["all"] = "all",
        now: datetime | None = None,
    ) -> dict[str, int]:
        """
        Sum durations over a trailing window.

        Returns:
            {"totalMinutes": ..., "sessionCount": ...}
        """
        if window_days == "all":
            selected = self.sessions
        else:
            cutoff = (now or clock.now()) - timedelta(days=window_days)
            selected = [s for s in self.sessions if s.timestamp >= cutoff]
        return {
            "totalMinutes": sum(s.duration_minutes for s in selected),
            "sessionCount": len(selected),
        }

    def minutes_on(self, day: date) -> int:
        """Total minutes recorded on a calendar day."""
        return sum(s.duration_minutes for s in self.sessions if s.timestamp.date() == day)

    def overall_credibility(self) -> Credibility:
        """
        Average credibility of the most recent sessions.

        An empty log counts as HIGH so new learners are not discouraged.
        """
        recent = self.sessions[-RECENT_SESSIONS:]
        if not recent:
            return Credibility.HIGH
        average = sum(s.credibility.points for s in recent) / len(recent)
        if average >= 2.5:
            return Credibility.HIGH
        elif average >= 1.5:
            return Credibility.MEDIUM
        return Credibility.LOW

    def find_by_remote_id(self, remote_id: str) -> int | None:
        """Index of the session synced under `remote_id`."""
        for index, session in enumerate(self.sessions):
            if session.remote_id == remote_id:
                return index
        return None

    def to_list(self) -> list[dict[str, Any]]:
        return [session.to_dict() for session in self.sessions]

    @classmethod
    def from_list(cls, data: list[dict[str, Any]] | None) -> ProgressStore:
        """Rebuild from cached entries, skipping malformed ones."""
        sessions = []
        for entry in data or []:
            try:
                sessions.append(StudySession.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed session entry: {e}")
        return cls(sessions)
