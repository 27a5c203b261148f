"""
Review-due policies.

Two separate notions of "due for review" exist and are kept apart:

- ElapsedDaysReviewPolicy: coarse, over the flat session log. A
  subject/module pair is due when its most recent session is at least
  `review_after_days` old.
- MasteryReviewPolicy: per module, driven by the mastery model's
  forgetting-curve schedule (nextReviewDate <= now).

The reminder scheduler takes either one through the ReviewPolicy protocol.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from studymate.core import clock
from studymate.core.mastery import MasteryModel
from studymate.progress.records import ProgressStore

DEFAULT_REVIEW_AFTER_DAYS = 3


@dataclass
class DueTopic:
    """A topic that should be reviewed."""

    subject: str
    module: str
    days_since: int

    @property
    def label(self) -> str:
        return f"{self.subject} - {self.module}"


class ReviewPolicy(Protocol):
    """Anything that can list due topics at a point in time."""

    name: str

    def due_topics(self, now: datetime | None = None) -> list[DueTopic]:
        ...


class ElapsedDaysReviewPolicy:
    """Due when a subject/module pair has not been studied for N days."""

    name = "elapsed-days"

    def __init__(self, store: ProgressStore, review_after_days: int = DEFAULT_REVIEW_AFTER_DAYS):
        self.store = store
        self.review_after_days = review_after_days

    def due_topics(self, now: datetime | None = None) -> list[DueTopic]:
        """Due pairs, longest-neglected first."""
        now = now or clock.now()
        latest: dict[tuple[str, str], datetime] = {}
        for session in self.store.sessions:
            key = (session.subject, session.module)
            if key not in latest or session.timestamp > latest[key]:
                latest[key] = session.timestamp

        due = [
            DueTopic(subject=subject, module=module, days_since=(now.date() - last.date()).days)
            for (subject, module), last in latest.items()
        ]
        due = [topic for topic in due if topic.days_since >= self.review_after_days]
        due.sort(key=lambda topic: -topic.days_since)
        return due


class MasteryReviewPolicy:
    """Due when a module's forgetting-curve review date has passed."""

    name = "mastery"

    def __init__(self, model: MasteryModel):
        self.model = model

    def due_topics(self, now: datetime | None = None) -> list[DueTopic]:
        """Due modules in the mastery model's priority order."""
        now = now or clock.now()
        return [
            DueTopic(
                subject=item.course_name,
                module=item.module,
                days_since=item.days_overdue(now),
            )
            for item in self.model.due_reviews(now)
        ]
