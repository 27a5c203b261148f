"""
Course/Module Mastery Model.

Tracks, per course and per module, a continuous mastery level (1.0-5.0),
learning/review counters and a next-review date derived from a
forgetting-curve interval table.

Design:
- interval_for(): mastery level -> safe re-exposure interval
- ModuleMastery / LearnedCourse: per-module and per-course state
- MasteryModel: teach() state transitions, review queue, statistics
- to_dict()/from_dict(): the courseProgress.json snapshot format
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any

from loguru import logger

from studymate.core import clock
from studymate.core.courses import Course, Difficulty

# Forgetting-curve interval table, keyed by ceil(level) clamped to [1, 5].
# Non-integer levels round up to the next row of the table.
INTERVAL_DAYS: dict[int, int] = {1: 1, 2: 3, 3: 7, 4: 14, 5: 30}

MIN_MASTERY = 1.0
MAX_MASTERY = 5.0
MASTERY_STEP = 0.5
URGENT_BELOW = 3.0  # Due modules under this level are reviewed first

ALL_CONTENT = "all-content"
FEYNMAN_METHOD = "feynman"


def interval_for(level: float) -> timedelta:
    """
    Review interval for a mastery level.

    Args:
        level: Mastery level (1.0-5.0)

    Returns:
        Interval until the next review is due
    """
    key = min(5, max(1, math.ceil(level)))
    return timedelta(days=INTERVAL_DAYS[key])


@dataclass
class ModuleMastery:
    """Mastery state for one module of a learned course."""

    name: str
    last_learned_date: datetime
    next_review_date: datetime
    learning_count: int = 1
    review_count: int = 0
    mastery_level: float = MIN_MASTERY

    def is_due(self, now: datetime | None = None) -> bool:
        """Check if the module's scheduled review time has passed."""
        return self.next_review_date <= (now or clock.now())

    @property
    def is_urgent(self) -> bool:
        return self.mastery_level < URGENT_BELOW

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "lastLearnedDate": clock.format_instant(self.last_learned_date),
            "learningCount": self.learning_count,
            "reviewCount": self.review_count,
            "masteryLevel": self.mastery_level,
            "nextReviewDate": clock.format_instant(self.next_review_date),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModuleMastery:
        level = min(MAX_MASTERY, max(MIN_MASTERY, float(data.get("masteryLevel", MIN_MASTERY))))
        last_learned = clock.parse_instant(data["lastLearnedDate"])
        next_review = data.get("nextReviewDate")
        return cls(
            name=data["name"],
            last_learned_date=last_learned,
            next_review_date=(
                clock.parse_instant(next_review)
                if next_review
                else last_learned + interval_for(level)
            ),
            learning_count=int(data.get("learningCount", 1)),
            review_count=int(data.get("reviewCount", 0)),
            mastery_level=level,
        )


@dataclass
class LearnedCourse:
    """A course the learner has been taught at least once."""

    id: str
    name: str
    difficulty: Difficulty
    first_learned_date: datetime
    last_learned_date: datetime
    learning_count: int = 1
    module_mastery: dict[str, ModuleMastery] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "difficulty": self.difficulty.value,
            "firstLearnedDate": clock.format_instant(self.first_learned_date),
            "lastLearnedDate": clock.format_instant(self.last_learned_date),
            "learningCount": self.learning_count,
            "moduleMastery": {
                name: mastery.to_dict() for name, mastery in self.module_mastery.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LearnedCourse:
        return cls(
            id=data["id"],
            name=data["name"],
            difficulty=Difficulty(data.get("difficulty", Difficulty.BEGINNER.value)),
            first_learned_date=clock.parse_instant(data["firstLearnedDate"]),
            last_learned_date=clock.parse_instant(data["lastLearnedDate"]),
            learning_count=int(data.get("learningCount", 1)),
            module_mastery={
                name: ModuleMastery.from_dict(entry)
                for name, entry in (data.get("moduleMastery") or {}).items()
            },
        )


@dataclass
class LearningHistoryEntry:
    """One generated teaching session."""

    course: str
    course_id: str
    module: str
    timestamp: datetime
    content: str
    mastery_level_at_time: float
    method: str = FEYNMAN_METHOD

    def to_dict(self) -> dict[str, Any]:
        return {
            "course": self.course,
            "courseId": self.course_id,
            "module": self.module,
            "timestamp": clock.format_instant(self.timestamp),
            "content": self.content,
            "method": self.method,
            "masteryLevelAtTime": self.mastery_level_at_time,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LearningHistoryEntry:
        return cls(
            course=data["course"],
            course_id=data["courseId"],
            module=data.get("module") or ALL_CONTENT,
            timestamp=clock.parse_instant(data["timestamp"]),
            content=data.get("content", ""),
            mastery_level_at_time=float(data.get("masteryLevelAtTime", 0.0)),
            method=data.get("method", FEYNMAN_METHOD),
        )


@dataclass
class ReviewItem:
    """A module that is due for review."""

    course_id: str
    course_name: str
    module: str
    mastery_level: float
    next_review_date: datetime

    @property
    def is_urgent(self) -> bool:
        return self.mastery_level < URGENT_BELOW

    def days_overdue(self, now: datetime | None = None) -> int:
        delta = (now or clock.now()) - self.next_review_date
        return max(0, delta.days)


@dataclass
class MasteryStats:
    """Aggregate statistics over all learned courses."""

    course_count: int = 0
    module_count: int = 0
    average_mastery: float = 0.0
    due_count: int = 0
    urgent_count: int = 0
    mastered_count: int = 0
    total_sessions: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "course_count": self.course_count,
            "module_count": self.module_count,
            "average_mastery": self.average_mastery,
            "due_count": self.due_count,
            "urgent_count": self.urgent_count,
            "mastered_count": self.mastered_count,
            "total_sessions": self.total_sessions,
        }


class MasteryModel:
    """
    Learner's course and module mastery.

    Holds the last presented course list, the learned courses with their
    module mastery, and the append-only learning history.
    """

    def __init__(
        self,
        available_courses: list[Course] | None = None,
        learned_courses: dict[str, LearnedCourse] | None = None,
        history: list[LearningHistoryEntry] | None = None,
        current_course_id: str | None = None,
    ):
        self.available_courses: list[Course] = available_courses or []
        self.learned_courses: dict[str, LearnedCourse] = learned_courses or {}
        self.history: list[LearningHistoryEntry] = history or []
        self.current_course_id = current_course_id

    # =========================================================================
    # Course list
    # =========================================================================

    @property
    def current_course(self) -> Course | None:
        return self.find_course(self.current_course_id) if self.current_course_id else None

    def find_course(self, course_id: str) -> Course | None:
        for course in self.available_courses:
            if course.id == course_id:
                return course
        return None

    def set_available_courses(self, courses: list[Course]) -> None:
        """
        Replace the presented course list.

        A course already known under the same id keeps its module list,
        including custom modules; new template modules are appended after
        it, and any module with recorded mastery is kept as well.
        """
        previous = {course.id: course for course in self.available_courses}
        merged: list[Course] = []
        for course in courses:
            modules = list(previous[course.id].modules) if course.id in previous else []
            learned = self.learned_courses.get(course.id)
            for name in [*course.modules, *(learned.module_mastery if learned else [])]:
                if name not in modules:
                    modules.append(name)
            merged.append(replace(course, modules=modules or list(course.modules)))
        self.available_courses = merged
        if self.current_course_id and self.find_course(self.current_course_id) is None:
            self.current_course_id = None

    def select_course(self, index: int) -> Course:
        """Make the course at `index` the current course."""
        course = self.available_courses[index]
        self.current_course_id = course.id
        return course

    # =========================================================================
    # Teaching
    # =========================================================================

    def teach(
        self,
        course: Course,
        module: str | None = None,
        now: datetime | None = None,
    ) -> ModuleMastery | None:
        """
        Record a teaching session for a course, optionally for one module.

        Args:
            course: The course being taught
            module: Module name, or None for general course content
            now: Session time (defaults to now)

        Returns:
            The module's updated mastery, or None for course-level sessions
        """
        now = now or clock.now()

        learned = self.learned_courses.get(course.id)
        if learned is None:
            learned = LearnedCourse(
                id=course.id,
                name=course.name,
                difficulty=course.difficulty,
                first_learned_date=now,
                last_learned_date=now,
            )
            self.learned_courses[course.id] = learned
            logger.info(f"First session for course {course.name}")
        else:
            learned.learning_count += 1
            learned.last_learned_date = now

        module = (module or "").strip()
        if not module:
            return None

        mastery = learned.module_mastery.get(module)
        if mastery is None:
            mastery = ModuleMastery(
                name=module,
                last_learned_date=now,
                next_review_date=now + interval_for(MIN_MASTERY),
            )
            learned.module_mastery[module] = mastery
            return mastery

        if mastery.is_due(now):
            mastery.review_count += 1
        mastery.learning_count += 1
        mastery.last_learned_date = now
        if mastery.mastery_level < MAX_MASTERY:
            mastery.mastery_level = min(MAX_MASTERY, mastery.mastery_level + MASTERY_STEP)
        mastery.next_review_date = now + interval_for(mastery.mastery_level)

        logger.debug(
            f"{course.name}/{module}: level {mastery.mastery_level}, "
            f"next review {mastery.next_review_date:%Y-%m-%d}"
        )
        return mastery

    def record_history(
        self,
        course: Course,
        module: str | None,
        content: str,
        now: datetime | None = None,
    ) -> LearningHistoryEntry:
        """Append a generated teaching session to the learning history."""
        mastery = self.mastery_for(course.id, module) if module else None
        entry = LearningHistoryEntry(
            course=course.name,
            course_id=course.id,
            module=module or ALL_CONTENT,
            timestamp=now or clock.now(),
            content=content,
            mastery_level_at_time=mastery.mastery_level if mastery else 0.0,
        )
        self.history.append(entry)
        return entry

    def mastery_for(self, course_id: str, module: str) -> ModuleMastery | None:
        learned = self.learned_courses.get(course_id)
        if learned is None:
            return None
        return learned.module_mastery.get(module)

    # =========================================================================
    # Review queue & statistics
    # =========================================================================

    def due_reviews(
        self,
        now: datetime | None = None,
        course_id: str | None = None,
    ) -> list[ReviewItem]:
        """
        Modules whose review is due, in priority order.

        Urgent modules (level < 3) come first, then ascending mastery level.
        Ties keep enumeration order (courses, then modules, as inserted).
        """
        now = now or clock.now()
        items = [
            ReviewItem(
                course_id=learned.id,
                course_name=learned.name,
                module=mastery.name,
                mastery_level=mastery.mastery_level,
                next_review_date=mastery.next_review_date,
            )
            for learned in self.learned_courses.values()
            if course_id is None or learned.id == course_id
            for mastery in learned.module_mastery.values()
            if mastery.is_due(now)
        ]
        items.sort(key=lambda item: (not item.is_urgent, item.mastery_level))
        return items

    def statistics(self, now: datetime | None = None) -> MasteryStats:
        """Aggregate statistics across learned courses."""
        modules = [
            mastery
            for learned in self.learned_courses.values()
            for mastery in learned.module_mastery.values()
        ]
        due = self.due_reviews(now)
        average = sum(m.mastery_level for m in modules) / len(modules) if modules else 0.0
        return MasteryStats(
            course_count=len(self.learned_courses),
            module_count=len(modules),
            average_mastery=round(average, 2),
            due_count=len(due),
            urgent_count=sum(1 for item in due if item.is_urgent),
            mastered_count=sum(1 for m in modules if m.mastery_level >= MAX_MASTERY),
            total_sessions=sum(c.learning_count for c in self.learned_courses.values()),
        )

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        return {
            "availableCourses": [course.to_dict() for course in self.available_courses],
            "currentCourseId": self.current_course_id,
            "learnedCourses": {
                course_id: learned.to_dict()
                for course_id, learned in self.learned_courses.items()
            },
            "learningHistory": [entry.to_dict() for entry in self.history],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MasteryModel:
        """
        Rebuild a model from a snapshot.

        Raises:
            KeyError, TypeError, ValueError: If the snapshot is malformed
        """
        return cls(
            available_courses=[Course.from_dict(c) for c in data.get("availableCourses") or []],
            learned_courses={
                course_id: LearnedCourse.from_dict(entry)
                for course_id, entry in (data.get("learnedCourses") or {}).items()
            },
            history=[LearningHistoryEntry.from_dict(e) for e in data.get("learningHistory") or []],
            current_course_id=data.get("currentCourseId"),
        )
