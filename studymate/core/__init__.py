"""
Core Module - Course and mastery domain models.

Components:
- courses: Course listings and selection intent parsing
- mastery: Module mastery levels and the forgetting-curve review schedule
- clock: Instant parsing/formatting
"""

from studymate.core.courses import Course, Difficulty, parse_course_listing, parse_selection
from studymate.core.mastery import MasteryModel, ModuleMastery, interval_for

__all__ = [
    "Course",
    "Difficulty",
    "MasteryModel",
    "ModuleMastery",
    "interval_for",
    "parse_course_listing",
    "parse_selection",
]
