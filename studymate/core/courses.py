"""
Course listings and selection intent.

Generated course lists arrive as free text, one course per line:

    1. 课程名称：Python 编程，简介：从零开始学习 Python，难度：初级

`parse_course_listing` turns those lines into `Course` objects, and
`parse_selection` resolves what the learner typed back to a course index.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from loguru import logger

from studymate.errors import InputValidationError


class Difficulty(str, Enum):
    """Course difficulty."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"

    @classmethod
    def from_label(cls, label: str) -> Difficulty:
        """
        Map a generated difficulty label to a Difficulty.

        Unknown labels fall back to BEGINNER.
        """
        normalized = (label or "").strip().lower()
        for difficulty, labels in _DIFFICULTY_LABELS.items():
            if normalized in labels:
                return difficulty
        logger.warning(f"Unknown difficulty label {label!r}, defaulting to beginner")
        return cls.BEGINNER


_DIFFICULTY_LABELS: dict[Difficulty, set[str]] = {
    Difficulty.BEGINNER: {"beginner", "初级", "入门", "简单"},
    Difficulty.INTERMEDIATE: {"intermediate", "中级", "进阶", "中等"},
    Difficulty.ADVANCED: {"advanced", "高级", "困难", "专家"},
}

# Module templates used when a listing does not name any modules
DEFAULT_MODULES: dict[Difficulty, list[str]] = {
    Difficulty.BEGINNER: ["基础概念", "核心原理", "入门实践"],
    Difficulty.INTERMEDIATE: ["核心概念深化", "实践应用", "常见问题分析"],
    Difficulty.ADVANCED: ["高级理论", "复杂应用", "前沿研究", "综合实践"],
}


def course_id_for(name: str) -> str:
    """Stable id derived from the course name."""
    return hashlib.sha1(name.strip().encode("utf-8")).hexdigest()[:8]


@dataclass
class Course:
    """A course offered to the learner."""

    id: str
    name: str
    description: str = ""
    difficulty: Difficulty = Difficulty.BEGINNER
    modules: list[str] = field(default_factory=list)

    def ensure_modules(self) -> list[str]:
        """Populate modules from the difficulty template when empty."""
        if not self.modules:
            self.modules = list(DEFAULT_MODULES[self.difficulty])
        return self.modules

    def add_custom_module(self, name: str) -> bool:
        """
        Append a learner-defined module.

        Returns:
            True if appended, False if a module with the same name exists

        Raises:
            InputValidationError: If the name is blank
        """
        name = (name or "").strip()
        if not name:
            raise InputValidationError("请输入模块名称！")
        self.ensure_modules()
        if name in self.modules:
            return False
        self.modules.append(name)
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "difficulty": self.difficulty.value,
            "modules": list(self.modules),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Course:
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            difficulty=Difficulty(data.get("difficulty", Difficulty.BEGINNER.value)),
            modules=list(data.get("modules") or []),
        )


# =============================================================================
# Listing parser
# =============================================================================

COURSE_LINE_PATTERN = re.compile(
    r"^\s*(?P<index>\d+)\s*[.、．]\s*"
    r"课程名称\s*[：:]\s*(?P<name>.+?)\s*[，,]\s*"
    r"简介\s*[：:]\s*(?P<description>.+?)\s*[，,]\s*"
    r"难度\s*[：:]\s*(?P<level>[^\s，,。.]+)"
)


def parse_course_listing(text: str) -> list[Course]:
    """
    Parse a generated course listing.

    Lines that do not match the listing format are ignored.
    """
    courses: list[Course] = []
    seen: set[str] = set()
    for line in (text or "").splitlines():
        match = COURSE_LINE_PATTERN.match(line)
        if not match:
            continue
        name = match.group("name").strip()
        course = Course(
            id=course_id_for(name),
            name=name,
            description=match.group("description").strip(),
            difficulty=Difficulty.from_label(match.group("level")),
        )
        if course.id in seen:
            continue
        seen.add(course.id)
        course.ensure_modules()
        courses.append(course)

    logger.debug(f"Parsed {len(courses)} courses from listing")
    return courses


# =============================================================================
# Selection intent
# =============================================================================

CHINESE_NUMERALS = {
    "一": 1, "二": 2, "三": 3, "四": 4, "五": 5,
    "六": 6, "七": 7, "八": 8, "九": 9, "十": 10,
}

_ORDINAL_PATTERN = re.compile(r"^第\s*(?P<number>\d+|[一二三四五六七八九十])\s*[个项门]?$")
_PREFIX_PATTERN = re.compile(r"^(?:我要学|学习|选择|选)\s*(?P<rest>.+)$")


def _bare_index(text: str, courses: list[Course]) -> int | None:
    if text.isdecimal():
        return int(text) - 1
    return None


def _ordinal_index(text: str, courses: list[Course]) -> int | None:
    match = _ORDINAL_PATTERN.match(text)
    if not match:
        return None
    number = match.group("number")
    if number.isdecimal():
        return int(number) - 1
    return CHINESE_NUMERALS[number] - 1


def _name_match(text: str, courses: list[Course]) -> int | None:
    for index, course in enumerate(courses):
        if course.name in text or text in course.name:
            return index
    return None


def _prefixed_request(text: str, courses: list[Course]) -> int | None:
    match = _PREFIX_PATTERN.match(text)
    if not match:
        return None
    rest = match.group("rest").strip()
    return _first_valid(rest, courses, (_bare_index, _ordinal_index, _name_match))


def _first_valid(
    text: str,
    courses: list[Course],
    rules: tuple[Callable[[str, list[Course]], int | None], ...],
) -> int | None:
    for rule in rules:
        index = rule(text, courses)
        if index is not None and 0 <= index < len(courses):
            return index
    return None


def parse_selection(text: str, courses: list[Course]) -> int | None:
    """
    Resolve learner input to a 0-based index into `courses`.

    Rules, first valid in-range index wins:
    1. Bare 1-based integer ("2")
    2. Chinese ordinal ("第二个", "第3项")
    3. Prefixed request ("选2", "我要学 Python")
    4. Bidirectional substring match against course names

    Returns:
        Index into courses, or None if the input is not a selection
    """
    text = (text or "").strip()
    if not text or not courses:
        return None
    return _first_valid(
        text,
        courses,
        (_bare_index, _ordinal_index, _prefixed_request, _name_match),
    )
