"""
Tutor: conversation, course suggestion and Feynman-method teaching.

Every generation call takes a ticket from a RequestSequencer. A reply whose
ticket has been superseded by a newer request is dropped, so a slow response
can never overwrite the result of a later one (last request wins).
"""

from __future__ import annotations

from datetime import datetime

from loguru import logger

from studymate.core import clock
from studymate.core.courses import Course, parse_course_listing, parse_selection
from studymate.core.mastery import ModuleMastery
from studymate.errors import InputValidationError
from studymate.generation import prompts
from studymate.state import AppState
from studymate.storage.local_cache import CacheKey


class RequestSequencer:
    """Monotonic request tickets."""

    def __init__(self) -> None:
        self._latest = 0

    def issue(self) -> int:
        self._latest += 1
        return self._latest

    def is_current(self, ticket: int) -> bool:
        return ticket == self._latest


class Tutor:
    """Generation-backed learning flows over an AppState."""

    def __init__(self, state: AppState):
        self.state = state
        self.sequencer = RequestSequencer()

    async def _generate(self, messages: list[dict[str, str]]) -> str | None:
        """Generate, discarding replies that arrive after a newer request."""
        ticket = self.sequencer.issue()
        reply = await self.state.oracle.generate(messages)
        if not self.sequencer.is_current(ticket):
            logger.info(f"Discarding stale reply for request #{ticket}")
            return None
        return reply

    # =========================================================================
    # Conversation
    # =========================================================================

    async def chat(self, text: str) -> str | None:
        """
        Send a message in today's conversation.

        Only the most recent entries (conversation_window) are sent along
        with the new turn; the full day log is kept and saved.

        Returns:
            The reply, or None if generation failed
        """
        text = (text or "").strip()
        if not text:
            raise InputValidationError("请输入消息内容！")

        log = await self.state.conversations.load()
        window = log[-self.state.settings.conversation_window:]
        user_turn = {"role": "user", "content": text}

        reply = await self._generate(window + [user_turn])
        if reply is None:
            return None

        log.extend([user_turn, {"role": "assistant", "content": reply}])
        await self.state.conversations.save(log)
        return reply

    # =========================================================================
    # Courses
    # =========================================================================

    async def suggest_courses(self, topic: str, count: int = 5) -> list[Course]:
        """Generate and store a course listing for a topic."""
        topic = (topic or "").strip()
        if not topic:
            raise InputValidationError("请输入想学习的主题！")

        listing = await self._generate(prompts.course_listing(topic, count))
        if listing is None:
            return []

        courses = parse_course_listing(listing)
        if not courses:
            logger.warning("Generated course listing contained no parsable lines")
            return []

        self.state.mastery.set_available_courses(courses)
        await self.state.save_mastery()
        return list(self.state.mastery.available_courses)

    async def select_course(self, text: str) -> Course | None:
        """
        Resolve free-text selection against the presented courses.

        Returns:
            The selected course, or None if the input is not a selection
        """
        index = parse_selection(text, self.state.mastery.available_courses)
        if index is None:
            return None
        course = self.state.mastery.select_course(index)
        await self.state.save_mastery()
        logger.info(f"Selected course {course.name}")
        return course

    # =========================================================================
    # Teaching
    # =========================================================================

    async def teach(
        self,
        course: Course,
        module: str | None = None,
        now: datetime | None = None,
    ) -> tuple[str, ModuleMastery | None] | None:
        """
        Teach a course (or one module) with the Feynman method.

        Mastery is only updated once the lesson was generated.

        Returns:
            (lesson, updated module mastery) or None if generation failed
        """
        module = (module or "").strip() or None
        if module and module not in course.ensure_modules():
            raise InputValidationError(f"课程「{course.name}」中没有模块「{module}」")

        now = now or clock.now()
        self.state.cache.set_json(
            CacheKey.PENDING_ASSESSMENT,
            {
                "courseId": course.id,
                "module": module,
                "startedAt": clock.format_instant(now),
            },
        )

        current = self.state.mastery.mastery_for(course.id, module) if module else None
        lesson = await self._generate(prompts.feynman_teaching(course, module, current))
        if lesson is None:
            return None

        mastery = self.state.mastery.teach(course, module, now)
        self.state.mastery.record_history(course, module, lesson, now)
        await self.state.save_mastery()
        self.state.cache.delete(CacheKey.PENDING_ASSESSMENT)
        return lesson, mastery

    # =========================================================================
    # Study aids
    # =========================================================================

    async def review_plan(self, subject: str) -> str | None:
        subject = (subject or "").strip()
        if not subject:
            raise InputValidationError("请输入科目名称！")

        learning_efficiency = await self.state.reconciler.read_text(prompts.LEARNING_EFFICIENCY_PATH)
        forgetting_curve = await self.state.reconciler.read_text(prompts.FORGETTING_CURVE_PATH)
        return await self._generate(
            prompts.review_plan(subject, learning_efficiency, forgetting_curve)
        )

    async def exercises(
        self,
        subject: str,
        topic: str,
        difficulty: str = "中等",
        count: int = 5,
    ) -> str | None:
        subject = (subject or "").strip()
        topic = (topic or "").strip()
        if not subject or not topic:
            raise InputValidationError("请输入科目和主题！")
        if count < 1:
            raise InputValidationError("习题数量至少为 1！")
        return await self._generate(prompts.exercises(subject, topic, difficulty, count))

    async def memory_points(self) -> str | None:
        """Memory points across the whole conversation history."""
        history = await self.state.conversations.load_all()
        forgetting_curve = await self.state.reconciler.read_text(prompts.FORGETTING_CURVE_PATH)
        return await self._generate(prompts.memory_points(history, forgetting_curve))
