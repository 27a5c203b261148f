"""
Unit tests for the tutor flows and application state.
"""

import asyncio

import pytest
import pytest_asyncio

from studymate.delivery.tutor import RequestSequencer, Tutor
from studymate.errors import InputValidationError
from studymate.state import AppState, apply_user_config, save_user_config
from studymate.storage.local_cache import CacheKey

LISTING = (
    "1. 课程名称：Python 编程，简介：从零开始，难度：初级\n"
    "2. 课程名称：数据分析，简介：pandas，难度：中级\n"
)


@pytest_asyncio.fixture
async def state(settings_factory, cache):
    """Local-only state with a small conversation window."""
    state = await AppState.load(settings_factory(conversation_window=2), cache)
    yield state
    await state.store.close()
    await state.oracle.close()


def _oracle(state, monkeypatch, replies):
    """Replace generation with canned replies; returns the list of sent requests."""
    sent = []
    queue = list(replies)

    async def generate(messages):
        sent.append(messages)
        return queue.pop(0)

    monkeypatch.setattr(state.oracle, "generate", generate)
    return sent


class TestRequestSequencer:
    """Tests for RequestSequencer."""

    def test_only_latest_ticket_is_current(self):
        sequencer = RequestSequencer()
        first = sequencer.issue()
        second = sequencer.issue()

        assert not sequencer.is_current(first)
        assert sequencer.is_current(second)


class TestChat:
    """Tests for Tutor.chat."""

    @pytest.mark.asyncio
    async def test_sends_recent_window_and_saves_full_log(self, state, monkeypatch):
        earlier = [{"role": "user", "content": f"m{i}"} for i in range(4)]
        await state.conversations.save(earlier)
        sent = _oracle(state, monkeypatch, ["回复"])

        reply = await Tutor(state).chat("新问题")

        assert reply == "回复"
        assert sent[0] == earlier[-2:] + [{"role": "user", "content": "新问题"}]
        log = await state.conversations.load()
        assert len(log) == 6
        assert log[-1] == {"role": "assistant", "content": "回复"}

    @pytest.mark.asyncio
    async def test_failed_generation_leaves_log_unchanged(self, state, monkeypatch):
        _oracle(state, monkeypatch, [None])

        assert await Tutor(state).chat("你好") is None
        assert await state.conversations.load() == []

    @pytest.mark.asyncio
    async def test_blank_message_raises(self, state):
        with pytest.raises(InputValidationError):
            await Tutor(state).chat("  ")

    @pytest.mark.asyncio
    async def test_stale_reply_is_discarded(self, state, monkeypatch):
        release_first = asyncio.Event()

        async def generate(messages):
            if messages[-1]["content"] == "慢":
                await release_first.wait()
                return "旧回复"
            return "新回复"

        monkeypatch.setattr(state.oracle, "generate", generate)
        tutor = Tutor(state)

        slow = asyncio.create_task(tutor.chat("慢"))
        await asyncio.sleep(0)
        fast = await tutor.chat("快")
        release_first.set()

        assert fast == "新回复"
        assert await slow is None
        contents = [m["content"] for m in await state.conversations.load()]
        assert "旧回复" not in contents


class TestCourses:
    """Tests for course suggestion and selection."""

    @pytest.mark.asyncio
    async def test_suggest_stores_listing(self, state, monkeypatch):
        sent = _oracle(state, monkeypatch, [LISTING])

        courses = await Tutor(state).suggest_courses("编程")

        assert [c.name for c in courses] == ["Python 编程", "数据分析"]
        assert "编程" in sent[0][0]["content"]
        cached = state.cache.get_json(CacheKey.COURSE_PROGRESS)
        assert len(cached["availableCourses"]) == 2

    @pytest.mark.asyncio
    async def test_unparsable_listing(self, state, monkeypatch):
        _oracle(state, monkeypatch, ["抱歉，我不知道"])

        assert await Tutor(state).suggest_courses("编程") == []
        assert state.mastery.available_courses == []

    @pytest.mark.asyncio
    async def test_select_course(self, state, monkeypatch):
        _oracle(state, monkeypatch, [LISTING])
        tutor = Tutor(state)
        await tutor.suggest_courses("编程")

        course = await tutor.select_course("第二个")

        assert course.name == "数据分析"
        assert state.mastery.current_course_id == course.id
        assert await tutor.select_course("第九个") is None

    @pytest.mark.asyncio
    async def test_custom_module_survives_new_listing(self, state, monkeypatch, now):
        _oracle(state, monkeypatch, [LISTING, "装饰器讲解", LISTING, "再讲一次"])
        tutor = Tutor(state)
        course = (await tutor.suggest_courses("编程"))[0]
        course.add_custom_module("装饰器")
        await tutor.teach(course, "装饰器", now)

        courses = await tutor.suggest_courses("编程")
        lesson, mastery = await tutor.teach(courses[0], "装饰器", now)

        assert "装饰器" in courses[0].modules
        assert lesson == "再讲一次"
        assert mastery.learning_count == 2


class TestTeach:
    """Tests for Tutor.teach."""

    @pytest.mark.asyncio
    async def test_successful_lesson_updates_mastery(self, state, monkeypatch, python_course, now):
        sent = _oracle(state, monkeypatch, ["费曼讲解"])

        lesson, mastery = await Tutor(state).teach(python_course, "基础概念", now)

        assert lesson == "费曼讲解"
        assert mastery.mastery_level == 1.0
        assert "第一次学习" in sent[0][0]["content"]
        assert state.mastery.history[-1].content == "费曼讲解"
        assert state.cache.get_json(CacheKey.PENDING_ASSESSMENT) is None
        assert state.cache.get_json(CacheKey.COURSE_PROGRESS)["learnedCourses"][python_course.id]

    @pytest.mark.asyncio
    async def test_failed_generation_leaves_mastery_untouched(self, state, monkeypatch, python_course, now):
        _oracle(state, monkeypatch, [None])

        assert await Tutor(state).teach(python_course, "基础概念", now) is None
        assert state.mastery.learned_courses == {}
        assert state.cache.get_json(CacheKey.PENDING_ASSESSMENT)["module"] == "基础概念"

    @pytest.mark.asyncio
    async def test_course_level_lesson(self, state, monkeypatch, python_course, now):
        _oracle(state, monkeypatch, ["总览"])

        lesson, mastery = await Tutor(state).teach(python_course, None, now)

        assert mastery is None
        assert state.mastery.learned_courses[python_course.id].module_mastery == {}
        assert state.mastery.history[-1].module == "all-content"

    @pytest.mark.asyncio
    async def test_unknown_module_raises(self, state, python_course):
        with pytest.raises(InputValidationError):
            await Tutor(state).teach(python_course, "不存在的模块")


class TestStudyAids:
    """Tests for review plans, exercises and memory points."""

    @pytest.mark.asyncio
    async def test_review_plan_without_prompt_files(self, state, monkeypatch):
        sent = _oracle(state, monkeypatch, ["计划"])

        assert await Tutor(state).review_plan("线性代数") == "计划"
        content = sent[0][0]["content"]
        assert "线性代数" in content
        assert "无高效学习方法提示词" in content
        assert "无遗忘曲线提示词" in content

    @pytest.mark.asyncio
    async def test_exercises_validation(self, state):
        with pytest.raises(InputValidationError):
            await Tutor(state).exercises("数学", "")
        with pytest.raises(InputValidationError):
            await Tutor(state).exercises("数学", "导数", count=0)

    @pytest.mark.asyncio
    async def test_exercises_prompt(self, state, monkeypatch):
        sent = _oracle(state, monkeypatch, ["1. 题目"])

        await Tutor(state).exercises("数学", "导数", "困难", 3)

        assert "3道困难难度" in sent[0][0]["content"]

    @pytest.mark.asyncio
    async def test_memory_points_include_history(self, state, monkeypatch):
        await state.conversations.save([{"role": "user", "content": "闭包是什么"}], "2024-05-01")
        sent = _oracle(state, monkeypatch, ["要点"])

        assert await Tutor(state).memory_points() == "要点"
        content = sent[0][0]["content"]
        assert "=== 2024-05-01 ===" in content
        assert "用户: 闭包是什么" in content


class TestAppState:
    """Tests for AppState loading and user configuration."""

    def test_cached_overrides_are_layered(self, settings, cache):
        save_user_config(cache, {"repo_owner": "me", "ai_model": "qwen-max"})

        effective = apply_user_config(settings, cache)

        assert effective.repo_owner == "me"
        assert effective.ai_model == "qwen-max"
        assert settings.ai_model == "qwen-turbo"

    def test_unknown_config_key_raises(self, cache):
        with pytest.raises(InputValidationError):
            save_user_config(cache, {"log_level": "DEBUG"})

    @pytest.mark.asyncio
    async def test_load_restores_sessions_and_reminders(self, settings, cache, now):
        first = await AppState.load(settings, cache)
        first.progress.record("Python", "a", 20, now=now)
        first.reminders.reminder_time = "21:30"
        first.save_sessions()
        first.save_reminders()
        await first.store.close()
        await first.oracle.close()

        second = await AppState.load(settings, cache)
        try:
            assert len(second.progress.sessions) == 1
            assert second.reminders.reminder_time == "21:30"
        finally:
            await second.store.close()
            await second.oracle.close()
