"""
Generation prompts.

Each builder returns a single user message ready for GenerationClient:
- Course listing (fixed line format parsed by parse_course_listing)
- Feynman-method teaching, adapted to the module's mastery state
- Review plan, exercises and memory points (optionally enriched with the
  prompt material stored under prompts/ in the remote store)
"""
from __future__ import annotations

from studymate.core.courses import Course
from studymate.core.mastery import ModuleMastery
from studymate.generation.oracle import to_prompt

LEARNING_EFFICIENCY_PATH = "prompts/learning_efficiency.md"
FORGETTING_CURVE_PATH = "prompts/forgetting_curve.md"

NO_LEARNING_EFFICIENCY = "无高效学习方法提示词"
NO_FORGETTING_CURVE = "无遗忘曲线提示词"


# =============================================================================
# Course listing
# =============================================================================

COURSE_LISTING_PROMPT = """作为一个学习顾问，请围绕「{topic}」推荐 {count} 门课程，从入门到进阶排列。

严格按照以下格式输出，每门课程一行，不要输出其他内容：
1. 课程名称：<课程名>，简介：<一句话简介>，难度：<初级|中级|高级>
"""


def course_listing(topic: str, count: int = 5) -> list[dict[str, str]]:
    return [{"role": "user", "content": COURSE_LISTING_PROMPT.format(topic=topic, count=count)}]


# =============================================================================
# Feynman teaching
# =============================================================================

FEYNMAN_PROMPT = """你是一位使用费曼学习法的老师，正在讲授课程「{course}」（难度：{difficulty}）。
课程简介：{description}
本次内容：{scope}

学习者当前状态：{state}

请按费曼学习法组织讲解：
1. 用最简单的语言解释核心概念，像讲给完全没有基础的人听
2. 用生活中的类比帮助理解
3. 指出学习者最容易出现理解漏洞的地方
4. 针对这些漏洞重新讲解，并给出一个简短的例子
5. 最后提出 2-3 个自测问题，让学习者用自己的话复述
"""


def _mastery_state(mastery: ModuleMastery | None) -> str:
    if mastery is None:
        return "第一次学习该内容，请从零讲起。"
    if mastery.mastery_level < 3.0:
        return (
            f"已学习 {mastery.learning_count} 次，掌握程度 {mastery.mastery_level:.1f}/5，"
            "基础尚不牢固，请重点巩固核心概念。"
        )
    return (
        f"已学习 {mastery.learning_count} 次，掌握程度 {mastery.mastery_level:.1f}/5，"
        "请在复述要点后深入到应用和易错点。"
    )


def feynman_teaching(
    course: Course,
    module: str | None = None,
    mastery: ModuleMastery | None = None,
) -> list[dict[str, str]]:
    """Teaching prompt for a course, or one of its modules."""
    scope = f"模块「{module}」" if module else f"课程全部内容（{'、'.join(course.modules)}）"
    content = FEYNMAN_PROMPT.format(
        course=course.name,
        difficulty=course.difficulty.value,
        description=course.description or "无",
        scope=scope,
        state=_mastery_state(mastery),
    )
    return [{"role": "user", "content": content}]


# =============================================================================
# Review plan / exercises / memory points
# =============================================================================

REVIEW_PLAN_PROMPT = """作为一个学习顾问，根据以下信息为{subject}制定基于高效学习方法论和遗忘曲线的复习计划：

高效学习方法论：
{learning_efficiency}

遗忘曲线复习原理：
{forgetting_curve}

请制定一个详细的复习计划，包括：
1. 基于遗忘曲线的个性化复习间隔
2. 高效学习方法的应用建议
3. 每日复习内容和时间安排
4. 复习效果评估方法
5. 知识点优先级排序
"""

EXERCISES_PROMPT = """作为一个{subject}老师，请为{topic}主题生成{count}道{difficulty}难度的习题。

习题格式：
1. 题目内容
答案：
解析：

请确保习题质量高，能够有效测试学生对知识点的理解。
"""

MEMORY_POINTS_PROMPT = """作为一个学习顾问，基于以下学习历史记录和遗忘曲线原理，分析并生成需要加强记忆的知识点：

学习历史记录：
{history}

遗忘曲线原理：
{forgetting_curve}

请分析这些学习记录，找出：
1. 关键知识点
2. 可能已经遗忘的内容
3. 需要加强记忆的重点
4. 基于遗忘曲线的复习建议

请以清晰的结构呈现，突出需要加强记忆的知识点。
"""


def review_plan(
    subject: str,
    learning_efficiency: str | None = None,
    forgetting_curve: str | None = None,
) -> list[dict[str, str]]:
    content = REVIEW_PLAN_PROMPT.format(
        subject=subject,
        learning_efficiency=learning_efficiency or NO_LEARNING_EFFICIENCY,
        forgetting_curve=forgetting_curve or NO_FORGETTING_CURVE,
    )
    return [{"role": "user", "content": content}]


def exercises(subject: str, topic: str, difficulty: str, count: int) -> list[dict[str, str]]:
    content = EXERCISES_PROMPT.format(
        subject=subject, topic=topic, difficulty=difficulty, count=count
    )
    return [{"role": "user", "content": content}]


def memory_points(
    conversations: dict[str, list[dict[str, str]]],
    forgetting_curve: str | None = None,
) -> list[dict[str, str]]:
    """
    Memory-point prompt over the whole conversation history.

    Args:
        conversations: Messages keyed by day, oldest first
    """
    history = "".join(
        f"\n=== {day} ===\n{to_prompt(messages)}\n" for day, messages in conversations.items()
    )
    content = MEMORY_POINTS_PROMPT.format(
        history=history,
        forgetting_curve=forgetting_curve or NO_FORGETTING_CURVE,
    )
    return [{"role": "user", "content": content}]
