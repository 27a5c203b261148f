"""
Typer CLI for studymate.

Commands:
    studymate configure            - Save credentials/endpoints (or --show them)
    studymate record               - Record a study session
    studymate stats                - Study time, credibility and mastery summary
    studymate courses suggest      - Generate a course list for a topic
    studymate courses list         - Show the current course list
    studymate courses select       - Pick a course ("2", "第二个", "选 Python")
    studymate courses add-module   - Add a custom module to the current course
    studymate teach                - Feynman-method lesson for a course/module
    studymate review               - Modules and topics due for review
    studymate chat                 - Talk in today's conversation
    studymate plan                 - Review plan for a subject
    studymate exercises            - Generate exercises
    studymate memory               - Memory points from the conversation history
    studymate history              - List conversation days or show one
    studymate reminders            - Show or change reminder settings
    studymate sync pull|push       - Merge sessions with the Notion database
    studymate watch                - Run reminder checks and history refresh

Usage:
    studymate --help
    studymate record Python 基础概念 --minutes 45 --summary "..."
    studymate courses suggest 机器学习
    studymate teach 核心原理
"""

from __future__ import annotations

import asyncio
import sys
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, TypeVar

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from config import get_settings
from studymate.core import clock
from studymate.core.courses import Course
from studymate.core.mastery import MasteryModel
from studymate.delivery.scheduler import ConsoleNotifier, PeriodicTask, ReminderScheduler
from studymate.delivery.tutor import Tutor
from studymate.errors import StudymateError
from studymate.progress.records import SessionStatus
from studymate.progress.review_policy import ElapsedDaysReviewPolicy
from studymate.state import AppState, save_user_config
from studymate.sync.notion_client import NotionClient
from studymate.sync.progress_sync import ProgressSync

T = TypeVar("T")

app = typer.Typer(
    help="studymate: spaced-repetition learning assistant",
    no_args_is_help=True,
)
courses_app = typer.Typer(help="Course suggestions and selection")
sync_app = typer.Typer(help="Sync study sessions with Notion")
app.add_typer(courses_app, name="courses")
app.add_typer(sync_app, name="sync")

console = Console()

LOG_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}"


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging before any command runs."""
    settings = get_settings()
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else settings.log_level, format=LOG_FORMAT)
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="1 MB", retention=3)


# ========================================
# Helpers
# ========================================


def _with_state(action: Callable[[AppState], Awaitable[T]]) -> T:
    """Load the state, run an async action, close resources, map user errors."""

    async def runner() -> T:
        state = await AppState.load()
        try:
            return await action(state)
        finally:
            await state.close()

    try:
        return asyncio.run(runner())
    except StudymateError as e:
        rprint(f"[red]{e}[/red]")
        raise typer.Exit(code=1)


def _print_generated(title: str, text: str | None, failure: str) -> None:
    if text is None:
        rprint(f"[red]{failure}[/red]")
        raise typer.Exit(code=1)
    console.print(Panel(Markdown(text), title=f"[bold cyan]{title}[/bold cyan]"))


def _course_table(courses: list[Course], current_id: str | None = None) -> Table:
    table = Table(title="Courses", show_header=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Course", style="cyan")
    table.add_column("Difficulty")
    table.add_column("Modules", style="dim")
    for index, course in enumerate(courses, start=1):
        marker = " [green]●[/green]" if course.id == current_id else ""
        table.add_row(str(index), f"{course.name}{marker}", course.difficulty.value, "、".join(course.modules))
    return table


# ========================================
# CONFIGURATION
# ========================================


@app.command("configure")
def configure(
    github_token: str | None = typer.Option(None, "--github-token", help="GitHub token"),
    repo_owner: str | None = typer.Option(None, "--repo-owner", help="Repository owner"),
    repo_name: str | None = typer.Option(None, "--repo-name", help="Repository name"),
    ai_api_key: str | None = typer.Option(None, "--api-key", help="Generation API key"),
    proxy_url: str | None = typer.Option(None, "--proxy-url", help="Generation proxy URL"),
    ai_model: str | None = typer.Option(None, "--model", help="Model name"),
    notion_api_key: str | None = typer.Option(None, "--notion-key", help="Notion API key"),
    sessions_db_id: str | None = typer.Option(None, "--sessions-db", help="Notion sessions database ID"),
    ui_theme: str | None = typer.Option(None, "--theme", help="light or dark"),
    show: bool = typer.Option(False, "--show", help="Show the effective configuration"),
) -> None:
    """Save credentials and endpoints to the local cache."""
    updates = {
        "github_token": github_token,
        "repo_owner": repo_owner,
        "repo_name": repo_name,
        "ai_api_key": ai_api_key,
        "proxy_url": proxy_url,
        "ai_model": ai_model,
        "notion_api_key": notion_api_key,
        "sessions_db_id": sessions_db_id,
        "ui_theme": ui_theme,
    }
    updates = {k: v for k, v in updates.items() if v is not None}

    if ui_theme is not None and ui_theme not in ("light", "dark"):
        rprint("[red]Theme must be 'light' or 'dark'[/red]")
        raise typer.Exit(code=1)

    async def action(state: AppState) -> dict[str, Any]:
        if updates:
            save_user_config(state.cache, updates)
            rprint(f"[green]✓[/green] Saved {', '.join(sorted(updates))}")
        return state.settings.model_copy(update=updates).public_dict()

    effective = _with_state(action)
    if show or not updates:
        table = Table(title="Configuration", show_header=True)
        table.add_column("Setting", style="cyan")
        table.add_column("Value")
        for key, value in effective.items():
            table.add_row(key, "" if value is None else str(value))
        console.print(table)


# ========================================
# PROGRESS
# ========================================


@app.command("record")
def record(
    subject: str = typer.Argument(..., help="Subject studied"),
    module: str = typer.Argument(..., help="Module studied"),
    minutes: int = typer.Option(0, "--minutes", "-m", help="Duration in minutes"),
    status: SessionStatus = typer.Option(SessionStatus.FOCUSED, "--status", "-s", help="Session status"),
    summary: str = typer.Option("", "--summary", help="What you learned"),
    challenge: str = typer.Option("", "--challenge", help="What was difficult"),
) -> None:
    """Record a study session."""

    async def action(state: AppState):
        session = state.progress.record(subject, module, minutes, status.value, summary, challenge)
        state.save_sessions()
        return session

    session = _with_state(action)
    rprint(
        f"[green]✓[/green] Recorded {session.duration_minutes} min of "
        f"[cyan]{session.subject} / {session.module}[/cyan] "
        f"(credibility: [bold]{session.credibility.value}[/bold])"
    )


@app.command("stats")
def stats() -> None:
    """Show study time, credibility and mastery statistics."""

    async def action(state: AppState):
        now = clock.now()
        return {
            "today": state.progress.minutes_on(now.date()),
            "week": state.progress.aggregate(7, now),
            "month": state.progress.aggregate(30, now),
            "all": state.progress.aggregate("all", now),
            "credibility": state.progress.overall_credibility().value,
            "mastery": state.mastery.statistics(now),
        }

    data = _with_state(action)

    table = Table(title="Study Time", show_header=True)
    table.add_column("Window", style="cyan")
    table.add_column("Minutes", justify="right", style="green")
    table.add_column("Sessions", justify="right")
    table.add_row("Today", str(data["today"]), "-")
    for label, key in (("7 days", "week"), ("30 days", "month"), ("All time", "all")):
        table.add_row(label, str(data[key]["totalMinutes"]), str(data[key]["sessionCount"]))
    console.print(table)
    rprint(f"  Overall credibility: [bold]{data['credibility']}[/bold]")

    mastery = data["mastery"]
    rprint(
        f"  Courses: {mastery.course_count}  Modules: {mastery.module_count}  "
        f"Average mastery: {mastery.average_mastery}  Mastered: {mastery.mastered_count}"
    )
    rprint(f"  Due for review: {mastery.due_count} ([red]{mastery.urgent_count} urgent[/red])")


# ========================================
# COURSES & TEACHING
# ========================================


@courses_app.command("suggest")
def courses_suggest(
    topic: str = typer.Argument(..., help="What you want to learn"),
    count: int = typer.Option(5, "--count", "-n", help="Number of courses"),
) -> None:
    """Generate a course list for a topic."""

    async def action(state: AppState):
        return await Tutor(state).suggest_courses(topic, count)

    courses = _with_state(action)
    if not courses:
        rprint("[yellow]No courses could be generated. Check the generation settings.[/yellow]")
        raise typer.Exit(code=1)
    console.print(_course_table(courses))
    rprint("  Select with: [bold]studymate courses select 1[/bold]")


@courses_app.command("list")
def courses_list() -> None:
    """Show the current course list."""

    async def action(state: AppState) -> MasteryModel:
        return state.mastery

    model = _with_state(action)
    if not model.available_courses:
        rprint("[yellow]No courses yet. Run: studymate courses suggest <topic>[/yellow]")
        return
    console.print(_course_table(model.available_courses, model.current_course_id))


@courses_app.command("select")
def courses_select(
    choice: str = typer.Argument(..., help='Index, "第二个", "选 Python" or a name'),
) -> None:
    """Select a course from the current list."""

    async def action(state: AppState):
        return await Tutor(state).select_course(choice)

    course = _with_state(action)
    if course is None:
        rprint(f"[red]'{choice}' does not match any listed course[/red]")
        raise typer.Exit(code=1)
    rprint(f"[green]✓[/green] Current course: [cyan]{course.name}[/cyan]")
    rprint(f"  Modules: {'、'.join(course.modules)}")


@courses_app.command("add-module")
def courses_add_module(
    name: str = typer.Argument(..., help="Module name"),
) -> None:
    """Add a custom module to the current course."""

    async def action(state: AppState):
        course = state.mastery.current_course
        if course is None:
            return None, False
        added = course.add_custom_module(name)
        if added:
            await state.save_mastery()
        return course, added

    course, added = _with_state(action)
    if course is None:
        rprint("[red]No course selected. Run: studymate courses select <choice>[/red]")
        raise typer.Exit(code=1)
    if added:
        rprint(f"[green]✓[/green] Added module [cyan]{name.strip()}[/cyan] to {course.name}")
    else:
        rprint(f"[yellow]{course.name} already has a module named {name.strip()}[/yellow]")


@app.command("teach")
def teach(
    module: str | None = typer.Argument(None, help="Module to learn (omit for the whole course)"),
    course_choice: str | None = typer.Option(None, "--course", "-c", help="Select a course first"),
) -> None:
    """Feynman-method lesson for the current course."""

    async def action(state: AppState):
        tutor = Tutor(state)
        course = (
            await tutor.select_course(course_choice) if course_choice else state.mastery.current_course
        )
        if course is None:
            return None, None
        return course, await tutor.teach(course, module)

    course, result = _with_state(action)
    if course is None:
        rprint("[red]No course selected. Run: studymate courses select <choice>[/red]")
        raise typer.Exit(code=1)
    if result is None:
        rprint("[red]Lesson generation failed, mastery unchanged. Check the generation settings.[/red]")
        raise typer.Exit(code=1)

    lesson, mastery = result
    title = f"{course.name} / {module}" if module else course.name
    _print_generated(title, lesson, "")
    if mastery is not None:
        rprint(
            f"  Mastery [bold]{mastery.mastery_level:.1f}[/bold]/5  "
            f"next review {mastery.next_review_date:%Y-%m-%d %H:%M}"
        )


@app.command("review")
def review() -> None:
    """Show modules and topics due for review."""

    async def action(state: AppState):
        now = clock.now()
        policy = ElapsedDaysReviewPolicy(state.progress, state.reminders.review_after_days)
        return state.mastery.due_reviews(now), policy.due_topics(now), now

    items, topics, now = _with_state(action)

    if items:
        table = Table(title="Modules Due (forgetting curve)", show_header=True)
        table.add_column("Course", style="cyan")
        table.add_column("Module")
        table.add_column("Mastery", justify="right")
        table.add_column("Overdue", justify="right")
        for item in items:
            level = f"[red]{item.mastery_level:.1f}[/red]" if item.is_urgent else f"{item.mastery_level:.1f}"
            table.add_row(item.course_name, item.module, level, f"{item.days_overdue(now)}d")
        console.print(table)
    else:
        rprint("[green]No modules due for review[/green]")

    if topics:
        table = Table(title="Topics Not Studied Recently", show_header=True)
        table.add_column("Topic", style="cyan")
        table.add_column("Days Since", justify="right")
        for topic in topics:
            table.add_row(topic.label, str(topic.days_since))
        console.print(table)


# ========================================
# GENERATION
# ========================================


@app.command("chat")
def chat(message: str = typer.Argument(..., help="Your message")) -> None:
    """Talk in today's conversation."""

    async def action(state: AppState):
        return await Tutor(state).chat(message)

    reply = _with_state(action)
    _print_generated("助手", reply, "Generation failed. Check the proxy settings.")


@app.command("plan")
def plan(subject: str = typer.Argument(..., help="Subject to plan reviews for")) -> None:
    """Generate a review plan based on the forgetting curve."""

    async def action(state: AppState):
        return await Tutor(state).review_plan(subject)

    _print_generated("复习计划", _with_state(action), "生成复习计划失败，请检查API配置！")


@app.command("exercises")
def exercises(
    subject: str = typer.Argument(..., help="Subject"),
    topic: str = typer.Argument(..., help="Topic"),
    difficulty: str = typer.Option("中等", "--difficulty", "-d", help="Difficulty"),
    count: int = typer.Option(5, "--count", "-n", help="Number of exercises"),
) -> None:
    """Generate exercises for a topic."""

    async def action(state: AppState):
        return await Tutor(state).exercises(subject, topic, difficulty, count)

    _print_generated("习题", _with_state(action), "生成习题失败，请检查API配置！")


@app.command("memory")
def memory() -> None:
    """Generate memory points from the whole conversation history."""

    async def action(state: AppState):
        return await Tutor(state).memory_points()

    _print_generated("加强记忆的知识点", _with_state(action), "生成加强记忆知识点失败，请检查API配置！")


# ========================================
# HISTORY & REMINDERS
# ========================================


@app.command("history")
def history(day: str | None = typer.Argument(None, help="Day to show (YYYY-MM-DD)")) -> None:
    """List conversation days, or show one day's conversation."""

    async def action(state: AppState):
        if day:
            return await state.conversations.load(day)
        return await state.conversations.list_days()

    result = _with_state(action)
    if day is None:
        if not result:
            rprint("[yellow]No conversations yet[/yellow]")
        for name in result:
            rprint(f"  {name}")
        return

    if not result:
        rprint(f"[yellow]No conversation on {day}[/yellow]")
        return
    for message in result:
        speaker = "[bold green]用户[/bold green]" if message["role"] == "user" else "[bold cyan]助手[/bold cyan]"
        console.print(speaker)
        console.print(Markdown(message["content"]))


@app.command("reminders")
def reminders(
    daily: bool | None = typer.Option(None, "--daily/--no-daily", help="Daily study reminder"),
    reminder_time: str | None = typer.Option(None, "--time", help="Daily reminder time (HH:MM)"),
    review_enabled: bool | None = typer.Option(None, "--review/--no-review", help="Review reminder"),
    after_days: int | None = typer.Option(None, "--after-days", help="Days before a topic is due"),
) -> None:
    """Show or change reminder settings."""
    if reminder_time is not None:
        try:
            reminder_time = datetime.strptime(reminder_time, "%H:%M").strftime("%H:%M")
        except ValueError:
            rprint("[red]Time must be HH:MM[/red]")
            raise typer.Exit(code=1)

    async def action(state: AppState):
        settings = state.reminders
        if daily is not None:
            settings.daily_enabled = daily
        if reminder_time is not None:
            settings.reminder_time = reminder_time
        if review_enabled is not None:
            settings.review_enabled = review_enabled
        if after_days is not None:
            settings.review_after_days = max(1, after_days)
        state.save_reminders()
        return settings

    settings = _with_state(action)
    rprint(f"  Daily reminder:  {'on' if settings.daily_enabled else 'off'} at {settings.reminder_time}")
    rprint(
        f"  Review reminder: {'on' if settings.review_enabled else 'off'} "
        f"after {settings.review_after_days} days"
    )


@app.command("watch")
def watch(
    once: bool = typer.Option(False, "--once", help="Run a single reminder check and exit"),
) -> None:
    """Run the reminder check and conversation-history refresh until interrupted."""

    async def action(state: AppState):
        notifier = ConsoleNotifier(enabled=state.settings.notifications_enabled, console=console)
        scheduler = ReminderScheduler(
            store=state.progress,
            settings=state.reminders,
            notifier=notifier,
            daily_minimum_minutes=state.settings.daily_minimum_minutes,
        )
        if once:
            return scheduler.check()

        known_days: set[str] = set(await state.conversations.list_days())

        async def refresh_history() -> None:
            days = await state.conversations.list_days()
            for new_day in sorted(set(days) - known_days):
                rprint(f"  [dim]New conversation: {new_day}[/dim]")
            known_days.update(days)

        tasks = [
            PeriodicTask("reminders", state.settings.reminder_interval_seconds, scheduler.check, run_immediately=True),
            PeriodicTask("history", state.settings.history_refresh_seconds, refresh_history),
        ]
        for task in tasks:
            task.start()
        rprint("[bold cyan]Watching[/bold cyan] (Ctrl+C to stop)")
        try:
            await asyncio.Event().wait()
        finally:
            for task in tasks:
                await task.stop()

    try:
        fired = _with_state(action)
    except KeyboardInterrupt:
        rprint("\n[dim]Stopped[/dim]")
        return
    if once and not fired:
        rprint("[green]No reminders due[/green]")


# ========================================
# NOTION SYNC
# ========================================


@sync_app.command("pull")
def sync_pull(
    days: int = typer.Option(30, "--days", help="How many days back to fetch"),
) -> None:
    """Merge sessions from the Notion sessions database."""

    async def action(state: AppState):
        notion = NotionClient(state.settings)
        if not notion.ready:
            return None
        end = clock.now().date()
        result = ProgressSync(state.progress, notion).pull(end - timedelta(days=days), end)
        state.save_sessions()
        return result

    stats = _with_state(action)
    if stats is None:
        rprint("[red]Notion is not configured. Set NOTION_API_KEY and SESSIONS_DB_ID.[/red]")
        raise typer.Exit(code=1)
    _print_sync_stats("Notion Pull", stats.to_dict())


@sync_app.command("push")
def sync_push(
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview without writing to Notion"),
) -> None:
    """Create Notion pages for sessions that were never synced."""

    async def action(state: AppState):
        notion = NotionClient(state.settings)
        if not notion.ready:
            return None
        result = ProgressSync(state.progress, notion).push(dry_run=dry_run)
        state.save_sessions()
        return result

    stats = _with_state(action)
    if stats is None:
        rprint("[red]Notion is not configured. Set NOTION_API_KEY and SESSIONS_DB_ID.[/red]")
        raise typer.Exit(code=1)
    _print_sync_stats("Notion Push", stats.to_dict())


def _print_sync_stats(title: str, counts: dict[str, Any]) -> None:
    table = Table(title=title, show_header=True)
    table.add_column("Added", justify="right", style="green")
    table.add_column("Updated", justify="right", style="yellow")
    table.add_column("Skipped", justify="right", style="dim")
    table.add_column("Errors", justify="right", style="red")
    table.add_row(
        str(counts["added"]),
        str(counts["updated"]),
        str(counts["skipped"]),
        str(counts["errors"]) if counts["errors"] > 0 else "-",
    )
    console.print(table)
    for detail in counts["error_details"]:
        rprint(f"  [red]•[/red] {detail}")


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
