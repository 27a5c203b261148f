"""
Reminder scheduler.

Evaluates two independent reminders on every tick:
- Daily reminder: at the configured HH:MM, if today's study time is below the
  daily minimum
- Review reminder: if the review policy reports due topics

PeriodicTask runs a coroutine on a fixed period on the event loop until its
stop event is set; the watch command runs the reminder check and the
history refresh as two such tasks.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Protocol

from loguru import logger
from rich.console import Console
from rich.panel import Panel

from studymate.core import clock
from studymate.progress.records import ProgressStore
from studymate.progress.review_policy import (
    DEFAULT_REVIEW_AFTER_DAYS,
    ElapsedDaysReviewPolicy,
    ReviewPolicy,
)

DAILY_MINIMUM_MINUTES = 30


@dataclass
class ReminderSettings:
    """User reminder preferences (persisted under reminder_settings)."""

    daily_enabled: bool = True
    reminder_time: str = "20:00"
    review_enabled: bool = True
    review_after_days: int = DEFAULT_REVIEW_AFTER_DAYS

    def to_dict(self) -> dict[str, Any]:
        return {
            "dailyReminder": self.daily_enabled,
            "reminderTime": self.reminder_time,
            "reviewReminder": self.review_enabled,
            "reviewAfterDays": self.review_after_days,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ReminderSettings:
        data = data or {}
        return cls(
            daily_enabled=bool(data.get("dailyReminder", True)),
            reminder_time=str(data.get("reminderTime", "20:00")),
            review_enabled=bool(data.get("reviewReminder", True)),
            review_after_days=int(data.get("reviewAfterDays", DEFAULT_REVIEW_AFTER_DAYS)),
        )


# =============================================================================
# Notification sinks
# =============================================================================


class Notifier(Protocol):
    def notify(self, title: str, body: str) -> None:
        ...


class ConsoleNotifier:
    """Prints notifications as rich panels; silent when not permitted."""

    def __init__(self, enabled: bool = True, console: Console | None = None):
        self.enabled = enabled
        self.console = console or Console()

    def notify(self, title: str, body: str) -> None:
        if not self.enabled:
            logger.debug(f"Notification suppressed: {title}")
            return
        self.console.print(Panel(body, title=f"[bold]{title}[/bold]", border_style="yellow"))


# =============================================================================
# Scheduler
# =============================================================================


@dataclass
class ReminderScheduler:
    """
    Checks reminder conditions.

    Usage:
        scheduler = ReminderScheduler(store, settings, notifier)
        scheduler.check()
    """

    store: ProgressStore
    settings: ReminderSettings
    notifier: Notifier
    policy: ReviewPolicy | None = None
    daily_minimum_minutes: int = DAILY_MINIMUM_MINUTES

    # Slots already notified, so a reminder fires once per slot
    _daily_slot: str | None = field(default=None, repr=False)
    _review_day: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.policy is None:
            self.policy = ElapsedDaysReviewPolicy(self.store, self.settings.review_after_days)

    def check(self, now: datetime | None = None) -> list[str]:
        """
        Evaluate both reminders.

        Returns:
            Titles of the notifications emitted on this tick
        """
        now = now or clock.now()
        fired: list[str] = []
        if self._check_daily(now):
            fired.append("学习提醒")
        if self._check_review(now):
            fired.append("复习提醒")
        return fired

    def _check_daily(self, now: datetime) -> bool:
        if not self.settings.daily_enabled:
            return False
        if now.strftime("%H:%M") != self.settings.reminder_time:
            return False
        slot = now.strftime("%Y-%m-%d %H:%M")
        if slot == self._daily_slot:
            return False

        studied = self.store.minutes_on(now.date())
        if studied >= self.daily_minimum_minutes:
            return False

        self._daily_slot = slot
        self.notifier.notify(
            "学习提醒",
            f"今天已学习 {studied} 分钟，距离每日目标 {self.daily_minimum_minutes} 分钟"
            f"还差 {self.daily_minimum_minutes - studied} 分钟。",
        )
        return True

    def _check_review(self, now: datetime) -> bool:
        if not self.settings.review_enabled:
            return False
        day = now.strftime("%Y-%m-%d")
        if day == self._review_day:
            return False

        topics = self.policy.due_topics(now)
        if not topics:
            return False

        self._review_day = day
        lines = "\n".join(f"• {topic.label}（{topic.days_since} 天）" for topic in topics)
        self.notifier.notify("复习提醒", f"以下内容需要复习：\n{lines}")
        logger.info(f"Review reminder: {len(topics)} topics due ({self.policy.name})")
        return True


# =============================================================================
# Periodic task
# =============================================================================


@dataclass
class PeriodicTask:
    """
    Runs a callback every `interval_seconds` until stopped.

    Usage:
        task = PeriodicTask("reminders", 60, check)
        task.start()
        # ... event loop runs ...
        await task.stop()
    """

    name: str
    interval_seconds: float
    callback: Callable[[], Awaitable[Any] | Any]
    run_immediately: bool = False

    runs: int = 0
    _task: asyncio.Task | None = field(default=None, repr=False)
    _stop_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the loop on the running event loop."""
        if self.is_running:
            logger.warning(f"Periodic task {self.name} already running")
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.debug(f"Periodic task {self.name} started (interval: {self.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the loop and wait for the current tick to finish."""
        if not self.is_running:
            return
        self._stop_event.set()
        await self._task
        logger.debug(f"Periodic task {self.name} stopped after {self.runs} runs")

    async def _loop(self) -> None:
        if self.run_immediately:
            await self._tick()
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
                break  # Stop event was set
            except asyncio.TimeoutError:
                pass
            await self._tick()

    async def _tick(self) -> None:
        self.runs += 1
        try:
            result = self.callback()
            if asyncio.iscoroutine(result):
                await result
        except Exception as exc:
            logger.warning(f"Periodic task {self.name} failed: {exc}")
