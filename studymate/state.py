"""
Application state.

One AppState is built per process (CLI command or watch loop) and passed to
every component that needs it. Nothing here is module-global.

Loading order:
1. Settings from env/.env, overlaid with user overrides cached under `config`
2. Course progress: remote snapshot, else cached snapshot, else empty
3. Study sessions and reminder settings from the local cache
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loguru import logger

from config import USER_CONFIG_FIELDS, Settings, get_settings
from studymate.core.mastery import MasteryModel
from studymate.delivery.scheduler import ReminderSettings
from studymate.errors import InputValidationError
from studymate.generation.oracle import GenerationClient
from studymate.progress.records import ProgressStore
from studymate.storage.github_store import GitHubFileStore
from studymate.storage.local_cache import CacheKey, LocalCache
from studymate.sync.conversations import ConversationLog
from studymate.sync.course_progress import CourseProgressRepository
from studymate.sync.reconciler import Reconciler


def apply_user_config(settings: Settings, cache: LocalCache) -> Settings:
    """Layer cached user overrides on top of environment settings."""
    overrides = cache.get_json(CacheKey.CONFIG)
    if not isinstance(overrides, dict):
        return settings
    update = {k: v for k, v in overrides.items() if k in USER_CONFIG_FIELDS and v not in (None, "")}
    return settings.model_copy(update=update) if update else settings


def save_user_config(cache: LocalCache, updates: dict[str, Any]) -> dict[str, Any]:
    """
    Merge user overrides into the cached configuration blob.

    Raises:
        InputValidationError: If a key is not user-configurable
    """
    unknown = sorted(set(updates) - set(USER_CONFIG_FIELDS))
    if unknown:
        raise InputValidationError(f"Unknown configuration keys: {', '.join(unknown)}")

    current = cache.get_json(CacheKey.CONFIG)
    merged = dict(current) if isinstance(current, dict) else {}
    merged.update({k: v for k, v in updates.items() if v is not None})
    cache.set_json(CacheKey.CONFIG, merged)
    return merged


@dataclass
class AppState:
    """Everything a command needs, wired together."""

    settings: Settings
    cache: LocalCache
    store: GitHubFileStore
    reconciler: Reconciler
    oracle: GenerationClient
    course_progress: CourseProgressRepository
    conversations: ConversationLog
    mastery: MasteryModel
    progress: ProgressStore
    reminders: ReminderSettings

    @classmethod
    async def load(
        cls,
        settings: Settings | None = None,
        cache: LocalCache | None = None,
    ) -> AppState:
        """Build the state from settings, the local cache and the remote store."""
        settings = settings or get_settings()
        cache = cache or LocalCache(settings.local_cache_url)
        settings = apply_user_config(settings, cache)

        store = GitHubFileStore(settings)
        reconciler = Reconciler(store, cache)
        course_progress = CourseProgressRepository(reconciler)

        state = cls(
            settings=settings,
            cache=cache,
            store=store,
            reconciler=reconciler,
            oracle=GenerationClient(settings),
            course_progress=course_progress,
            conversations=ConversationLog(reconciler, cache),
            mastery=await course_progress.load(),
            progress=ProgressStore.from_list(cache.get_json(CacheKey.STUDY_SESSIONS)),
            reminders=ReminderSettings.from_dict(cache.get_json(CacheKey.REMINDER_SETTINGS)),
        )
        logger.debug(
            f"State loaded: {len(state.progress.sessions)} sessions, "
            f"{len(state.mastery.learned_courses)} learned courses"
        )
        return state

    # =========================================================================
    # Persistence
    # =========================================================================

    def save_sessions(self) -> None:
        self.cache.set_json(CacheKey.STUDY_SESSIONS, self.progress.to_list())

    def save_reminders(self) -> None:
        self.cache.set_json(CacheKey.REMINDER_SETTINGS, self.reminders.to_dict())

    async def save_mastery(self) -> bool:
        """Persist the mastery model. Returns True if the remote copy was updated."""
        return await self.course_progress.save(self.mastery)

    async def close(self) -> None:
        await self.store.close()
        await self.oracle.close()
        self.cache.close()
