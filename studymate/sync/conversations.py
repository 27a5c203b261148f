"""
Daily conversation log (conversations/<YYYY-MM-DD>.json).

Each file is an array of {role, content} messages for one day.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from loguru import logger

from studymate.core import clock
from studymate.storage.local_cache import CONVERSATION_PREFIX, CacheKey, LocalCache
from studymate.sync.reconciler import Reconciler

CONVERSATIONS_DIR = "conversations"


def day_name(day: date | None = None) -> str:
    """File stem for a day, e.g. 2024-05-01."""
    return (day or clock.now().date()).strftime("%Y-%m-%d")


def conversation_path(day: str) -> str:
    return f"{CONVERSATIONS_DIR}/{day}.json"


def _valid_messages(value: Any) -> list[dict[str, str]]:
    if not isinstance(value, list):
        return []
    return [
        {"role": str(m["role"]), "content": str(m["content"])}
        for m in value
        if isinstance(m, dict) and "role" in m and "content" in m
    ]


class ConversationLog:
    """Loads, saves and lists daily conversations."""

    def __init__(self, reconciler: Reconciler, cache: LocalCache):
        self._reconciler = reconciler
        self._cache = cache

    async def load(self, day: str | None = None) -> list[dict[str, str]]:
        """Messages for a day (today by default); empty if none."""
        day = day or day_name()
        value = await self._reconciler.load(conversation_path(day), CacheKey.conversation(day), [])
        return _valid_messages(value)

    async def save(self, messages: list[dict[str, str]], day: str | None = None) -> bool:
        """Persist a day's messages. Returns True if the remote copy was updated."""
        day = day or day_name()
        return await self._reconciler.save(
            conversation_path(day),
            CacheKey.conversation(day),
            messages,
            f"Update conversation: {day}.json",
        )

    async def list_days(self) -> list[str]:
        """Days with a conversation, newest first."""
        names = await self._reconciler.list_names(CONVERSATIONS_DIR)
        if names is None:
            days = [key[len(CONVERSATION_PREFIX):] for key in self._cache.keys(CONVERSATION_PREFIX)]
        else:
            days = [name[: -len(".json")] for name in names if name.endswith(".json")]
        return sorted(days, reverse=True)

    async def load_all(self) -> dict[str, list[dict[str, str]]]:
        """All conversations keyed by day, oldest first."""
        history: dict[str, list[dict[str, str]]] = {}
        for day in sorted(await self.list_days()):
            messages = await self.load(day)
            if messages:
                history[day] = messages
        logger.debug(f"Loaded {len(history)} conversation days")
        return history
