"""
Course progress persistence (courseList/courseProgress.json).
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from studymate.core.mastery import MasteryModel
from studymate.storage.local_cache import CacheKey
from studymate.sync.reconciler import Reconciler

COURSE_PROGRESS_PATH = "courseList/courseProgress.json"


def parse_snapshot(data: Any) -> MasteryModel:
    """Build a model from snapshot JSON; raises on anything but a well-formed object."""
    if not isinstance(data, dict):
        raise TypeError(f"course progress snapshot must be an object, got {type(data).__name__}")
    return MasteryModel.from_dict(data)


class CourseProgressRepository:
    """Saves and loads the mastery model snapshot."""

    def __init__(self, reconciler: Reconciler):
        self._reconciler = reconciler

    async def save(self, model: MasteryModel) -> bool:
        """Persist the model. Returns True if the remote copy was updated."""
        return await self._reconciler.save(
            COURSE_PROGRESS_PATH,
            CacheKey.COURSE_PROGRESS,
            model.to_dict(),
            "Update course progress",
        )

    async def load(self) -> MasteryModel:
        """Load the model; with no usable snapshot on either side, an empty model."""
        model = await self._reconciler.load(
            COURSE_PROGRESS_PATH,
            CacheKey.COURSE_PROGRESS,
            parse=parse_snapshot,
        )
        if model is None:
            logger.info("No course progress snapshot found; starting fresh")
            return MasteryModel()
        return model
