"""Narrow interfaces the core depends on instead of concrete storage."""

from .progress_store import (
    ProgressStore,
    achievement_key,
    path_key,
    skill_key,
)

__all__ = [
    "ProgressStore",
    "skill_key",
    "path_key",
    "achievement_key",
]
