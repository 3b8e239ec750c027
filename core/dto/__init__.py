"""Data Transfer Objects for the skill progression engine."""

from .progress import (
    AchievementTotals,
    ActivityItem,
    MonthlyPoints,
    PathTotals,
    PointItem,
    PointsHistory,
    ProgressSummary,
    Recommendation,
    SkillTotals,
    SubjectProgress,
)
from .skills import (
    AchievementDefinition,
    AchievementState,
    AchievementType,
    LearnerPathState,
    LearningPathDefinition,
    PathState,
    PathStatus,
    SkillDefinition,
    SkillState,
    SkillStatus,
)
from .snapshots import (
    Achievement,
    CompletionResult,
    PathSnapshot,
    SkillSnapshot,
)

__all__ = [
    # Enums
    "SkillStatus",
    "PathStatus",
    "AchievementType",
    # Definitions
    "SkillDefinition",
    "LearningPathDefinition",
    "AchievementDefinition",
    # Learner state
    "SkillState",
    "PathState",
    "AchievementState",
    "LearnerPathState",
    # Snapshots
    "SkillSnapshot",
    "PathSnapshot",
    "Achievement",
    "CompletionResult",
    # Progress read models
    "Recommendation",
    "PathTotals",
    "SkillTotals",
    "AchievementTotals",
    "SubjectProgress",
    "ActivityItem",
    "PointItem",
    "MonthlyPoints",
    "PointsHistory",
    "ProgressSummary",
]
