"""Read models handed to callers.

Snapshots are immutable, point-in-time views. Lock flags and rollups in them
are computed by the engine; consumers must not recompute or cache them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from .skills import PathStatus, SkillStatus


@dataclass(frozen=True)
class SkillSnapshot:
    """A skill's definition joined with one learner's state and lock flag."""

    skill_id: str
    path_id: str
    title: str
    skill_type: str
    points: int
    difficulty: int
    estimated_minutes: Optional[int]
    prerequisites: Tuple[str, ...]
    order_index: int
    status: SkillStatus
    progress_percentage: float
    points_earned: int
    is_locked: bool
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class PathSnapshot:
    """Consistent view of a path rollup and all of its skills.

    Attributes:
        learner_id: Owner of the state, or None for the authored template
        version: Commit counter for this (learner, path); 0 = never written
    """

    path_id: str
    title: str
    subject: str
    grade_level: str
    difficulty: str
    total_skills: int
    completed_skills: int
    progress_percentage: int
    status: PathStatus
    skills: Tuple[SkillSnapshot, ...]
    learner_id: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    description: Optional[str] = None
    estimated_hours: Optional[float] = None
    version: int = 0

    def skill(self, skill_id: str) -> SkillSnapshot:
        for skill in self.skills:
            if skill.skill_id == skill_id:
                return skill
        raise KeyError(skill_id)

    def is_locked(self, skill_id: str) -> bool:
        return self.skill(skill_id).is_locked


@dataclass(frozen=True)
class Achievement:
    """An achievement definition joined with one learner's unlock state.

    progress counts toward goal (both 1 for target-based achievements);
    an unlocked achievement always reports progress == goal.
    """

    id: str
    name: str
    achievement_type: str
    points: int
    difficulty: str
    is_unlocked: bool
    unlocked_at: Optional[datetime] = None
    description: Optional[str] = None
    threshold: int = 1
    target: Optional[str] = None
    progress: int = 0
    goal: int = 1

    @property
    def progress_percentage(self) -> int:
        return min(100, (200 * self.progress + self.goal) // (2 * self.goal))


@dataclass(frozen=True)
class CompletionResult:
    """Outcome of a completion or mastery promotion."""

    skill: SkillSnapshot
    unlocked_achievements: List[Achievement] = field(default_factory=list)
    unlocked_skills: List[str] = field(default_factory=list)  # dependents now startable
