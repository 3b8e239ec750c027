"""Skill, path and achievement Data Transfer Objects.

Authored definitions (immutable, produced by the authoring collaborator) are
kept apart from per-learner state (mutable, owned by the engine). The state
classes serialize to plain dicts so any ProgressStore can hold them
(SQLite, in-memory, etc.).
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Optional, Tuple


class SkillStatus(Enum):
    """Skill state machine states."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    MASTERED = "mastered"

    @property
    def is_done(self) -> bool:
        """Completed and mastered both satisfy prerequisites."""
        return self in (SkillStatus.COMPLETED, SkillStatus.MASTERED)


class PathStatus(Enum):
    """Learning path rollup status."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class AchievementType(Enum):
    """How an achievement's unlock predicate is derived."""

    POINTS_EARNED = "points_earned"  # total skill points >= threshold
    SKILLS_COMPLETED = "skills_completed"  # completed + mastered skills >= threshold
    SKILL_MASTERY = "skill_mastery"  # mastered skills >= threshold
    LEARNING_PATH_COMPLETION = "learning_path_completion"  # target path, or N paths
    SUBJECT_COMPLETION = "subject_completion"  # every path of target subject
    CUSTOM = "custom"  # predicate supplied by the author

    @classmethod
    def from_string(cls, value: str) -> "AchievementType":
        try:
            return cls(value)
        except ValueError:
            valid = ", ".join(t.value for t in cls)
            raise ValueError(f"Unknown achievement type '{value}'. Valid types: {valid}")


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


# =============================================================================
# Authored definitions
# =============================================================================


@dataclass(frozen=True)
class SkillDefinition:
    """Authored structure of a skill. Never mutated by the engine.

    Attributes:
        id: Globally unique skill id
        path_id: Owning learning path id
        title: Display title
        points: Points awarded on completion (positive integer)
        skill_type: Free-form type ("concept", "practice", "assessment", ...)
        difficulty: 1 (easiest) to 5 (hardest)
        estimated_minutes: Estimated time to complete
        prerequisites: Ids of skills that must be completed or mastered first
        order_index: Position within the path
        description: Optional description
    """

    id: str
    path_id: str
    title: str
    points: int
    skill_type: str = "concept"
    difficulty: int = 1
    estimated_minutes: Optional[int] = None
    prerequisites: FrozenSet[str] = field(default_factory=frozenset)
    order_index: int = 0
    description: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.points, bool) or not isinstance(self.points, int) or self.points <= 0:
            raise ValueError(f"Skill '{self.id}': points must be a positive integer")
        if not 1 <= self.difficulty <= 5:
            raise ValueError(f"Skill '{self.id}': difficulty must be between 1 and 5")
        if not isinstance(self.prerequisites, frozenset):
            object.__setattr__(self, "prerequisites", frozenset(self.prerequisites))


@dataclass(frozen=True)
class LearningPathDefinition:
    """Authored structure of a learning path.

    Attributes:
        id: Unique path id
        title: Display title
        subject: Subject area ("Mathematics", "Science", ...)
        grade_level: Target grade level
        difficulty: "beginner", "intermediate" or "advanced"
        skills: Skills in authored order
        description: Optional description
        estimated_hours: Optional estimated duration
    """

    id: str
    title: str
    subject: str
    grade_level: str
    difficulty: str
    skills: Tuple[SkillDefinition, ...] = ()
    description: Optional[str] = None
    estimated_hours: Optional[float] = None

    @property
    def skill_ids(self) -> Tuple[str, ...]:
        return tuple(skill.id for skill in self.skills)


@dataclass(frozen=True)
class AchievementDefinition:
    """Authored achievement.

    The unlock predicate is derived from achievement_type, threshold and
    target unless an explicit predicate is given (a callable receiving a
    LearnerContext).
    """

    id: str
    name: str
    achievement_type: AchievementType
    threshold: int = 1
    target: Optional[str] = None
    description: Optional[str] = None
    points: int = 0
    difficulty: str = "medium"
    predicate: Optional[Callable[[Any], bool]] = field(default=None, compare=False)

    def __post_init__(self):
        if self.achievement_type is AchievementType.CUSTOM and self.predicate is None:
            raise ValueError(f"Achievement '{self.id}': custom achievements need a predicate")
        if self.achievement_type is AchievementType.SUBJECT_COMPLETION and not self.target:
            raise ValueError(f"Achievement '{self.id}': subject_completion needs a target subject")
        if self.threshold < 0:
            raise ValueError(f"Achievement '{self.id}': threshold must not be negative")


# =============================================================================
# Per-learner state
# =============================================================================


@dataclass
class SkillState:
    """A learner's progress on one skill."""

    status: SkillStatus = SkillStatus.NOT_STARTED
    progress_percentage: float = 0
    points_earned: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None

    def to_record(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "progress_percentage": self.progress_percentage,
            "points_earned": self.points_earned,
            "started_at": _to_iso(self.started_at),
            "completed_at": _to_iso(self.completed_at),
            "last_activity_at": _to_iso(self.last_activity_at),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "SkillState":
        return cls(
            status=SkillStatus(record.get("status", SkillStatus.NOT_STARTED.value)),
            progress_percentage=record.get("progress_percentage", 0),
            points_earned=record.get("points_earned", 0),
            started_at=_from_iso(record.get("started_at")),
            completed_at=_from_iso(record.get("completed_at")),
            last_activity_at=_from_iso(record.get("last_activity_at")),
        )


@dataclass
class PathState:
    """A learner's rollup for one path. Always recomputed from skill states."""

    total_skills: int = 0
    completed_skills: int = 0
    progress_percentage: int = 0
    status: PathStatus = PathStatus.NOT_STARTED
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None

    def to_record(self) -> Dict[str, Any]:
        return {
            "total_skills": self.total_skills,
            "completed_skills": self.completed_skills,
            "progress_percentage": self.progress_percentage,
            "status": self.status.value,
            "started_at": _to_iso(self.started_at),
            "completed_at": _to_iso(self.completed_at),
            "last_activity_at": _to_iso(self.last_activity_at),
        }


@dataclass
class AchievementState:
    """A learner's unlock state for one achievement."""

    is_unlocked: bool = False
    unlocked_at: Optional[datetime] = None

    def to_record(self) -> Dict[str, Any]:
        return {"is_unlocked": self.is_unlocked, "unlocked_at": _to_iso(self.unlocked_at)}

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "AchievementState":
        return cls(
            is_unlocked=bool(record.get("is_unlocked", False)),
            unlocked_at=_from_iso(record.get("unlocked_at")),
        )


@dataclass
class DismissalState:
    """A learner's dismissal of the recommendation for one skill.

    The dismissal holds while the skill keeps the status it had when it was
    dismissed; once the status changes the skill can be recommended again.
    """

    status: SkillStatus
    dismissed_at: Optional[datetime] = None

    def hides(self, current: SkillStatus) -> bool:
        return self.status is current

    def to_record(self) -> Dict[str, Any]:
        return {"status": self.status.value, "dismissed_at": _to_iso(self.dismissed_at)}

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "DismissalState":
        return cls(
            status=SkillStatus(record["status"]),
            dismissed_at=_from_iso(record.get("dismissed_at")),
        )


@dataclass
class LearnerPathState:
    """Everything the engine mutates for one (learner, path) pair."""

    learner_id: str
    path_id: str
    skills: Dict[str, SkillState]
    path: PathState = field(default_factory=PathState)
    version: int = 0

    def copy(self) -> "LearnerPathState":
        """Working copy for a transaction; the original stays untouched."""
        return copy.deepcopy(self)

    def statuses(self) -> Dict[str, SkillStatus]:
        return {skill_id: state.status for skill_id, state in self.skills.items()}
