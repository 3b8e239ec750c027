"""Progress-related Data Transfer Objects.

DTOs for cross-path summaries, points history, activity timelines and
recommendations.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass(frozen=True)
class Recommendation:
    """A suggested next action for a learner.

    Produced by a RecommendationProvider; advisory only.

    Attributes:
        skill_id: Recommended skill
        path_id: Owning learning path
        title: Skill title for display
        recommendation_type: "next_skill" or "review_skill"
        rationale: Why this skill is recommended
        score: Ranking score, higher first
    """

    skill_id: str
    path_id: str
    title: str
    recommendation_type: str
    rationale: str
    score: float


@dataclass
class PathTotals:
    total: int = 0
    completed: int = 0
    in_progress: int = 0
    avg_progress: int = 0


@dataclass
class SkillTotals:
    total: int = 0
    completed: int = 0  # status == completed (mastered counted separately)
    mastered: int = 0
    in_progress: int = 0
    total_points: int = 0


@dataclass
class AchievementTotals:
    total: int = 0
    unlocked: int = 0
    points: int = 0
    completion_percentage: int = 0


@dataclass
class SubjectProgress:
    """Aggregated progress of all paths in one subject.

    Attributes:
        subject: Subject name
        path_count: Paths in the subject
        completed_paths: Paths with status completed
        total_skills: Skills across all paths
        completed_skills: Completed or mastered skills across all paths
        total_points: Skill points earned in the subject
        avg_progress: Mean path progress (0-100), round-half-up
        skill_completion_percentage: completed_skills / total_skills (0-100)
    """

    subject: str
    path_count: int = 0
    completed_paths: int = 0
    total_skills: int = 0
    completed_skills: int = 0
    total_points: int = 0
    avg_progress: int = 0
    skill_completion_percentage: int = 0


@dataclass
class ActivityItem:
    """Single entry in a learner's activity timeline."""

    activity_type: str  # "learning_path", "skill" or "achievement"
    action: str  # "started", "completed", "mastered" or "unlocked"
    item_id: str
    title: str
    activity_date: datetime
    status: Optional[str] = None
    progress_percentage: Optional[float] = None


@dataclass
class PointItem:
    """Points earned from one skill or achievement."""

    item_id: str
    item_title: str
    source_type: str  # "skill" or "achievement"
    points: int
    earned_at: datetime


@dataclass
class MonthlyPoints:
    month: str  # YYYY-MM
    points: int


@dataclass
class PointsHistory:
    """Chronological point history with monthly totals."""

    total_points: int
    points_history: List[PointItem] = field(default_factory=list)
    chart_data: List[MonthlyPoints] = field(default_factory=list)


@dataclass
class ProgressSummary:
    """Learner-wide progress across paths, skills and achievements."""

    learning_paths: PathTotals
    skills: SkillTotals
    achievements: AchievementTotals
    subjects: List[SubjectProgress] = field(default_factory=list)
    recent_activity: List[ActivityItem] = field(default_factory=list)
