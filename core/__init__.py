"""
SkillPath Core - skill progression engine for guided learning paths.

Main components:
- SkillGraphStore: Prerequisite graph validation and lock queries
- ProgressionEngine: Skill state machine
- PathAggregator: Path rollups and snapshots
- AchievementEvaluator: Achievement unlock rules

The transactional entry point, ProgressionService, lives in core.service.
"""

from core.achievements import AchievementEvaluator, LearnerContext
from core.errors import (
    AlreadyStarted,
    GraphError,
    NotFound,
    PersistenceError,
    ProgressionError,
    SkillLocked,
    TerminalState,
    TransitionError,
    ValidationError,
)
from core.path_aggregator import PathAggregator, round_half_up_percentage
from core.progress_analyzer import ProgressAnalyzer
from core.progression_engine import EventType, ProgressionEngine, SkillEvent
from core.skill_graph import SkillGraphStore, detect_cycles

__all__ = [
    "SkillGraphStore",
    "detect_cycles",
    "ProgressionEngine",
    "SkillEvent",
    "EventType",
    "PathAggregator",
    "round_half_up_percentage",
    "AchievementEvaluator",
    "LearnerContext",
    "ProgressAnalyzer",
    # Errors
    "ProgressionError",
    "ValidationError",
    "NotFound",
    "SkillLocked",
    "TransitionError",
    "AlreadyStarted",
    "TerminalState",
    "GraphError",
    "PersistenceError",
]
