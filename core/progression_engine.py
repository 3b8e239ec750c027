"""
Skill state machine for SkillPath.

    not_started -> in_progress -> completed
                                  mastered   (external mastery signal only)

The engine mutates a LearnerPathState working copy handed to it by the
service. It never touches skill structure (prerequisites, points, titles),
and never commits anything itself: every transition returns the events it
produced and the caller decides whether the working copy becomes the new
committed state.

Usage:
    engine = ProgressionEngine(graph)
    working = committed.copy()
    events = engine.complete_skill(working, "sci-observation")
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from numbers import Real
from typing import Callable, List, Optional

from core.dto.skills import LearnerPathState, SkillState, SkillStatus
from core.errors import AlreadyStarted, SkillLocked, TerminalState, ValidationError
from core.skill_graph import SkillGraphStore

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EventType(Enum):
    SKILL_STARTED = "skill_started"
    PROGRESS_UPDATED = "progress_updated"
    SKILL_COMPLETED = "skill_completed"
    SKILL_MASTERED = "skill_mastered"


@dataclass(frozen=True)
class SkillEvent:
    """Something that happened to a skill during one transition.

    Attributes:
        event_type: What happened
        learner_id: Learner the transition belongs to
        path_id: Owning learning path
        skill_id: Skill that changed
        occurred_at: Transition timestamp
        points_delta: Change in points_earned (never negative)
        unlocked_skills: Dependents whose lock flag flipped to unlocked
    """

    event_type: EventType
    learner_id: str
    path_id: str
    skill_id: str
    occurred_at: datetime
    points_delta: int = 0
    unlocked_skills: List[str] = field(default_factory=list)

    @property
    def changes_points(self) -> bool:
        return self.points_delta > 0


class ProgressionEngine:
    """Applies skill transitions to a learner's working state.

    Every public method either applies the whole transition and returns its
    events, or raises before mutating anything.
    """

    def __init__(self, graph: SkillGraphStore, clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize progression engine.

        Args:
            graph: Loaded skill graph
            clock: Returns the current time; defaults to UTC now
        """
        self.graph = graph
        self._clock = clock or utc_now

    # =========================================================================
    # Transitions
    # =========================================================================

    def start_skill(self, state: LearnerPathState, skill_id: str) -> List[SkillEvent]:
        """not_started -> in_progress with progress 0.

        Raises:
            NotFound: Unknown skill
            AlreadyStarted: Skill is in_progress, completed or mastered
            SkillLocked: A prerequisite is unmet
        """
        skill_state = self._skill_state(state, skill_id)
        if skill_state.status is not SkillStatus.NOT_STARTED:
            raise AlreadyStarted(skill_id, skill_state.status.value)
        self._check_unlocked(state, skill_id)

        return [self._start(state, skill_id, self._clock())]

    def update_progress(
        self, state: LearnerPathState, skill_id: str, percent: Real
    ) -> List[SkillEvent]:
        """Set a skill's progress, implicitly starting or completing it.

        points_earned becomes floor(percent / 100 * points) but never drops.
        A percent of 100 completes the skill.

        Raises:
            ValidationError: percent is not a number in [0, 100]
            NotFound: Unknown skill
            TerminalState: Skill is completed or mastered
            SkillLocked: A prerequisite is unmet
        """
        self._validate_percent(percent)
        skill_state = self._skill_state(state, skill_id)
        if skill_state.status.is_done:
            raise TerminalState(skill_id, skill_state.status.value)
        self._check_unlocked(state, skill_id)

        now = self._clock()
        events = []
        if skill_state.status is SkillStatus.NOT_STARTED:
            events.append(self._start(state, skill_id, now))

        if percent == 100:
            events.append(self._finish(state, skill_id, SkillStatus.COMPLETED, now))
            return events

        points = self.graph.get_skill(skill_id).points
        earned = min(points, int((percent * points) // 100))
        before = skill_state.points_earned
        skill_state.progress_percentage = percent
        skill_state.points_earned = max(before, earned)
        skill_state.last_activity_at = now

        logger.debug(f"{state.learner_id}: {skill_id} progress -> {percent}%")
        events.append(
            SkillEvent(
                EventType.PROGRESS_UPDATED,
                state.learner_id,
                state.path_id,
                skill_id,
                now,
                points_delta=skill_state.points_earned - before,
            )
        )
        return events

    def complete_skill(self, state: LearnerPathState, skill_id: str) -> List[SkillEvent]:
        """in_progress or not_started -> completed with full points.

        Raises:
            NotFound: Unknown skill
            TerminalState: Skill is already completed or mastered
            SkillLocked: A prerequisite is unmet
        """
        skill_state = self._skill_state(state, skill_id)
        if skill_state.status.is_done:
            raise TerminalState(skill_id, skill_state.status.value)
        self._check_unlocked(state, skill_id)

        return [self._finish(state, skill_id, SkillStatus.COMPLETED, self._clock())]

    def promote_to_mastered(self, state: LearnerPathState, skill_id: str) -> List[SkillEvent]:
        """Apply an external mastery signal.

        Raises:
            NotFound: Unknown skill
            TerminalState: Skill is already mastered
            SkillLocked: A prerequisite is unmet
        """
        skill_state = self._skill_state(state, skill_id)
        if skill_state.status is SkillStatus.MASTERED:
            raise TerminalState(skill_id, skill_state.status.value)
        self._check_unlocked(state, skill_id)

        return [self._finish(state, skill_id, SkillStatus.MASTERED, self._clock())]

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _validate_percent(percent) -> None:
        if isinstance(percent, bool) or not isinstance(percent, Real):
            raise ValidationError(f"Progress must be a number, got {percent!r}")
        if math.isnan(percent) or not 0 <= percent <= 100:
            raise ValidationError(f"Progress must be between 0 and 100, got {percent}")

    def _skill_state(self, state: LearnerPathState, skill_id: str) -> SkillState:
        skill = self.graph.get_skill(skill_id)
        if skill.path_id != state.path_id:
            raise ValueError(
                f"Skill '{skill_id}' belongs to path '{skill.path_id}', not '{state.path_id}'"
            )
        return state.skills[skill_id]

    def _check_unlocked(self, state: LearnerPathState, skill_id: str) -> None:
        missing = self.graph.missing_prerequisites(skill_id, state.statuses())
        if missing:
            raise SkillLocked(skill_id, missing)

    def _start(self, state: LearnerPathState, skill_id: str, now: datetime) -> SkillEvent:
        skill_state = state.skills[skill_id]
        skill_state.status = SkillStatus.IN_PROGRESS
        skill_state.progress_percentage = 0
        skill_state.started_at = now
        skill_state.last_activity_at = now

        logger.debug(f"{state.learner_id}: started {skill_id}")
        return SkillEvent(EventType.SKILL_STARTED, state.learner_id, state.path_id, skill_id, now)

    def _finish(
        self, state: LearnerPathState, skill_id: str, status: SkillStatus, now: datetime
    ) -> SkillEvent:
        """Move a skill into completed or mastered and report unlocked dependents."""
        before = state.statuses()
        skill_state = state.skills[skill_id]
        points = self.graph.get_skill(skill_id).points
        points_before = skill_state.points_earned

        skill_state.status = status
        skill_state.progress_percentage = 100
        skill_state.points_earned = points
        if skill_state.started_at is None:
            skill_state.started_at = now
        if skill_state.completed_at is None:
            skill_state.completed_at = now
        skill_state.last_activity_at = now

        unlocked = self.graph.newly_unlocked(skill_id, before, state.statuses())
        event_type = (
            EventType.SKILL_MASTERED if status is SkillStatus.MASTERED else EventType.SKILL_COMPLETED
        )
        logger.debug(
            f"{state.learner_id}: {skill_id} -> {status.value}"
            + (f", unlocked {', '.join(unlocked)}" if unlocked else "")
        )
        return SkillEvent(
            event_type,
            state.learner_id,
            state.path_id,
            skill_id,
            now,
            points_delta=points - points_before,
            unlocked_skills=unlocked,
        )
