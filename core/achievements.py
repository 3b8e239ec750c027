"""
Achievement rule evaluation for SkillPath.

The evaluator holds only authored definitions. Learner unlock state is passed
in and updated in place, so the same evaluator serves every learner. Unlocking
is monotonic: an unlocked achievement is never re-tested or re-locked.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set

from core.dto.skills import (
    AchievementDefinition,
    AchievementState,
    AchievementType,
    PathStatus,
    SkillStatus,
)
from core.dto.snapshots import Achievement, PathSnapshot
from core.progression_engine import utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LearnerContext:
    """Accumulated totals an achievement predicate is tested against.

    Attributes:
        learner_id: Learner being evaluated
        total_points: Skill points earned across all paths
        completed_skills: Skills completed or mastered across all paths
        mastered_skills: Skills mastered across all paths
        completed_paths: Ids of completed paths
        completed_subjects: Subjects whose every path is completed
    """

    learner_id: str
    total_points: int = 0
    completed_skills: int = 0
    mastered_skills: int = 0
    completed_paths: FrozenSet[str] = field(default_factory=frozenset)
    completed_subjects: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_snapshots(
        cls,
        learner_id: str,
        snapshots: Iterable[PathSnapshot],
        subject_paths: Mapping[str, Set[str]],
    ) -> "LearnerContext":
        """
        Build the context from a learner's path snapshots.

        Args:
            learner_id: Learner id
            snapshots: One snapshot per path the learner has state for
            subject_paths: subject -> ids of every known path in that subject

        Returns:
            LearnerContext with all totals
        """
        total_points = completed = mastered = 0
        completed_paths = set()
        for snapshot in snapshots:
            if snapshot.status is PathStatus.COMPLETED:
                completed_paths.add(snapshot.path_id)
            for skill in snapshot.skills:
                total_points += skill.points_earned
                if skill.status.is_done:
                    completed += 1
                if skill.status is SkillStatus.MASTERED:
                    mastered += 1

        completed_subjects = {
            subject
            for subject, path_ids in subject_paths.items()
            if path_ids and path_ids <= completed_paths
        }
        return cls(
            learner_id=learner_id,
            total_points=total_points,
            completed_skills=completed,
            mastered_skills=mastered,
            completed_paths=frozenset(completed_paths),
            completed_subjects=frozenset(completed_subjects),
        )


def to_achievement(
    definition: AchievementDefinition,
    state: AchievementState,
    progress: Optional[int] = None,
) -> Achievement:
    """Join a definition with a learner's unlock state and progress."""
    goal = AchievementEvaluator.goal_for(definition)
    if state.is_unlocked or progress is None:
        progress = goal if state.is_unlocked else 0
    return Achievement(
        id=definition.id,
        name=definition.name,
        achievement_type=definition.achievement_type.value,
        points=definition.points,
        difficulty=definition.difficulty,
        is_unlocked=state.is_unlocked,
        unlocked_at=state.unlocked_at,
        description=definition.description,
        threshold=definition.threshold,
        target=definition.target,
        progress=progress,
        goal=goal,
    )


class AchievementEvaluator:
    """Stateless rule engine invoked after every point-changing event.

    Example:
        evaluator = AchievementEvaluator(catalog.achievements)
        unlocked = evaluator.evaluate(context, learner_states)
    """

    def __init__(
        self,
        definitions: Iterable[AchievementDefinition],
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.definitions: Dict[str, AchievementDefinition] = {d.id: d for d in definitions}
        self._clock = clock or utc_now
        self._predicates = {d.id: self.predicate_for(d) for d in self.definitions.values()}

    @staticmethod
    def predicate_for(definition: AchievementDefinition) -> Callable[[LearnerContext], bool]:
        """Unlock predicate for a definition (explicit predicate wins)."""
        if definition.predicate is not None:
            return definition.predicate

        threshold = definition.threshold
        target = definition.target
        kind = definition.achievement_type

        if kind is AchievementType.POINTS_EARNED:
            return lambda ctx: ctx.total_points >= threshold
        if kind is AchievementType.SKILLS_COMPLETED:
            return lambda ctx: ctx.completed_skills >= threshold
        if kind is AchievementType.SKILL_MASTERY:
            return lambda ctx: ctx.mastered_skills >= threshold
        if kind is AchievementType.LEARNING_PATH_COMPLETION:
            if target:
                return lambda ctx: target in ctx.completed_paths
            return lambda ctx: len(ctx.completed_paths) >= threshold
        if kind is AchievementType.SUBJECT_COMPLETION:
            return lambda ctx: target in ctx.completed_subjects
        raise ValueError(f"No predicate for achievement '{definition.id}' ({kind.value})")

    @staticmethod
    def goal_for(definition: AchievementDefinition) -> int:
        """Count the learner works toward: the threshold, or 1 for a yes/no target."""
        if (
            definition.predicate is not None
            or definition.target
            or definition.achievement_type is AchievementType.SUBJECT_COMPLETION
        ):
            return 1
        return max(1, definition.threshold)

    @classmethod
    def progress_for(cls, definition: AchievementDefinition, context: LearnerContext) -> int:
        """How far the learner is toward the achievement's goal, capped at the goal."""
        kind = definition.achievement_type
        target = definition.target

        if definition.predicate is not None:
            value = int(bool(definition.predicate(context)))
        elif kind is AchievementType.POINTS_EARNED:
            value = context.total_points
        elif kind is AchievementType.SKILLS_COMPLETED:
            value = context.completed_skills
        elif kind is AchievementType.SKILL_MASTERY:
            value = context.mastered_skills
        elif kind is AchievementType.LEARNING_PATH_COMPLETION:
            value = int(target in context.completed_paths) if target else len(context.completed_paths)
        else:
            value = int(target in context.completed_subjects)
        return min(value, cls.goal_for(definition))

    def evaluate(
        self, context: LearnerContext, states: Dict[str, AchievementState]
    ) -> List[Achievement]:
        """
        Unlock every achievement whose predicate now holds.

        Args:
            context: Current learner totals
            states: achievement id -> learner unlock state; updated in place,
                missing entries are created

        Returns:
            Achievements newly unlocked by this call (empty if none)
        """
        now = self._clock()
        unlocked = []
        for achievement_id, definition in self.definitions.items():
            state = states.setdefault(achievement_id, AchievementState())
            if state.is_unlocked:
                continue
            if self._predicates[achievement_id](context):
                state.is_unlocked = True
                state.unlocked_at = now
                unlocked.append(to_achievement(definition, state))
                logger.info(f"{context.learner_id}: unlocked achievement '{definition.name}'")
        return unlocked

    def describe(
        self,
        states: Mapping[str, AchievementState],
        context: Optional[LearnerContext] = None,
    ) -> List[Achievement]:
        """
        All achievements joined with the learner's states, in authored order.

        Args:
            states: achievement id -> learner unlock state
            context: Current learner totals; when given, locked achievements
                report their progress toward the goal (0 otherwise)
        """
        described = []
        for achievement_id, definition in self.definitions.items():
            progress = self.progress_for(definition, context) if context is not None else None
            described.append(
                to_achievement(
                    definition, states.get(achievement_id, AchievementState()), progress
                )
            )
        return described
