"""
Path Aggregation Module for SkillPath.

Provides path-level rollups and snapshots:
    Skill states -> Path rollup -> PathSnapshot

The path rollup has no authority of its own: completed_skills,
progress_percentage and status are recomputed from the current skill
statuses every time, so they can never drift from the skills they summarize.

Usage:
    aggregator = PathAggregator(graph)

    # After a transition on a working copy
    aggregator.recompute(working)

    # Consistent view for callers
    snapshot = aggregator.snapshot(working)
"""

from core.dto.skills import (
    LearnerPathState,
    PathState,
    PathStatus,
    SkillState,
    SkillStatus,
)
from core.dto.snapshots import PathSnapshot, SkillSnapshot
from core.skill_graph import SkillGraphStore


def round_half_up_percentage(part: int, whole: int) -> int:
    """round(100 * part / whole) with halves rounded up; 0 for an empty whole."""
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


class PathAggregator:
    """
    Rolls skill states up into path progress.

    Each path's rollup is calculated from its skills:
    - completed_skills = skills with status completed or mastered
    - progress_percentage = round-half-up(100 * completed / total)
    - status = completed at 100%, in_progress once any skill is started
    """

    def __init__(self, graph: SkillGraphStore):
        """
        Initialize path aggregator.

        Args:
            graph: Loaded skill graph
        """
        self.graph = graph

    def initial_state(self, learner_id: str, path_id: str) -> LearnerPathState:
        """Fresh state for a learner who never touched the path."""
        path = self.graph.get_path(path_id)
        state = LearnerPathState(
            learner_id=learner_id,
            path_id=path_id,
            skills={skill_id: SkillState() for skill_id in path.skill_ids},
        )
        self.recompute(state)
        return state

    # =========================================================================
    # Rollup
    # =========================================================================

    def recompute(self, state: LearnerPathState) -> PathState:
        """
        Recompute the path rollup of a learner state in place.

        Args:
            state: Learner state for one path

        Returns:
            The updated PathState
        """
        skills = list(state.skills.values())
        total = len(skills)
        completed = sum(1 for s in skills if s.status.is_done)
        progress = round_half_up_percentage(completed, total)

        if total > 0 and progress == 100:
            status = PathStatus.COMPLETED
        elif any(s.status is not SkillStatus.NOT_STARTED for s in skills):
            status = PathStatus.IN_PROGRESS
        else:
            status = PathStatus.NOT_STARTED

        started = [s.started_at for s in skills if s.started_at]
        finished = [s.completed_at for s in skills if s.completed_at]
        activity = [s.last_activity_at for s in skills if s.last_activity_at]

        rollup = state.path
        rollup.total_skills = total
        rollup.completed_skills = completed
        rollup.progress_percentage = progress
        rollup.status = status
        rollup.started_at = min(started) if started else None
        rollup.completed_at = max(finished) if status is PathStatus.COMPLETED else None
        rollup.last_activity_at = max(activity) if activity else None
        return rollup

    # =========================================================================
    # Snapshots
    # =========================================================================

    def snapshot(self, state: LearnerPathState, template: bool = False) -> PathSnapshot:
        """
        Build a point-in-time view of a path.

        Lock flags are derived from the same statuses the rollup was computed
        from, so a snapshot never mixes two versions of the state.

        Args:
            state: Learner state (rollup must be current)
            template: True for the learner-independent view

        Returns:
            Immutable PathSnapshot
        """
        path = self.graph.get_path(state.path_id)
        statuses = state.statuses()
        locks = self.graph.lock_flags(state.path_id, statuses)
        skills = tuple(
            self._skill_snapshot(state.skills[skill_id], skill_id, locks[skill_id])
            for skill_id in path.skill_ids
        )
        rollup = state.path
        return PathSnapshot(
            path_id=path.id,
            title=path.title,
            subject=path.subject,
            grade_level=path.grade_level,
            difficulty=path.difficulty,
            total_skills=rollup.total_skills,
            completed_skills=rollup.completed_skills,
            progress_percentage=rollup.progress_percentage,
            status=rollup.status,
            skills=skills,
            learner_id=None if template else state.learner_id,
            started_at=rollup.started_at,
            completed_at=rollup.completed_at,
            last_activity_at=rollup.last_activity_at,
            description=path.description,
            estimated_hours=path.estimated_hours,
            version=state.version,
        )

    def skill_snapshot(self, state: LearnerPathState, skill_id: str) -> SkillSnapshot:
        """Snapshot of a single skill, lock flag included."""
        locked = self.graph.is_locked(skill_id, state.statuses())
        return self._skill_snapshot(state.skills[skill_id], skill_id, locked)

    def _skill_snapshot(self, skill_state: SkillState, skill_id: str, locked: bool) -> SkillSnapshot:
        skill = self.graph.get_skill(skill_id)
        return SkillSnapshot(
            skill_id=skill.id,
            path_id=skill.path_id,
            title=skill.title,
            skill_type=skill.skill_type,
            points=skill.points,
            difficulty=skill.difficulty,
            estimated_minutes=skill.estimated_minutes,
            prerequisites=tuple(p.id for p in self.graph.get_prerequisites(skill_id)),
            order_index=skill.order_index,
            status=skill_state.status,
            progress_percentage=skill_state.progress_percentage,
            points_earned=skill_state.points_earned,
            is_locked=locked,
            started_at=skill_state.started_at,
            completed_at=skill_state.completed_at,
            last_activity_at=skill_state.last_activity_at,
            description=skill.description,
        )

    def template_snapshot(self, path_id: str) -> PathSnapshot:
        """Authored view of a path with every skill not_started."""
        return self.snapshot(self.initial_state("", path_id), template=True)
