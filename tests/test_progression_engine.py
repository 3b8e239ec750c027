"""
Tests for the skill state machine (ProgressionEngine).

Every rejected transition must leave the learner state untouched.
"""

import sys
import os

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from core.dto.skills import SkillStatus
from core.errors import AlreadyStarted, SkillLocked, TerminalState, ValidationError
from core.progression_engine import EventType


@pytest.fixture
def state(aggregator):
    return aggregator.initial_state("learner-1", "intro-science")


def records(state):
    return {skill_id: s.to_record() for skill_id, s in state.skills.items()}


# ============================================================================
# start_skill
# ============================================================================


class TestStartSkill:
    def test_start_unlocked_skill(self, engine, state):
        events = engine.start_skill(state, "A")

        skill = state.skills["A"]
        assert skill.status is SkillStatus.IN_PROGRESS
        assert skill.progress_percentage == 0
        assert skill.started_at is not None
        assert skill.last_activity_at == skill.started_at
        assert [e.event_type for e in events] == [EventType.SKILL_STARTED]

    def test_start_locked_skill_raises(self, engine, state):
        before = records(state)

        with pytest.raises(SkillLocked) as exc_info:
            engine.start_skill(state, "C")

        assert exc_info.value.missing_prerequisites == ["A", "B"]
        assert records(state) == before

    def test_start_twice_raises_already_started(self, engine, state):
        engine.start_skill(state, "A")
        with pytest.raises(AlreadyStarted):
            engine.start_skill(state, "A")

    def test_start_completed_skill_raises_already_started(self, engine, state):
        engine.complete_skill(state, "A")
        with pytest.raises(AlreadyStarted):
            engine.start_skill(state, "A")


# ============================================================================
# update_progress
# ============================================================================


class TestUpdateProgress:
    def test_points_are_floored(self, engine, state):
        engine.start_skill(state, "A")
        events = engine.update_progress(state, "A", 55)

        assert state.skills["A"].progress_percentage == 55
        assert state.skills["A"].points_earned == 5
        assert events[-1].points_delta == 5

    def test_fractional_percent(self, engine, state):
        engine.complete_skill(state, "A")
        engine.update_progress(state, "B", 33.5)

        assert state.skills["B"].points_earned == 6

    def test_points_never_decrease(self, engine, state):
        engine.update_progress(state, "A", 80)
        events = engine.update_progress(state, "A", 30)

        assert state.skills["A"].progress_percentage == 30
        assert state.skills["A"].points_earned == 8
        assert events[-1].points_delta == 0
        assert not events[-1].changes_points

    def test_update_implicitly_starts(self, engine, state):
        events = engine.update_progress(state, "A", 20)

        assert [e.event_type for e in events] == [
            EventType.SKILL_STARTED,
            EventType.PROGRESS_UPDATED,
        ]
        assert state.skills["A"].status is SkillStatus.IN_PROGRESS
        assert state.skills["A"].started_at is not None

    def test_hundred_percent_completes(self, engine, state):
        engine.start_skill(state, "A")
        events = engine.update_progress(state, "A", 100)

        skill = state.skills["A"]
        assert skill.status is SkillStatus.COMPLETED
        assert skill.points_earned == 10
        assert skill.completed_at is not None
        assert events[-1].event_type is EventType.SKILL_COMPLETED
        assert events[-1].unlocked_skills == ["B"]

    @pytest.mark.parametrize("percent", [150, -1, 100.5, "50", None, True, float("nan")])
    def test_invalid_percent_raises_validation_error(self, engine, state, percent):
        engine.start_skill(state, "A")
        before = records(state)

        with pytest.raises(ValidationError):
            engine.update_progress(state, "A", percent)

        assert records(state) == before

    def test_update_completed_skill_raises_terminal_state(self, engine, state):
        engine.complete_skill(state, "A")
        with pytest.raises(TerminalState):
            engine.update_progress(state, "A", 50)

    def test_validation_is_checked_before_terminal_state(self, engine, state):
        engine.complete_skill(state, "A")
        with pytest.raises(ValidationError):
            engine.update_progress(state, "A", 150)

    def test_update_locked_skill_raises(self, engine, state):
        with pytest.raises(SkillLocked):
            engine.update_progress(state, "B", 10)
        assert state.skills["B"].status is SkillStatus.NOT_STARTED


# ============================================================================
# complete_skill / promote_to_mastered
# ============================================================================


class TestCompleteSkill:
    def test_complete_from_not_started(self, engine, state):
        events = engine.complete_skill(state, "A")

        skill = state.skills["A"]
        assert skill.status is SkillStatus.COMPLETED
        assert skill.progress_percentage == 100
        assert skill.points_earned == 10
        assert skill.started_at is not None
        assert events[0].points_delta == 10

    def test_complete_twice_raises_and_leaves_state(self, engine, state):
        engine.complete_skill(state, "A")
        before = records(state)

        with pytest.raises(TerminalState):
            engine.complete_skill(state, "A")

        assert records(state) == before

    def test_complete_locked_skill_raises(self, engine, state):
        engine.complete_skill(state, "A")
        with pytest.raises(SkillLocked) as exc_info:
            engine.complete_skill(state, "C")
        assert exc_info.value.missing_prerequisites == ["B"]

    def test_completing_last_prerequisite_unlocks_dependent(self, engine, state):
        engine.complete_skill(state, "A")
        events = engine.complete_skill(state, "B")

        assert events[0].unlocked_skills == ["C"]


class TestPromoteToMastered:
    def test_promote_completed_skill(self, engine, state):
        engine.complete_skill(state, "A")
        completed_at = state.skills["A"].completed_at

        events = engine.promote_to_mastered(state, "A")

        assert state.skills["A"].status is SkillStatus.MASTERED
        assert state.skills["A"].completed_at == completed_at
        assert events[0].event_type is EventType.SKILL_MASTERED
        assert events[0].points_delta == 0

    def test_promote_not_started_skill_fills_timestamps(self, engine, state):
        events = engine.promote_to_mastered(state, "A")

        skill = state.skills["A"]
        assert skill.status is SkillStatus.MASTERED
        assert skill.started_at is not None
        assert skill.completed_at is not None
        assert events[0].unlocked_skills == ["B"]

    def test_promote_mastered_raises(self, engine, state):
        engine.promote_to_mastered(state, "A")
        with pytest.raises(TerminalState):
            engine.promote_to_mastered(state, "A")

    def test_promote_locked_raises(self, engine, state):
        with pytest.raises(SkillLocked):
            engine.promote_to_mastered(state, "B")

    def test_mastered_prerequisite_unlocks(self, engine, state):
        engine.promote_to_mastered(state, "A")
        engine.start_skill(state, "B")

        assert state.skills["B"].status is SkillStatus.IN_PROGRESS
