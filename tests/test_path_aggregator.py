"""
Tests for PathAggregator rollups and snapshots.
"""

import sys
import os

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from conftest import make_path
from core.dto.skills import PathStatus, SkillStatus
from core.path_aggregator import PathAggregator, round_half_up_percentage
from core.skill_graph import SkillGraphStore


@pytest.mark.parametrize(
    "part, whole, expected",
    [(0, 3, 0), (1, 3, 33), (2, 3, 67), (3, 3, 100), (1, 2, 50), (1, 8, 13), (0, 0, 0)],
)
def test_round_half_up_percentage(part, whole, expected):
    assert round_half_up_percentage(part, whole) == expected


def test_intro_science_scenario(engine, aggregator):
    """A, B(A), C(A,B): locks and rollup after each completion."""
    state = aggregator.initial_state("learner-1", "intro-science")
    snapshot = aggregator.snapshot(state)
    assert snapshot.progress_percentage == 0
    assert snapshot.status is PathStatus.NOT_STARTED
    assert [s.is_locked for s in snapshot.skills] == [False, True, True]

    engine.complete_skill(state, "A")
    aggregator.recompute(state)
    snapshot = aggregator.snapshot(state)
    assert snapshot.completed_skills == 1
    assert snapshot.progress_percentage == 33
    assert snapshot.status is PathStatus.IN_PROGRESS
    assert [s.is_locked for s in snapshot.skills] == [False, False, True]

    engine.complete_skill(state, "B")
    aggregator.recompute(state)
    snapshot = aggregator.snapshot(state)
    assert snapshot.progress_percentage == 67
    assert not snapshot.is_locked("C")

    engine.complete_skill(state, "C")
    aggregator.recompute(state)
    snapshot = aggregator.snapshot(state)
    assert snapshot.completed_skills == 3
    assert snapshot.progress_percentage == 100
    assert snapshot.status is PathStatus.COMPLETED
    assert snapshot.completed_at == snapshot.skill("C").completed_at
    print("✓ test_intro_science_scenario passed")


def test_started_skill_makes_path_in_progress(engine, aggregator):
    state = aggregator.initial_state("learner-1", "intro-science")
    engine.start_skill(state, "A")
    rollup = aggregator.recompute(state)

    assert rollup.status is PathStatus.IN_PROGRESS
    assert rollup.progress_percentage == 0
    assert rollup.started_at == state.skills["A"].started_at
    assert rollup.completed_at is None


def test_mastered_counts_as_completed(engine, aggregator):
    state = aggregator.initial_state("learner-1", "fractions")
    engine.promote_to_mastered(state, "F1")
    rollup = aggregator.recompute(state)

    assert rollup.completed_skills == 1
    assert rollup.progress_percentage == 50


def test_rollup_is_derived_not_trusted(engine, aggregator):
    state = aggregator.initial_state("learner-1", "fractions")
    state.path.completed_skills = 99
    state.path.status = PathStatus.COMPLETED

    rollup = aggregator.recompute(state)

    assert rollup.completed_skills == 0
    assert rollup.status is PathStatus.NOT_STARTED


def test_empty_path_is_zero_percent():
    graph = SkillGraphStore()
    graph.load(make_path("empty", []))
    state = PathAggregator(graph).initial_state("learner-1", "empty")

    assert state.path.total_skills == 0
    assert state.path.progress_percentage == 0
    assert state.path.status is PathStatus.NOT_STARTED


class TestSnapshots:
    def test_template_snapshot(self, aggregator):
        snapshot = aggregator.template_snapshot("intro-science")

        assert snapshot.learner_id is None
        assert snapshot.version == 0
        assert snapshot.total_skills == 3
        assert all(s.status is SkillStatus.NOT_STARTED for s in snapshot.skills)

    def test_snapshot_carries_definitions(self, aggregator):
        snapshot = aggregator.template_snapshot("intro-science")
        skill = snapshot.skill("C")

        assert skill.points == 30
        assert skill.prerequisites == ("A", "B")
        assert skill.title == "Skill C"
        assert [s.skill_id for s in snapshot.skills] == ["A", "B", "C"]

    def test_snapshot_is_independent_of_later_changes(self, engine, aggregator):
        state = aggregator.initial_state("learner-1", "intro-science")
        snapshot = aggregator.snapshot(state)

        engine.complete_skill(state, "A")
        aggregator.recompute(state)

        assert snapshot.skill("A").status is SkillStatus.NOT_STARTED
        assert snapshot.progress_percentage == 0

    def test_unknown_skill_in_snapshot(self, aggregator):
        with pytest.raises(KeyError):
            aggregator.template_snapshot("intro-science").skill("F1")

    def test_skill_snapshot(self, engine, aggregator):
        state = aggregator.initial_state("learner-1", "intro-science")
        engine.complete_skill(state, "A")

        skill = aggregator.skill_snapshot(state, "B")
        assert not skill.is_locked
        assert skill.status is SkillStatus.NOT_STARTED
