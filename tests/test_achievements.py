"""
Tests for achievement rule evaluation.
"""

import sys
import os

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from conftest import FakeClock
from core.achievements import AchievementEvaluator, LearnerContext
from core.dto.skills import AchievementDefinition, AchievementState, AchievementType


def unlocked_ids(achievements):
    return [a.id for a in achievements]


@pytest.fixture
def evaluator(achievement_definitions):
    return AchievementEvaluator(achievement_definitions, clock=FakeClock())


# ============================================================================
# LearnerContext
# ============================================================================


def test_context_from_snapshots(engine, aggregator):
    science = aggregator.initial_state("learner-1", "intro-science")
    for skill_id in ("A", "B", "C"):
        engine.complete_skill(science, skill_id)
    engine.promote_to_mastered(science, "A")
    aggregator.recompute(science)

    fractions = aggregator.initial_state("learner-1", "fractions")
    engine.update_progress(fractions, "F1", 50)
    aggregator.recompute(fractions)

    context = LearnerContext.from_snapshots(
        "learner-1",
        [aggregator.snapshot(science), aggregator.snapshot(fractions)],
        {"Science": {"intro-science"}, "Mathematics": {"fractions"}},
    )

    assert context.total_points == 65
    assert context.completed_skills == 3
    assert context.mastered_skills == 1
    assert context.completed_paths == frozenset({"intro-science"})
    assert context.completed_subjects == frozenset({"Science"})


def test_subject_needs_every_path(aggregator, engine):
    science = aggregator.initial_state("learner-1", "intro-science")
    for skill_id in ("A", "B", "C"):
        engine.complete_skill(science, skill_id)
    aggregator.recompute(science)

    context = LearnerContext.from_snapshots(
        "learner-1",
        [aggregator.snapshot(science)],
        {"Science": {"intro-science", "chemistry"}},
    )

    assert context.completed_subjects == frozenset()


# ============================================================================
# AchievementEvaluator
# ============================================================================


class TestEvaluate:
    def test_nothing_unlocks_on_empty_context(self, evaluator):
        states = {}
        assert evaluator.evaluate(LearnerContext("learner-1"), states) == []
        assert all(not s.is_unlocked for s in states.values())

    def test_thresholds(self, evaluator):
        states = {}
        unlocked = evaluator.evaluate(
            LearnerContext("learner-1", total_points=50, completed_skills=2), states
        )

        assert unlocked_ids(unlocked) == ["first-steps", "fifty"]
        assert states["fifty"].is_unlocked
        assert states["fifty"].unlocked_at is not None

    def test_unlock_is_monotonic(self, evaluator):
        states = {}
        evaluator.evaluate(LearnerContext("learner-1", completed_skills=1), states)
        unlocked_at = states["first-steps"].unlocked_at

        again = evaluator.evaluate(LearnerContext("learner-1", completed_skills=0), states)

        assert again == []
        assert states["first-steps"].is_unlocked
        assert states["first-steps"].unlocked_at == unlocked_at

    def test_path_and_subject_targets(self, evaluator):
        states = {}
        context = LearnerContext(
            "learner-1",
            completed_paths=frozenset({"intro-science"}),
            completed_subjects=frozenset({"Mathematics"}),
        )

        assert unlocked_ids(evaluator.evaluate(context, states)) == ["scientist", "math-whiz"]

    def test_skill_mastery(self, evaluator):
        unlocked = evaluator.evaluate(LearnerContext("learner-1", mastered_skills=1), {})
        assert unlocked_ids(unlocked) == ["master-of-one"]

    def test_path_count_without_target(self):
        definition = AchievementDefinition(
            id="explorer",
            name="Explorer",
            achievement_type=AchievementType.LEARNING_PATH_COMPLETION,
            threshold=2,
        )
        evaluator = AchievementEvaluator([definition])

        one = LearnerContext("learner-1", completed_paths=frozenset({"a"}))
        two = LearnerContext("learner-1", completed_paths=frozenset({"a", "b"}))
        assert evaluator.evaluate(one, {}) == []
        assert unlocked_ids(evaluator.evaluate(two, {})) == ["explorer"]

    def test_custom_predicate(self):
        definition = AchievementDefinition(
            id="night-owl",
            name="Night Owl",
            achievement_type=AchievementType.CUSTOM,
            predicate=lambda ctx: ctx.learner_id == "owl",
        )
        evaluator = AchievementEvaluator([definition])

        assert evaluator.evaluate(LearnerContext("lark"), {}) == []
        assert unlocked_ids(evaluator.evaluate(LearnerContext("owl"), {})) == ["night-owl"]


def test_describe_joins_state(evaluator):
    states = {"fifty": AchievementState(is_unlocked=True)}
    described = evaluator.describe(states)

    assert [a.id for a in described] == [
        "first-steps",
        "fifty",
        "scientist",
        "math-whiz",
        "master-of-one",
    ]
    assert [a.is_unlocked for a in described] == [False, True, False, False, False]
    assert described[1].achievement_type == "points_earned"
    # Without a context, only unlocked achievements report progress
    assert [(a.progress, a.goal) for a in described] == [(0, 1), (50, 50), (0, 1), (0, 1), (0, 1)]


# ============================================================================
# Progress toward achievements
# ============================================================================


class TestProgress:
    def test_progress_toward_thresholds(self, evaluator):
        context = LearnerContext(
            "learner-1",
            total_points=35,
            completed_paths=frozenset({"intro-science"}),
        )
        described = {a.id: a for a in evaluator.describe({}, context)}

        assert (described["fifty"].progress, described["fifty"].goal) == (35, 50)
        assert described["fifty"].progress_percentage == 70
        assert described["scientist"].progress == 1
        assert described["math-whiz"].progress == 0
        assert described["first-steps"].progress == 0

    def test_progress_is_capped_at_goal(self, evaluator):
        context = LearnerContext("learner-1", total_points=400, completed_skills=9)
        described = {a.id: a for a in evaluator.describe({}, context)}

        assert described["fifty"].progress == 50
        assert described["first-steps"].progress == 1
        assert described["fifty"].progress_percentage == 100

    def test_unlocked_reports_full_progress(self, evaluator):
        states = {"fifty": AchievementState(is_unlocked=True)}
        described = evaluator.describe(states, LearnerContext("learner-1", total_points=10))

        assert described[1].progress == described[1].goal == 50

    def test_path_count_goal(self):
        definition = AchievementDefinition(
            id="explorer",
            name="Explorer",
            achievement_type=AchievementType.LEARNING_PATH_COMPLETION,
            threshold=3,
        )
        context = LearnerContext("learner-1", completed_paths=frozenset({"p1", "p2"}))

        assert AchievementEvaluator.goal_for(definition) == 3
        assert AchievementEvaluator.progress_for(definition, context) == 2

    def test_custom_predicate_goal(self):
        definition = AchievementDefinition(
            id="night-owl",
            name="Night Owl",
            achievement_type=AchievementType.CUSTOM,
            predicate=lambda ctx: ctx.learner_id == "owl",
        )

        assert AchievementEvaluator.progress_for(definition, LearnerContext("owl")) == 1
        assert AchievementEvaluator.progress_for(definition, LearnerContext("lark")) == 0


class TestDefinitionValidation:
    def test_custom_requires_predicate(self):
        with pytest.raises(ValueError, match="predicate"):
            AchievementDefinition("x", "X", AchievementType.CUSTOM)

    def test_subject_completion_requires_target(self):
        with pytest.raises(ValueError, match="target"):
            AchievementDefinition("x", "X", AchievementType.SUBJECT_COMPLETION)

    def test_negative_threshold(self):
        with pytest.raises(ValueError, match="threshold"):
            AchievementDefinition("x", "X", AchievementType.POINTS_EARNED, threshold=-1)

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Unknown achievement type"):
            AchievementType.from_string("streak")
