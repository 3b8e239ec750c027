"""
Unit tests for ProgressAnalyzer.

Tests cover the summary, subject rollups, points history and activity
timeline built from snapshots, without any store.
"""

import sys
import os
from datetime import datetime, timezone

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from core.dto.snapshots import Achievement
from core.progress_analyzer import ProgressAnalyzer


def achievement(achievement_id, points=5, unlocked_at=None):
    return Achievement(
        id=achievement_id,
        name=achievement_id.title(),
        achievement_type="skills_completed",
        points=points,
        difficulty="easy",
        is_unlocked=unlocked_at is not None,
        unlocked_at=unlocked_at,
    )


@pytest.fixture
def snapshots(engine, aggregator):
    """Learner completed A and half of B in intro-science; fractions untouched."""
    science = aggregator.initial_state("learner-1", "intro-science")
    engine.complete_skill(science, "A")
    engine.update_progress(science, "B", 50)
    aggregator.recompute(science)

    fractions = aggregator.initial_state("learner-1", "fractions")
    return [aggregator.snapshot(science), aggregator.snapshot(fractions)]


# ============================================================================
# Test build_summary()
# ============================================================================


def test_build_summary(snapshots):
    feb = datetime(2026, 2, 1, tzinfo=timezone.utc)
    achievements = [achievement("first", points=5, unlocked_at=feb), achievement("later")]

    summary = ProgressAnalyzer.build_summary(snapshots, achievements)

    assert summary.learning_paths.total == 2
    assert summary.learning_paths.completed == 0
    assert summary.learning_paths.in_progress == 1
    assert summary.learning_paths.avg_progress == 17  # mean of 33 and 0, half up

    assert summary.skills.total == 5
    assert summary.skills.completed == 1
    assert summary.skills.in_progress == 1
    assert summary.skills.mastered == 0
    assert summary.skills.total_points == 20

    assert summary.achievements.total == 2
    assert summary.achievements.unlocked == 1
    assert summary.achievements.points == 5
    assert summary.achievements.completion_percentage == 50

    assert len(summary.recent_activity) <= 5
    print("✓ test_build_summary passed")


def test_build_summary_empty():
    summary = ProgressAnalyzer.build_summary([], [])

    assert summary.learning_paths.total == 0
    assert summary.learning_paths.avg_progress == 0
    assert summary.achievements.completion_percentage == 0
    assert summary.subjects == []
    assert summary.recent_activity == []


# ============================================================================
# Test subject_progress()
# ============================================================================


def test_subject_progress_sorted_by_subject(snapshots):
    subjects = ProgressAnalyzer.subject_progress(snapshots)

    assert [s.subject for s in subjects] == ["Mathematics", "Science"]
    science = subjects[1]
    assert science.path_count == 1
    assert science.completed_paths == 0
    assert science.total_skills == 3
    assert science.completed_skills == 1
    assert science.total_points == 20
    assert science.skill_completion_percentage == 33
    assert subjects[0].total_points == 0


# ============================================================================
# Test points_history()
# ============================================================================


def test_points_history(snapshots):
    feb = datetime(2026, 2, 1, tzinfo=timezone.utc)
    history = ProgressAnalyzer.points_history(
        snapshots, [achievement("first", points=5, unlocked_at=feb), achievement("locked")]
    )

    assert history.total_points == 25
    assert [(p.item_id, p.source_type, p.points) for p in history.points_history] == [
        ("A", "skill", 10),
        ("B", "skill", 10),
        ("first", "achievement", 5),
    ]
    assert [(m.month, m.points) for m in history.chart_data] == [("2026-01", 20), ("2026-02", 5)]


# ============================================================================
# Test activity_timeline()
# ============================================================================


def test_activity_timeline_most_recent_first(snapshots):
    timeline = ProgressAnalyzer.activity_timeline(snapshots, [])

    dates = [item.activity_date for item in timeline]
    assert dates == sorted(dates, reverse=True)
    actions = {(item.activity_type, item.item_id, item.action) for item in timeline}
    assert ("skill", "A", "completed") in actions
    assert ("skill", "B", "started") in actions
    assert ("learning_path", "intro-science", "started") in actions
    assert not any(item.item_id == "fractions" for item in timeline)


def test_activity_timeline_pagination(snapshots):
    full = ProgressAnalyzer.activity_timeline(snapshots, [])
    page = ProgressAnalyzer.activity_timeline(snapshots, [], limit=2, offset=1)

    assert page == full[1:3]
