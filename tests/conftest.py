"""
Shared fixtures for SkillPath tests.

Two small paths are used throughout:
- intro-science: A (10 pts) -> B (20 pts, requires A) -> C (30 pts, requires A and B)
- fractions (Mathematics): F1 (10 pts) -> F2 (15 pts, requires F1)
"""

import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from core.dto.skills import (
    AchievementDefinition,
    AchievementType,
    LearningPathDefinition,
    SkillDefinition,
)
from core.path_aggregator import PathAggregator
from core.progression_engine import ProgressionEngine
from core.skill_graph import SkillGraphStore
from storage.catalog import PathCatalog

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
CATALOG_YAML = os.path.join(REPO_ROOT, "config", "learning_paths.yaml")


class FakeClock:
    """Deterministic clock advancing one minute per call."""

    def __init__(self, start=None, step=timedelta(minutes=1)):
        self.current = start or datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self):
        now = self.current
        self.current += self.step
        return now


def make_skill(skill_id, path_id, points=10, prerequisites=(), order_index=0, **kwargs):
    return SkillDefinition(
        id=skill_id,
        path_id=path_id,
        title=f"Skill {skill_id}",
        points=points,
        prerequisites=frozenset(prerequisites),
        order_index=order_index,
        **kwargs,
    )


def make_path(path_id, skills, subject="Science", grade_level="6", difficulty="beginner"):
    return LearningPathDefinition(
        id=path_id,
        title=path_id.replace("-", " ").title(),
        subject=subject,
        grade_level=grade_level,
        difficulty=difficulty,
        skills=tuple(skills),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def intro_science():
    return make_path(
        "intro-science",
        [
            make_skill("A", "intro-science", points=10, order_index=0),
            make_skill("B", "intro-science", points=20, prerequisites=["A"], order_index=1),
            make_skill("C", "intro-science", points=30, prerequisites=["A", "B"], order_index=2),
        ],
    )


@pytest.fixture
def fractions():
    return make_path(
        "fractions",
        [
            make_skill("F1", "fractions", points=10, order_index=0),
            make_skill("F2", "fractions", points=15, prerequisites=["F1"], order_index=1),
        ],
        subject="Mathematics",
        grade_level="5",
        difficulty="intermediate",
    )


@pytest.fixture
def achievement_definitions():
    return [
        AchievementDefinition(
            id="first-steps",
            name="First Steps",
            achievement_type=AchievementType.SKILLS_COMPLETED,
            threshold=1,
            points=5,
        ),
        AchievementDefinition(
            id="fifty",
            name="Fifty Points",
            achievement_type=AchievementType.POINTS_EARNED,
            threshold=50,
            points=10,
        ),
        AchievementDefinition(
            id="scientist",
            name="Young Scientist",
            achievement_type=AchievementType.LEARNING_PATH_COMPLETION,
            target="intro-science",
            points=25,
        ),
        AchievementDefinition(
            id="math-whiz",
            name="Math Whiz",
            achievement_type=AchievementType.SUBJECT_COMPLETION,
            target="Mathematics",
            points=50,
        ),
        AchievementDefinition(
            id="master-of-one",
            name="Master of One",
            achievement_type=AchievementType.SKILL_MASTERY,
            threshold=1,
            points=10,
        ),
    ]


@pytest.fixture
def catalog(intro_science, fractions, achievement_definitions):
    return PathCatalog([intro_science, fractions], achievement_definitions)


@pytest.fixture
def graph(intro_science, fractions):
    graph = SkillGraphStore()
    graph.load(intro_science)
    graph.load(fractions)
    return graph


@pytest.fixture
def engine(graph, clock):
    return ProgressionEngine(graph, clock=clock)


@pytest.fixture
def aggregator(graph):
    return PathAggregator(graph)
