"""
Learning path catalog for SkillPath.

The catalog is the boundary to the authoring collaborator: it holds the
authored path and achievement definitions the engine serves. Definitions are
usually loaded from a YAML document shaped like config/learning_paths.yaml:

    paths:
      <path-id>:
        title: ...
        subject: ...
        grade_level: ...
        difficulty: beginner | intermediate | advanced
        skills:
          - id: ...
            title: ...
            points: 10
            prerequisites: [...]
    achievements:
      - id: ...
        name: ...
        type: points_earned | skills_completed | skill_mastery |
              learning_path_completion | subject_completion
        threshold: 1
        target: ...

Graph validation (cycles, dangling prerequisites) is not done here; it is
the SkillGraphStore's job when a path is loaded for serving.
"""

import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml

from core.dto.skills import (
    AchievementDefinition,
    AchievementType,
    LearningPathDefinition,
    SkillDefinition,
)
from core.errors import NotFound

logger = logging.getLogger(__name__)


class PathCatalog:
    """Authored learning paths and achievements.

    Usage:
        catalog = PathCatalog.from_yaml(Config.CATALOG_PATH)
        path = catalog.get_path("intro-science")
        science = catalog.list_paths(subject="Science")
    """

    def __init__(
        self,
        paths: Iterable[LearningPathDefinition] = (),
        achievements: Iterable[AchievementDefinition] = (),
    ):
        self._paths: Dict[str, LearningPathDefinition] = {}
        self._lock = threading.RLock()
        for path in paths:
            self.add_path(path)

        self.achievements: List[AchievementDefinition] = []
        seen = set()
        for achievement in achievements:
            if achievement.id in seen:
                raise ValueError(f"Duplicate achievement id '{achievement.id}'")
            seen.add(achievement.id)
            self.achievements.append(achievement)

    # =========================================================================
    # Loading
    # =========================================================================

    @classmethod
    def from_yaml(cls, catalog_path: Path) -> "PathCatalog":
        """Load a catalog from YAML.

        Raises:
            FileNotFoundError: If the catalog file does not exist
            ValueError: If the document is invalid
        """
        catalog_path = Path(catalog_path)
        if not catalog_path.exists():
            raise FileNotFoundError(f"Learning path catalog not found: {catalog_path}")

        try:
            with open(catalog_path, "r") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Failed to parse learning path catalog YAML: {e}")

        catalog = cls.from_dict(data)
        logger.info(
            f"Loaded {len(catalog._paths)} learning paths and "
            f"{len(catalog.achievements)} achievements from {catalog_path}"
        )
        return catalog

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PathCatalog":
        """Build a catalog from an already parsed document."""
        if not data or "paths" not in data:
            raise ValueError("Invalid learning path catalog: missing 'paths' key")

        paths = [
            cls._parse_path(path_id, path_data)
            for path_id, path_data in (data.get("paths") or {}).items()
        ]
        achievements = [cls._parse_achievement(a) for a in data.get("achievements") or []]
        return cls(paths, achievements)

    @staticmethod
    def _parse_path(path_id: str, data: Dict[str, Any]) -> LearningPathDefinition:
        try:
            skills = tuple(
                SkillDefinition(
                    id=str(skill["id"]),
                    path_id=str(path_id),
                    title=skill["title"],
                    points=skill["points"],
                    skill_type=skill.get("type", "concept"),
                    difficulty=skill.get("difficulty", 1),
                    estimated_minutes=skill.get("estimated_minutes"),
                    prerequisites=frozenset(str(p) for p in skill.get("prerequisites") or []),
                    order_index=skill.get("order_index", index),
                    description=skill.get("description"),
                )
                for index, skill in enumerate(data.get("skills") or [])
            )
            return LearningPathDefinition(
                id=str(path_id),
                title=data["title"],
                subject=data["subject"],
                grade_level=str(data.get("grade_level", "")),
                difficulty=data.get("difficulty", "beginner"),
                skills=skills,
                description=data.get("description"),
                estimated_hours=data.get("estimated_hours"),
            )
        except KeyError as e:
            raise ValueError(f"Learning path '{path_id}': missing field {e}")
        except (TypeError, ValueError) as e:
            raise ValueError(f"Learning path '{path_id}': {e}")

    @staticmethod
    def _parse_achievement(data: Dict[str, Any]) -> AchievementDefinition:
        try:
            return AchievementDefinition(
                id=str(data["id"]),
                name=data["name"],
                achievement_type=AchievementType.from_string(data["type"]),
                threshold=data.get("threshold", 1),
                target=data.get("target"),
                description=data.get("description"),
                points=data.get("points", 0),
                difficulty=data.get("difficulty", "medium"),
            )
        except KeyError as e:
            raise ValueError(f"Achievement {data.get('id', '?')}: missing field {e}")
        except (TypeError, ValueError) as e:
            raise ValueError(f"Achievement {data.get('id', '?')}: {e}")

    # =========================================================================
    # Queries
    # =========================================================================

    def add_path(self, path: LearningPathDefinition) -> None:
        with self._lock:
            if path.id in self._paths:
                raise ValueError(f"Duplicate learning path id '{path.id}'")
            self._paths[path.id] = path

    def get_path(self, path_id: str) -> LearningPathDefinition:
        path = self._paths.get(path_id)
        if path is None:
            raise NotFound("Learning path", path_id)
        return path

    def path_ids(self) -> List[str]:
        return list(self._paths)

    def list_paths(
        self,
        subject: Optional[str] = None,
        grade_level: Optional[str] = None,
        difficulty: Optional[str] = None,
    ) -> List[LearningPathDefinition]:
        """Paths matching all given filters (case-insensitive)."""

        def matches(value: str, wanted: Optional[str]) -> bool:
            return wanted is None or str(value).lower() == str(wanted).lower()

        return [
            path
            for path in self._paths.values()
            if matches(path.subject, subject)
            and matches(path.grade_level, grade_level)
            and matches(path.difficulty, difficulty)
        ]
