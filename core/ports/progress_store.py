"""Persistence contract for learner progress.

Records are plain JSON-compatible dicts keyed by (learner_id, entity_id).
Entity ids are namespaced so skills, paths, achievements and recommendation
dismissals can share one keyspace: "skill:<id>", "path:<id>",
"achievement:<id>", "recommendation:<skill id>".
"""

from typing import Any, Dict, Iterable, Optional, Protocol


def skill_key(skill_id: str) -> str:
    return f"skill:{skill_id}"


def path_key(path_id: str) -> str:
    return f"path:{path_id}"


def achievement_key(achievement_id: str) -> str:
    return f"achievement:{achievement_id}"


def recommendation_key(skill_id: str) -> str:
    return f"recommendation:{skill_id}"


class ProgressStore(Protocol):
    """Save/load interface keyed by (learner_id, entity_id).

    Implementations raise core.errors.PersistenceError on storage failures.
    """

    def load(self, learner_id: str, entity_id: str) -> Optional[Dict[str, Any]]:
        """Load one record, or None if it was never saved."""
        ...

    def load_many(self, learner_id: str, entity_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """Load several records; missing ones are left out of the result."""
        ...

    def save(self, learner_id: str, records: Dict[str, Dict[str, Any]]) -> None:
        """Write all records atomically: either every record is stored or none."""
        ...
