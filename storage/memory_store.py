"""
In-memory ProgressStore for tests and ephemeral sessions.
"""

import copy
import threading
from typing import Any, Dict, Iterable, Optional, Tuple


class InMemoryStore:
    """ProgressStore backed by a dict. Records are copied on the way in and out."""

    def __init__(self):
        self._records: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self.save_count = 0

    def load(self, learner_id: str, entity_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._records.get((learner_id, entity_id))
            return copy.deepcopy(record) if record is not None else None

    def load_many(self, learner_id: str, entity_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {
                entity_id: copy.deepcopy(self._records[(learner_id, entity_id)])
                for entity_id in entity_ids
                if (learner_id, entity_id) in self._records
            }

    def save(self, learner_id: str, records: Dict[str, Dict[str, Any]]) -> None:
        staged = {(learner_id, k): copy.deepcopy(v) for k, v in records.items()}
        with self._lock:
            self._records.update(staged)
            self.save_count += 1
