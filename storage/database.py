"""
Database management for SkillPath.
Handles SQLite operations and schema management for learner progress.
"""

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from config import Config
from core.errors import PersistenceError

logger = logging.getLogger(__name__)


class Database:
    """Manages SQLite storage of learner progress records.

    Implements the ProgressStore contract. One connection is shared between
    threads and guarded by a lock; every save runs in a single transaction.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. Uses Config.DB_PATH if not provided.
        """
        self.db_path = db_path or Config.DB_PATH
        self.conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def connect(self):
        """Establish database connection."""
        try:
            self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open database {self.db_path}: {e}") from e
        self.conn.row_factory = sqlite3.Row  # Enable dict-like access

    def close(self):
        """Close database connection."""
        with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None

    def __enter__(self):
        """Context manager entry."""
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        if self.conn:
            if exc_type is None:
                self.conn.commit()
            else:
                self.conn.rollback()
            self.close()

    def initialize(self):
        """Create all tables and indexes."""
        with self._lock:
            if not self.conn:
                self.connect()
            try:
                self._create_tables()
                self._create_indexes()
                self.conn.commit()
            except sqlite3.Error as e:
                raise PersistenceError(f"Cannot initialize database schema: {e}") from e

    def _create_tables(self):
        """Create database tables."""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS progress_records (
                learner_id TEXT NOT NULL,
                entity_id TEXT NOT NULL,
                entity_type TEXT NOT NULL,
                payload TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (learner_id, entity_id)
            )
        """)

    def _create_indexes(self):
        """Create indexes for better query performance."""
        self.conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_progress_records_learner
            ON progress_records(learner_id, entity_type)
        """)

    def _ensure_connected(self):
        if not self.conn:
            self.initialize()

    # ==================== PROGRESS STORE ====================

    def load(self, learner_id: str, entity_id: str) -> Optional[Dict[str, Any]]:
        """Load one progress record.

        Args:
            learner_id: Learner identifier
            entity_id: Namespaced entity id (e.g. "skill:sci-observation")

        Returns:
            Record dict or None if never saved
        """
        records = self.load_many(learner_id, [entity_id])
        return records.get(entity_id)

    def load_many(self, learner_id: str, entity_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """Load several progress records for a learner."""
        ids = list(entity_ids)
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        with self._lock:
            self._ensure_connected()
            try:
                rows = self.conn.execute(
                    f"""
                    SELECT entity_id, payload FROM progress_records
                    WHERE learner_id = ? AND entity_id IN ({placeholders})
                """,
                    [learner_id, *ids],
                ).fetchall()
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to load progress for {learner_id}: {e}") from e
        return {row["entity_id"]: json.loads(row["payload"]) for row in rows}

    def save(self, learner_id: str, records: Dict[str, Dict[str, Any]]) -> None:
        """Upsert all records in a single transaction."""
        if not records:
            return
        rows = [
            (learner_id, entity_id, entity_id.split(":", 1)[0], json.dumps(payload))
            for entity_id, payload in records.items()
        ]
        with self._lock:
            self._ensure_connected()
            try:
                self.conn.executemany(
                    """
                    INSERT INTO progress_records (learner_id, entity_id, entity_type, payload)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(learner_id, entity_id) DO UPDATE SET
                        payload = excluded.payload,
                        updated_at = CURRENT_TIMESTAMP
                """,
                    rows,
                )
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise PersistenceError(f"Failed to save progress for {learner_id}: {e}") from e
        logger.debug(f"Saved {len(rows)} records for {learner_id}")
