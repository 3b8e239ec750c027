"""
Error taxonomy for the skill progression engine.

Validation and state-machine errors are raised synchronously to the caller
and never retried. PersistenceError is raised by stores and retried by the
service before it reaches the caller.
"""

from typing import List, Optional


class ProgressionError(Exception):
    """Base class for all progression errors."""

    code = "progression_error"


class ValidationError(ProgressionError):
    """Input outside its allowed range."""

    code = "validation_error"


class NotFound(ProgressionError):
    """Unknown path, skill or achievement id."""

    code = "not_found"

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} '{entity_id}' not found")


class SkillLocked(ProgressionError):
    """A prerequisite of the skill is not completed or mastered."""

    code = "skill_locked"

    def __init__(self, skill_id: str, missing_prerequisites: List[str]):
        self.skill_id = skill_id
        self.missing_prerequisites = list(missing_prerequisites)
        super().__init__(
            f"Skill '{skill_id}' is locked; unmet prerequisites: "
            f"{', '.join(self.missing_prerequisites)}"
        )


class TransitionError(ProgressionError):
    """Invalid state transition attempted."""

    code = "invalid_transition"

    def __init__(self, skill_id: str, status: str, message: Optional[str] = None):
        self.skill_id = skill_id
        self.status = status
        super().__init__(message or f"Skill '{skill_id}' cannot transition from '{status}'")


class AlreadyStarted(TransitionError):
    code = "already_started"

    def __init__(self, skill_id: str, status: str):
        super().__init__(skill_id, status, f"Skill '{skill_id}' already started (status: {status})")


class TerminalState(TransitionError):
    code = "terminal_state"

    def __init__(self, skill_id: str, status: str):
        super().__init__(skill_id, status, f"Skill '{skill_id}' is already {status}")


class GraphError(ProgressionError):
    """Invalid prerequisite graph (cycle, dangling or duplicate skill)."""

    code = "graph_error"

    def __init__(self, path_id: str, message: str, cycle: Optional[List[str]] = None):
        self.path_id = path_id
        self.reason = message
        self.cycle = list(cycle) if cycle else []
        super().__init__(f"Learning path '{path_id}': {message}")


class PersistenceError(ProgressionError):
    """Storage failure (raised by stores; surfaced once retries are exhausted)."""

    code = "persistence_error"
