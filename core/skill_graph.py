"""
Skill prerequisite graph for SkillPath.

Holds skill definitions and prerequisite edges for every loaded learning
path and answers the graph queries the engine needs (lock state, dependents,
learning order). A path is only served once its graph has been validated.
"""

import logging
import threading
from typing import Dict, List, Mapping, Tuple

from core.dto.skills import LearningPathDefinition, SkillDefinition, SkillStatus
from core.errors import GraphError, NotFound

logger = logging.getLogger(__name__)


def detect_cycles(prerequisites: Mapping[str, Tuple[str, ...]]) -> List[List[str]]:
    """Detect cycles in a prerequisite mapping (should be none for a valid DAG).

    Iterative depth-first search with white/grey/black colouring, so chain
    length is not bounded by the interpreter's recursion limit.

    Args:
        prerequisites: skill id -> ids of its prerequisites

    Returns:
        List of cycles, each as [start, ..., start] following prerequisite edges
    """
    white, grey, black = 0, 1, 2
    color = {node: white for node in prerequisites}
    cycles = []

    for root in prerequisites:
        if color[root] != white:
            continue
        color[root] = grey
        path = [root]
        stack = [(root, iter(prerequisites.get(root, ())))]

        while stack:
            node, prereqs = stack[-1]
            advanced = False
            for prereq in prereqs:
                state = color.get(prereq, white)
                if state == grey:
                    # Cycle found
                    cycle = path[path.index(prereq) :] + [prereq]
                    if cycle not in cycles:
                        cycles.append(cycle)
                elif state == white:
                    color[prereq] = grey
                    path.append(prereq)
                    stack.append((prereq, iter(prerequisites.get(prereq, ()))))
                    advanced = True
                    break
            if not advanced:
                color[node] = black
                path.pop()
                stack.pop()

    return cycles


class SkillGraphStore:
    """Directed acyclic graph of skill prerequisites, per learning path.

    Thread Safety:
        Loading is protected by a lock. Queries read immutable definitions
        and precomputed indexes, so they need no locking.
    """

    def __init__(self):
        self._paths: Dict[str, LearningPathDefinition] = {}
        self._skills: Dict[str, SkillDefinition] = {}
        self._dependents: Dict[str, Tuple[str, ...]] = {}
        self._order: Dict[str, Tuple[str, ...]] = {}
        self._lock = threading.RLock()

    # =========================================================================
    # Loading
    # =========================================================================

    def load(self, path: LearningPathDefinition) -> None:
        """Validate and register a learning path.

        Args:
            path: Authored path definition

        Raises:
            GraphError: On a cycle, a self-prerequisite, a prerequisite outside
                the path, or a skill id already owned by another path
        """
        with self._lock:
            skills = {}
            for skill in path.skills:
                if skill.id in skills:
                    raise GraphError(path.id, f"duplicate skill id '{skill.id}'")
                owner = self._skills.get(skill.id)
                if owner is not None and owner.path_id != path.id:
                    raise GraphError(
                        path.id, f"skill '{skill.id}' already belongs to path '{owner.path_id}'"
                    )
                if skill.path_id != path.id:
                    raise GraphError(
                        path.id, f"skill '{skill.id}' declares path '{skill.path_id}'"
                    )
                skills[skill.id] = skill

            for skill in skills.values():
                if skill.id in skill.prerequisites:
                    raise GraphError(
                        path.id,
                        f"skill '{skill.id}' lists itself as prerequisite",
                        cycle=[skill.id, skill.id],
                    )
                unknown = sorted(p for p in skill.prerequisites if p not in skills)
                if unknown:
                    raise GraphError(
                        path.id,
                        f"skill '{skill.id}' has unknown prerequisites: {', '.join(unknown)}",
                    )

            prerequisites = {
                skill.id: self._sorted_ids(skill.prerequisites, skills) for skill in path.skills
            }
            cycles = detect_cycles(prerequisites)
            if cycles:
                cycle = cycles[0]
                raise GraphError(
                    path.id, f"prerequisite cycle: {' -> '.join(cycle)}", cycle=cycle
                )

            # Replace a previous version of the same path
            previous = self._paths.get(path.id)
            if previous is not None:
                for skill_id in previous.skill_ids:
                    self._skills.pop(skill_id, None)
                    self._dependents.pop(skill_id, None)

            dependents: Dict[str, List[str]] = {skill_id: [] for skill_id in skills}
            for skill in path.skills:
                for prereq in prerequisites[skill.id]:
                    dependents[prereq].append(skill.id)

            self._skills.update(skills)
            self._dependents.update({k: tuple(v) for k, v in dependents.items()})
            self._order[path.id] = tuple(self._topological_sort(path, prerequisites))
            self._paths[path.id] = path

        logger.info(
            f"Loaded path '{path.id}' with {len(skills)} skills and "
            f"{sum(len(p) for p in prerequisites.values())} prerequisite edges"
        )

    @staticmethod
    def _sorted_ids(ids, skills: Mapping[str, SkillDefinition]) -> Tuple[str, ...]:
        return tuple(sorted(ids, key=lambda i: (skills[i].order_index, i)))

    @staticmethod
    def _topological_sort(
        path: LearningPathDefinition, prerequisites: Mapping[str, Tuple[str, ...]]
    ) -> List[str]:
        """Learning order (prerequisites first), ties broken by order_index.

        Uses Kahn's algorithm; the graph has already been checked for cycles.
        """
        position = {skill.id: (skill.order_index, i) for i, skill in enumerate(path.skills)}
        in_degree = {skill_id: len(prereqs) for skill_id, prereqs in prerequisites.items()}
        adj: Dict[str, List[str]] = {skill_id: [] for skill_id in prerequisites}
        for skill_id, prereqs in prerequisites.items():
            for prereq in prereqs:
                adj[prereq].append(skill_id)

        queue = [skill_id for skill_id, degree in in_degree.items() if degree == 0]
        result = []
        while queue:
            # Sort to ensure deterministic ordering
            queue.sort(key=lambda s: position[s])
            current = queue.pop(0)
            result.append(current)
            for neighbor in adj[current]:
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    queue.append(neighbor)
        return result

    # =========================================================================
    # Lookups
    # =========================================================================

    def is_loaded(self, path_id: str) -> bool:
        return path_id in self._paths

    def paths(self) -> List[LearningPathDefinition]:
        return list(self._paths.values())

    def get_path(self, path_id: str) -> LearningPathDefinition:
        path = self._paths.get(path_id)
        if path is None:
            raise NotFound("Learning path", path_id)
        return path

    def get_skill(self, skill_id: str) -> SkillDefinition:
        skill = self._skills.get(skill_id)
        if skill is None:
            raise NotFound("Skill", skill_id)
        return skill

    def path_of(self, skill_id: str) -> str:
        return self.get_skill(skill_id).path_id

    def topological_order(self, path_id: str) -> Tuple[str, ...]:
        self.get_path(path_id)
        return self._order[path_id]

    # =========================================================================
    # Graph queries
    # =========================================================================

    def dependents_of(self, skill_id: str) -> List[SkillDefinition]:
        """Get all skills that list this skill as a prerequisite."""
        self.get_skill(skill_id)
        return [self._skills[dependent] for dependent in self._dependents.get(skill_id, ())]

    def missing_prerequisites(
        self, skill_id: str, statuses: Mapping[str, SkillStatus]
    ) -> List[str]:
        """Prerequisites of the skill that are not completed or mastered."""
        skill = self.get_skill(skill_id)
        return [
            prereq
            for prereq in self._sorted_ids(skill.prerequisites, self._skills)
            if not statuses.get(prereq, SkillStatus.NOT_STARTED).is_done
        ]

    def is_locked(self, skill_id: str, statuses: Mapping[str, SkillStatus]) -> bool:
        """True iff any prerequisite's status is not completed or mastered."""
        return bool(self.missing_prerequisites(skill_id, statuses))

    def newly_unlocked(
        self,
        skill_id: str,
        before: Mapping[str, SkillStatus],
        after: Mapping[str, SkillStatus],
    ) -> List[str]:
        """Dependents of skill_id whose lock flag flipped from locked to unlocked."""
        return [
            dependent.id
            for dependent in self.dependents_of(skill_id)
            if self.is_locked(dependent.id, before) and not self.is_locked(dependent.id, after)
        ]

    def lock_flags(self, path_id: str, statuses: Mapping[str, SkillStatus]) -> Dict[str, bool]:
        """Lock flag for every skill of a path, derived from the given statuses."""
        return {
            skill_id: self.is_locked(skill_id, statuses)
            for skill_id in self.get_path(path_id).skill_ids
        }

    def get_prerequisites(self, skill_id: str) -> List[SkillDefinition]:
        """Get all direct prerequisites for a skill."""
        skill = self.get_skill(skill_id)
        return [self._skills[p] for p in self._sorted_ids(skill.prerequisites, self._skills)]
