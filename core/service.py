"""
ProgressionService - Service Layer for SkillPath

This module is the single entry point for learner progression. It wires the
skill graph, the progression engine, the path aggregator and the achievement
evaluator together and makes every mutating call one logical transaction:

    lock check -> engine transition -> path recompute
               -> achievement evaluation -> persistence commit -> result

Architecture Pattern:
    - Explicit learner identity on every call (no ambient user)
    - Copy-on-write: transitions run on a working copy that only replaces
      the committed state after the store accepted it
    - Readers get immutable, versioned snapshots and never wait for writers
    - Collaborators (store, mastery and recommendation providers) are injected

Locking:
    Mutations of one (learner, path) pair are serialized by a per-pair RLock.
    Achievement evaluation and the commit itself additionally hold a
    per-learner RLock, always taken after the path lock.

Usage:
    catalog = PathCatalog.from_yaml(Config.CATALOG_PATH)
    with Database() as db:
        service = ProgressionService(catalog, db)
        service.start_skill("learner-1", "sci-observation")
        result = service.complete_skill("learner-1", "sci-observation")
        snapshot = service.get_path_snapshot("learner-1", "intro-science")
"""

import copy
import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Set, Tuple

from config import Config
from core.achievements import AchievementEvaluator, LearnerContext
from core.dto.progress import (
    ActivityItem,
    PointsHistory,
    ProgressSummary,
    Recommendation,
    SubjectProgress,
)
from core.dto.skills import (
    AchievementState,
    DismissalState,
    LearnerPathState,
    SkillState,
    SkillStatus,
)
from core.dto.snapshots import Achievement, CompletionResult, PathSnapshot, SkillSnapshot
from core.errors import GraphError, NotFound, PersistenceError, ValidationError
from core.path_aggregator import PathAggregator
from core.ports.progress_store import (
    ProgressStore,
    achievement_key,
    path_key,
    recommendation_key,
    skill_key,
)
from core.progress_analyzer import ProgressAnalyzer
from core.progression_engine import EventType, ProgressionEngine, SkillEvent, utc_now
from core.providers import (
    MasteryPromotionProvider,
    NextSkillRecommender,
    NoMasteryProvider,
    RecommendationProvider,
)
from core.skill_graph import SkillGraphStore
from storage.catalog import PathCatalog

logger = logging.getLogger(__name__)

Transition = Callable[[LearnerPathState], List[SkillEvent]]


class ProgressionService:
    """
    Transactional facade over the progression engine.

    Example:
        service = ProgressionService(catalog, InMemoryStore())
        service.load_path("intro-science")
        service.update_skill_progress("learner-1", "sci-observation", 40)
    """

    def __init__(
        self,
        catalog: PathCatalog,
        store: ProgressStore,
        graph: Optional[SkillGraphStore] = None,
        clock=None,
        mastery_provider: Optional[MasteryPromotionProvider] = None,
        recommendation_provider: Optional[RecommendationProvider] = None,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the service.

        Args:
            catalog: Authored paths and achievements
            store: Persistence collaborator (ProgressStore)
            graph: Skill graph to load paths into (a fresh one by default)
            clock: Returns the current time; defaults to UTC now
            mastery_provider: Decides mastery promotion in sync_mastery
            recommendation_provider: Ranks recommendations
            max_retries: Save/load attempts (default: Config.PERSISTENCE_MAX_RETRIES)
            base_delay: First backoff delay in seconds (default: Config.PERSISTENCE_BASE_DELAY)
            sleep: Sleep function used between retries
        """
        self.catalog = catalog
        self.store = store
        self.graph = graph or SkillGraphStore()
        self.engine = ProgressionEngine(self.graph, clock=clock)
        self.aggregator = PathAggregator(self.graph)
        self.evaluator = AchievementEvaluator(catalog.achievements, clock=clock)
        self.mastery_provider = mastery_provider or NoMasteryProvider()
        self._clock = clock or utc_now

        self._learning_order: Dict[str, List[str]] = {}
        self.recommendation_provider = recommendation_provider or NextSkillRecommender(
            self._learning_order
        )

        self.max_retries = max(
            1, max_retries if max_retries is not None else Config.PERSISTENCE_MAX_RETRIES
        )
        self.base_delay = base_delay if base_delay is not None else Config.PERSISTENCE_BASE_DELAY
        self._sleep = sleep

        # Committed state and its published snapshot, per (learner, path)
        self._committed: Dict[Tuple[str, str], LearnerPathState] = {}
        self._published: Dict[Tuple[str, str], PathSnapshot] = {}
        # Committed achievement states, per learner
        self._achievements: Dict[str, Dict[str, AchievementState]] = {}
        # Dismissed recommendations, per learner
        self._dismissals: Dict[str, Dict[str, DismissalState]] = {}

        self._registry_lock = threading.Lock()
        self._path_locks: Dict[Tuple[str, str], threading.RLock] = {}
        self._learner_locks: Dict[str, threading.RLock] = {}
        self._load_lock = threading.RLock()
        # Paths that failed graph validation, with the error that rejected them
        self._rejected: Dict[str, GraphError] = {}

    # =========================================================================
    # Path loading
    # =========================================================================

    def load_path(self, path_id: str) -> PathSnapshot:
        """
        Validate and load a catalog path, returning its template snapshot.

        Loading an already loaded path is a no-op. A rejected path raises
        the same GraphError every time it is requested.

        Raises:
            NotFound: Path is not in the catalog
            GraphError: Path graph is invalid; the path is never served
        """
        definition = self.catalog.get_path(path_id)
        with self._load_lock:
            if path_id in self._rejected:
                self._raise_rejected(path_id)
            if not self.graph.is_loaded(path_id):
                try:
                    self.graph.load(definition)
                except GraphError as e:
                    self._rejected[path_id] = e
                    logger.error(f"Rejected learning path '{path_id}': {e}")
                    raise
                self._learning_order[path_id] = list(self.graph.topological_order(path_id))
        return self.aggregator.template_snapshot(path_id)

    def list_paths(
        self,
        subject: Optional[str] = None,
        grade_level: Optional[str] = None,
        difficulty: Optional[str] = None,
    ) -> List[PathSnapshot]:
        """Template snapshots of the servable catalog paths matching the filters."""
        self._load_catalog()
        return [
            self.aggregator.template_snapshot(path.id)
            for path in self.catalog.list_paths(subject, grade_level, difficulty)
            if self.graph.is_loaded(path.id)
        ]

    def _load_catalog(self) -> None:
        """Load every catalog path not loaded yet; invalid ones are skipped."""
        for path_id in self.catalog.path_ids():
            if self.graph.is_loaded(path_id) or path_id in self._rejected:
                continue
            try:
                self.load_path(path_id)
            except GraphError:
                continue

    def _loaded_path_ids(self) -> List[str]:
        self._load_catalog()
        return [p for p in self.catalog.path_ids() if self.graph.is_loaded(p)]

    def _raise_rejected(self, path_id: str) -> None:
        error = self._rejected[path_id]
        raise GraphError(error.path_id, error.reason, cycle=error.cycle)

    def _path_for_skill(self, skill_id: str) -> str:
        """Owning path of a skill; skills of rejected paths raise their GraphError."""
        try:
            return self.graph.path_of(skill_id)
        except NotFound:
            self._load_catalog()
        try:
            return self.graph.path_of(skill_id)
        except NotFound:
            for path_id in list(self._rejected):
                if skill_id in self.catalog.get_path(path_id).skill_ids:
                    self._raise_rejected(path_id)
            raise

    def _ensure_path(self, path_id: str) -> None:
        if not self.graph.is_loaded(path_id):
            self.load_path(path_id)

    # =========================================================================
    # Mutations
    # =========================================================================

    def start_skill(self, learner_id: str, skill_id: str) -> SkillSnapshot:
        """
        Start a skill (not_started -> in_progress).

        Raises:
            NotFound, AlreadyStarted, SkillLocked, PersistenceError
        """
        snapshot, _, _ = self._transact(
            learner_id, skill_id, lambda state: self.engine.start_skill(state, skill_id)
        )
        return snapshot.skill(skill_id)

    def update_skill_progress(self, learner_id: str, skill_id: str, percent) -> SkillSnapshot:
        """
        Record progress on a skill; 100 completes it.

        Achievements unlocked along the way are committed and can be read
        through get_achievements.

        Raises:
            ValidationError, NotFound, TerminalState, SkillLocked, PersistenceError
        """
        snapshot, _, _ = self._transact(
            learner_id,
            skill_id,
            lambda state: self.engine.update_progress(state, skill_id, percent),
        )
        return snapshot.skill(skill_id)

    def complete_skill(self, learner_id: str, skill_id: str) -> CompletionResult:
        """
        Complete a skill with full points.

        Returns:
            CompletionResult with the skill snapshot, newly unlocked
            achievements and the dependents that became startable

        Raises:
            NotFound, TerminalState, SkillLocked, PersistenceError
        """
        return self._completion(
            learner_id, skill_id, lambda state: self.engine.complete_skill(state, skill_id)
        )

    def promote_skill(self, learner_id: str, skill_id: str) -> CompletionResult:
        """
        Apply an external mastery signal to a skill.

        Raises:
            NotFound, TerminalState, SkillLocked, PersistenceError
        """
        return self._completion(
            learner_id, skill_id, lambda state: self.engine.promote_to_mastered(state, skill_id)
        )

    def sync_mastery(self, learner_id: str, path_id: str) -> List[SkillSnapshot]:
        """
        Ask the mastery provider about every completed skill of a path and
        promote the ones it approves, all in one transaction.

        Returns:
            Snapshots of the promoted skills (empty if none)
        """
        self._require_learner(learner_id)
        self._ensure_path(path_id)

        def promote_approved(state: LearnerPathState) -> List[SkillEvent]:
            events = []
            for skill_id in self.graph.topological_order(path_id):
                if state.skills[skill_id].status is not SkillStatus.COMPLETED:
                    continue
                candidate = self.aggregator.skill_snapshot(state, skill_id)
                if self.mastery_provider.should_promote(learner_id, candidate):
                    events.extend(self.engine.promote_to_mastered(state, skill_id))
            return events

        snapshot, events, _ = self._transact_path(learner_id, path_id, promote_approved)
        return [snapshot.skill(event.skill_id) for event in events]

    def dismiss_recommendation(self, learner_id: str, skill_id: str) -> None:
        """
        Hide a skill from the learner's recommendations.

        The dismissal lasts until the skill's status changes, so a dismissed
        next step comes back as a review once it is completed.

        Raises:
            ValidationError, NotFound, GraphError, PersistenceError
        """
        self._require_learner(learner_id)
        path_id = self._path_for_skill(skill_id)
        with self._path_lock(learner_id, path_id), self._learner_lock(learner_id):
            status = self._snapshot(learner_id, path_id).skill(skill_id).status
            dismissals = dict(self._dismissal_states(learner_id))
            dismissals[skill_id] = DismissalState(status=status, dismissed_at=self._clock())

            self._with_retry(
                f"save dismissal for {learner_id}",
                self.store.save,
                learner_id,
                {recommendation_key(skill_id): dismissals[skill_id].to_record()},
            )
            with self._registry_lock:
                self._dismissals[learner_id] = dismissals

        logger.info(f"{learner_id}: dismissed recommendation '{skill_id}' ({status.value})")

    def _completion(
        self, learner_id: str, skill_id: str, transition: Transition
    ) -> CompletionResult:
        snapshot, events, unlocked = self._transact(learner_id, skill_id, transition)
        return CompletionResult(
            skill=snapshot.skill(skill_id),
            unlocked_achievements=unlocked,
            unlocked_skills=[s for event in events for s in event.unlocked_skills],
        )

    # =========================================================================
    # Transactions
    # =========================================================================

    def _transact(
        self, learner_id: str, skill_id: str, transition: Transition
    ) -> Tuple[PathSnapshot, List[SkillEvent], List[Achievement]]:
        self._require_learner(learner_id)
        path_id = self._path_for_skill(skill_id)
        return self._transact_path(learner_id, path_id, transition)

    def _transact_path(
        self, learner_id: str, path_id: str, transition: Transition
    ) -> Tuple[PathSnapshot, List[SkillEvent], List[Achievement]]:
        """
        Run one transition as a transaction.

        Args:
            learner_id: Learner id
            path_id: Path the transition touches
            transition: Mutates a working copy and returns its events

        Returns:
            (published snapshot, events, newly unlocked achievements)
        """
        key = (learner_id, path_id)
        with self._path_lock(learner_id, path_id):
            committed = self._committed_state(learner_id, path_id)
            working = committed.copy()
            events = transition(working)
            if not events:
                return self._snapshot(learner_id, path_id), events, []

            self.aggregator.recompute(working)
            working.version = committed.version + 1

            with self._learner_lock(learner_id):
                achievement_states = copy.deepcopy(self._achievement_states(learner_id))
                unlocked = []
                if any(self._affects_achievements(e) for e in events):
                    context = self._learner_context(learner_id, working)
                    unlocked = self.evaluator.evaluate(context, achievement_states)

                records = {
                    skill_key(e.skill_id): working.skills[e.skill_id].to_record() for e in events
                }
                path_record = working.path.to_record()
                path_record["version"] = working.version
                records[path_key(path_id)] = path_record
                for achievement in unlocked:
                    records[achievement_key(achievement.id)] = achievement_states[
                        achievement.id
                    ].to_record()

                self._with_retry(
                    f"save progress for {learner_id}", self.store.save, learner_id, records
                )

                snapshot = self.aggregator.snapshot(working)
                with self._registry_lock:
                    self._committed[key] = working
                    self._published[key] = snapshot
                    self._achievements[learner_id] = achievement_states

        logger.info(
            f"{learner_id}: committed {', '.join(e.event_type.value for e in events)} "
            f"on '{path_id}' (v{working.version}, {snapshot.progress_percentage}%)"
        )
        return snapshot, events, unlocked

    @staticmethod
    def _affects_achievements(event: SkillEvent) -> bool:
        return event.changes_points or event.event_type in (
            EventType.SKILL_COMPLETED,
            EventType.SKILL_MASTERED,
        )

    def _learner_context(self, learner_id: str, working: LearnerPathState) -> LearnerContext:
        """Totals across the learner's committed paths, with the working copy swapped in."""
        snapshots = [self.aggregator.snapshot(working)]
        for path_id in self._loaded_path_ids():
            if path_id != working.path_id:
                snapshots.append(self._snapshot(learner_id, path_id))
        return LearnerContext.from_snapshots(learner_id, snapshots, self._subject_paths())

    def _subject_paths(self) -> Dict[str, Set[str]]:
        subject_paths: Dict[str, Set[str]] = {}
        for path_id in self._loaded_path_ids():
            subject_paths.setdefault(self.graph.get_path(path_id).subject, set()).add(path_id)
        return subject_paths

    def _with_retry(self, operation: str, func, *args):
        """Call func, retrying PersistenceError with exponential backoff."""
        for attempt in range(self.max_retries):
            try:
                return func(*args)
            except PersistenceError as e:
                if attempt == self.max_retries - 1:
                    logger.error(f"Failed to {operation} after {self.max_retries} attempts: {e}")
                    raise
                delay = self.base_delay * (2**attempt)
                logger.warning(
                    f"Failed to {operation}, retrying in {delay}s... "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
                self._sleep(delay)

    # =========================================================================
    # Committed state
    # =========================================================================

    def _path_lock(self, learner_id: str, path_id: str) -> threading.RLock:
        with self._registry_lock:
            return self._path_locks.setdefault((learner_id, path_id), threading.RLock())

    def _learner_lock(self, learner_id: str) -> threading.RLock:
        with self._registry_lock:
            return self._learner_locks.setdefault(learner_id, threading.RLock())

    def _committed_state(self, learner_id: str, path_id: str) -> LearnerPathState:
        key = (learner_id, path_id)
        with self._registry_lock:
            state = self._committed.get(key)
        if state is not None:
            return state

        hydrated = self._hydrate(learner_id, path_id)
        with self._registry_lock:
            state = self._committed.setdefault(key, hydrated)
            if state is hydrated:
                self._published[key] = self.aggregator.snapshot(hydrated)
        return state

    def _hydrate(self, learner_id: str, path_id: str) -> LearnerPathState:
        """Rebuild committed state from the store; rollups are recomputed."""
        state = self.aggregator.initial_state(learner_id, path_id)
        keys = {skill_key(skill_id): skill_id for skill_id in state.skills}
        records = self._with_retry(
            f"load progress for {learner_id}",
            self.store.load_many,
            learner_id,
            [*keys, path_key(path_id)],
        )
        for key, skill_id in keys.items():
            if key in records:
                state.skills[skill_id] = SkillState.from_record(records[key])
        path_record = records.get(path_key(path_id))
        if path_record:
            state.version = path_record.get("version", 0)
        self.aggregator.recompute(state)
        if records:
            logger.debug(f"Hydrated {learner_id}/{path_id} from store (v{state.version})")
        return state

    def _achievement_states(self, learner_id: str) -> Dict[str, AchievementState]:
        with self._registry_lock:
            states = self._achievements.get(learner_id)
        if states is not None:
            return states

        ids = list(self.evaluator.definitions)
        records = self._with_retry(
            f"load achievements for {learner_id}",
            self.store.load_many,
            learner_id,
            [achievement_key(i) for i in ids],
        )
        loaded = {
            i: AchievementState.from_record(records[achievement_key(i)])
            for i in ids
            if achievement_key(i) in records
        }
        with self._registry_lock:
            return self._achievements.setdefault(learner_id, loaded)

    def _dismissal_states(self, learner_id: str) -> Dict[str, DismissalState]:
        with self._registry_lock:
            states = self._dismissals.get(learner_id)
        if states is not None:
            return states

        skill_ids = [
            skill_id
            for path_id in self._loaded_path_ids()
            for skill_id in self.graph.get_path(path_id).skill_ids
        ]
        records = self._with_retry(
            f"load dismissals for {learner_id}",
            self.store.load_many,
            learner_id,
            [recommendation_key(s) for s in skill_ids],
        )
        loaded = {
            s: DismissalState.from_record(records[recommendation_key(s)])
            for s in skill_ids
            if recommendation_key(s) in records
        }
        with self._registry_lock:
            return self._dismissals.setdefault(learner_id, loaded)

    def _snapshot(self, learner_id: str, path_id: str) -> PathSnapshot:
        self._committed_state(learner_id, path_id)
        with self._registry_lock:
            return self._published[(learner_id, path_id)]

    # =========================================================================
    # Queries
    # =========================================================================

    def get_path_snapshot(self, learner_id: str, path_id: str) -> PathSnapshot:
        """
        Latest committed snapshot of a path for a learner.

        Never waits for an in-flight transaction on the same path.

        Raises:
            NotFound: Unknown path
            GraphError: Path graph is invalid
        """
        self._require_learner(learner_id)
        self._ensure_path(path_id)
        return self._snapshot(learner_id, path_id)

    def get_achievements(self, learner_id: str) -> List[Achievement]:
        """Every achievement with the learner's unlock state and progress toward it."""
        self._require_learner(learner_id)
        context = LearnerContext.from_snapshots(
            learner_id, self._learner_snapshots(learner_id), self._subject_paths()
        )
        return self.evaluator.describe(self._achievement_states(learner_id), context)

    def get_recommendations(
        self, learner_id: str, path_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[Recommendation]:
        """
        Ranked suggestions of what to work on next, without dismissed ones.

        Args:
            learner_id: Learner id
            path_id: Restrict to one path (all servable paths if None)
            limit: Maximum results (default: Config.RECOMMENDATION_LIMIT)
        """
        self._require_learner(learner_id)
        limit = Config.RECOMMENDATION_LIMIT if limit is None else limit
        self._require_non_negative(limit=limit)
        if path_id is not None:
            self._ensure_path(path_id)
            paths = [self._snapshot(learner_id, path_id)]
        else:
            paths = self._learner_snapshots(learner_id)

        dismissals = self._dismissal_states(learner_id)
        hidden = {
            skill.skill_id
            for path in paths
            for skill in path.skills
            if skill.skill_id in dismissals and dismissals[skill.skill_id].hides(skill.status)
        }
        ranked = self.recommendation_provider.recommend(learner_id, paths, limit + len(hidden))
        return [r for r in ranked if r.skill_id not in hidden][:limit]

    def get_progress_summary(self, learner_id: str) -> ProgressSummary:
        self._require_learner(learner_id)
        return ProgressAnalyzer.build_summary(
            self._learner_snapshots(learner_id), self.get_achievements(learner_id)
        )

    def get_subject_progress(self, learner_id: str) -> List[SubjectProgress]:
        self._require_learner(learner_id)
        return ProgressAnalyzer.subject_progress(self._learner_snapshots(learner_id))

    def get_points_history(self, learner_id: str) -> PointsHistory:
        self._require_learner(learner_id)
        return ProgressAnalyzer.points_history(
            self._learner_snapshots(learner_id), self.get_achievements(learner_id)
        )

    def get_activity_timeline(
        self, learner_id: str, limit: Optional[int] = None, offset: int = 0
    ) -> List[ActivityItem]:
        """Most recent activity first (default limit: Config.TIMELINE_LIMIT)."""
        self._require_learner(learner_id)
        limit = Config.TIMELINE_LIMIT if limit is None else limit
        self._require_non_negative(limit=limit, offset=offset)
        return ProgressAnalyzer.activity_timeline(
            self._learner_snapshots(learner_id),
            self.get_achievements(learner_id),
            limit=limit,
            offset=offset,
        )

    def _learner_snapshots(self, learner_id: str) -> List[PathSnapshot]:
        return [self._snapshot(learner_id, path_id) for path_id in self._loaded_path_ids()]

    # =========================================================================
    # Validation
    # =========================================================================

    @staticmethod
    def _require_learner(learner_id: str) -> None:
        if not isinstance(learner_id, str) or not learner_id.strip():
            raise ValidationError("learner_id is required")

    @staticmethod
    def _require_non_negative(**values: int) -> None:
        for name, value in values.items():
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValidationError(f"{name} must be a non-negative integer, got {value!r}")
