"""
Pluggable collaborators consumed by the progression service.

Mastery promotion and recommendation ranking live outside the engine; the
service only depends on these narrow protocols.
"""

from typing import List, Optional, Protocol, Sequence

from core.dto.progress import Recommendation
from core.dto.skills import SkillStatus
from core.dto.snapshots import PathSnapshot, SkillSnapshot


class MasteryPromotionProvider(Protocol):
    """Decides when a completed skill should be promoted to mastered.

    Typically backed by a quiz or spaced-repetition system.
    """

    def should_promote(self, learner_id: str, skill: SkillSnapshot) -> bool: ...


class RecommendationProvider(Protocol):
    """Ranks skills a learner could work on next."""

    def recommend(
        self, learner_id: str, paths: Sequence[PathSnapshot], limit: int
    ) -> List[Recommendation]: ...


class NoMasteryProvider:
    """Default provider: never promotes."""

    def should_promote(self, learner_id: str, skill: SkillSnapshot) -> bool:
        return False


class NextSkillRecommender:
    """Recommends skills straight from path snapshots.

    Ranking:
        1. Skills already in progress (finish what you started)
        2. Unlocked, not started skills in learning order
        3. Completed skills not yet mastered, for review
    """

    IN_PROGRESS_SCORE = 3.0
    NEXT_SKILL_SCORE = 2.0
    REVIEW_SCORE = 1.0

    def __init__(self, learning_order: Optional[dict] = None):
        """
        Args:
            learning_order: Optional path id -> skill ids in topological order;
                authored order is used for paths not listed
        """
        self.learning_order = learning_order if learning_order is not None else {}

    def recommend(
        self, learner_id: str, paths: Sequence[PathSnapshot], limit: int
    ) -> List[Recommendation]:
        recommendations = []
        for path in paths:
            order = self.learning_order.get(path.path_id) or [s.skill_id for s in path.skills]
            position = {skill_id: i for i, skill_id in enumerate(order)}
            # Earlier skills in the order get a slightly higher score
            step = 1.0 / (len(order) + 1)

            for skill in path.skills:
                tie_break = 1.0 - step * (position.get(skill.skill_id, len(order)) + 1)
                if skill.status is SkillStatus.IN_PROGRESS:
                    recommendations.append(
                        Recommendation(
                            skill_id=skill.skill_id,
                            path_id=path.path_id,
                            title=skill.title,
                            recommendation_type="next_skill",
                            rationale=f"Continue '{skill.title}' "
                            f"({skill.progress_percentage}% done) in {path.title}",
                            score=self.IN_PROGRESS_SCORE + tie_break,
                        )
                    )
                elif skill.status is SkillStatus.NOT_STARTED and not skill.is_locked:
                    rationale = (
                        "All prerequisites completed"
                        if skill.prerequisites
                        else "No prerequisites required"
                    )
                    recommendations.append(
                        Recommendation(
                            skill_id=skill.skill_id,
                            path_id=path.path_id,
                            title=skill.title,
                            recommendation_type="next_skill",
                            rationale=f"{rationale}; next step in {path.title}",
                            score=self.NEXT_SKILL_SCORE + tie_break,
                        )
                    )
                elif skill.status is SkillStatus.COMPLETED:
                    recommendations.append(
                        Recommendation(
                            skill_id=skill.skill_id,
                            path_id=path.path_id,
                            title=skill.title,
                            recommendation_type="review_skill",
                            rationale=f"Review '{skill.title}' to reach mastery",
                            score=self.REVIEW_SCORE + tie_break,
                        )
                    )

        recommendations.sort(key=lambda r: (-r.score, r.path_id, r.skill_id))
        return recommendations[:limit]
