"""Database-agnostic progress analysis.

Builds learner-wide read models (summary, subject progress, points history,
activity timeline) from committed path snapshots and achievements. All
methods are static pure calculations, so they can be reused by the CLI or a
web layer and unit tested without any store.
"""

from collections import OrderedDict
from typing import Dict, List, Sequence

from core.dto.progress import (
    AchievementTotals,
    ActivityItem,
    MonthlyPoints,
    PathTotals,
    PointItem,
    PointsHistory,
    ProgressSummary,
    SkillTotals,
    SubjectProgress,
)
from core.dto.skills import PathStatus, SkillStatus
from core.dto.snapshots import Achievement, PathSnapshot
from core.path_aggregator import round_half_up_percentage


def _round_half_up_mean(values: Sequence[int]) -> int:
    if not values:
        return 0
    return (2 * sum(values) + len(values)) // (2 * len(values))


class ProgressAnalyzer:
    """Pure calculations over committed snapshots.

    Usage:
        summary = ProgressAnalyzer.build_summary(snapshots, achievements)
        history = ProgressAnalyzer.points_history(snapshots, achievements)
    """

    @staticmethod
    def build_summary(
        paths: Sequence[PathSnapshot],
        achievements: Sequence[Achievement],
        recent_limit: int = 5,
    ) -> ProgressSummary:
        """
        Summarize a learner's progress across everything.

        Args:
            paths: One snapshot per known path
            achievements: All achievements with the learner's unlock state
            recent_limit: Number of timeline entries to include

        Returns:
            ProgressSummary
        """
        path_totals = PathTotals(
            total=len(paths),
            completed=sum(1 for p in paths if p.status is PathStatus.COMPLETED),
            in_progress=sum(1 for p in paths if p.status is PathStatus.IN_PROGRESS),
            avg_progress=_round_half_up_mean([p.progress_percentage for p in paths]),
        )

        skill_totals = SkillTotals()
        for path in paths:
            for skill in path.skills:
                skill_totals.total += 1
                skill_totals.total_points += skill.points_earned
                if skill.status is SkillStatus.COMPLETED:
                    skill_totals.completed += 1
                elif skill.status is SkillStatus.MASTERED:
                    skill_totals.mastered += 1
                elif skill.status is SkillStatus.IN_PROGRESS:
                    skill_totals.in_progress += 1

        unlocked = [a for a in achievements if a.is_unlocked]
        achievement_totals = AchievementTotals(
            total=len(achievements),
            unlocked=len(unlocked),
            points=sum(a.points for a in unlocked),
            completion_percentage=round_half_up_percentage(len(unlocked), len(achievements)),
        )

        return ProgressSummary(
            learning_paths=path_totals,
            skills=skill_totals,
            achievements=achievement_totals,
            subjects=ProgressAnalyzer.subject_progress(paths),
            recent_activity=ProgressAnalyzer.activity_timeline(
                paths, achievements, limit=recent_limit
            ),
        )

    @staticmethod
    def subject_progress(paths: Sequence[PathSnapshot]) -> List[SubjectProgress]:
        """Per-subject rollup, sorted by subject name."""
        by_subject: Dict[str, List[PathSnapshot]] = {}
        for path in paths:
            by_subject.setdefault(path.subject, []).append(path)

        result = []
        for subject in sorted(by_subject):
            subject_paths = by_subject[subject]
            total_skills = sum(p.total_skills for p in subject_paths)
            completed_skills = sum(p.completed_skills for p in subject_paths)
            result.append(
                SubjectProgress(
                    subject=subject,
                    path_count=len(subject_paths),
                    completed_paths=sum(
                        1 for p in subject_paths if p.status is PathStatus.COMPLETED
                    ),
                    total_skills=total_skills,
                    completed_skills=completed_skills,
                    total_points=sum(s.points_earned for p in subject_paths for s in p.skills),
                    avg_progress=_round_half_up_mean(
                        [p.progress_percentage for p in subject_paths]
                    ),
                    skill_completion_percentage=round_half_up_percentage(
                        completed_skills, total_skills
                    ),
                )
            )
        return result

    @staticmethod
    def points_history(
        paths: Sequence[PathSnapshot], achievements: Sequence[Achievement]
    ) -> PointsHistory:
        """
        Chronological list of earned points with monthly totals.

        Skills contribute their points_earned (dated by completion, or by last
        activity while still in progress); unlocked achievements contribute
        their award points.
        """
        items = []
        for path in paths:
            for skill in path.skills:
                earned_at = skill.completed_at or skill.last_activity_at
                if skill.points_earned > 0 and earned_at:
                    items.append(
                        PointItem(
                            item_id=skill.skill_id,
                            item_title=skill.title,
                            source_type="skill",
                            points=skill.points_earned,
                            earned_at=earned_at,
                        )
                    )
        for achievement in achievements:
            if achievement.is_unlocked and achievement.points > 0 and achievement.unlocked_at:
                items.append(
                    PointItem(
                        item_id=achievement.id,
                        item_title=achievement.name,
                        source_type="achievement",
                        points=achievement.points,
                        earned_at=achievement.unlocked_at,
                    )
                )

        items.sort(key=lambda item: (item.earned_at, item.source_type, item.item_id))

        monthly: Dict[str, int] = OrderedDict()
        for item in items:
            month = item.earned_at.strftime("%Y-%m")
            monthly[month] = monthly.get(month, 0) + item.points

        return PointsHistory(
            total_points=sum(item.points for item in items),
            points_history=items,
            chart_data=[MonthlyPoints(month=m, points=p) for m, p in monthly.items()],
        )

    @staticmethod
    def activity_timeline(
        paths: Sequence[PathSnapshot],
        achievements: Sequence[Achievement],
        limit: int = 20,
        offset: int = 0,
    ) -> List[ActivityItem]:
        """Most recent activity first, paginated by limit/offset."""
        items = []
        for path in paths:
            if path.started_at:
                items.append(
                    ActivityItem(
                        activity_type="learning_path",
                        action="started",
                        item_id=path.path_id,
                        title=path.title,
                        activity_date=path.started_at,
                        status=path.status.value,
                        progress_percentage=path.progress_percentage,
                    )
                )
            if path.completed_at:
                items.append(
                    ActivityItem(
                        activity_type="learning_path",
                        action="completed",
                        item_id=path.path_id,
                        title=path.title,
                        activity_date=path.completed_at,
                        status=path.status.value,
                        progress_percentage=path.progress_percentage,
                    )
                )
            for skill in path.skills:
                if skill.started_at:
                    items.append(
                        ActivityItem(
                            activity_type="skill",
                            action="started",
                            item_id=skill.skill_id,
                            title=skill.title,
                            activity_date=skill.started_at,
                            status=skill.status.value,
                            progress_percentage=skill.progress_percentage,
                        )
                    )
                if skill.completed_at:
                    items.append(
                        ActivityItem(
                            activity_type="skill",
                            action=skill.status.value,  # "completed" or "mastered"
                            item_id=skill.skill_id,
                            title=skill.title,
                            activity_date=skill.completed_at,
                            status=skill.status.value,
                            progress_percentage=skill.progress_percentage,
                        )
                    )
        for achievement in achievements:
            if achievement.is_unlocked and achievement.unlocked_at:
                items.append(
                    ActivityItem(
                        activity_type="achievement",
                        action="unlocked",
                        item_id=achievement.id,
                        title=achievement.name,
                        activity_date=achievement.unlocked_at,
                    )
                )

        items.sort(key=lambda item: item.activity_date, reverse=True)
        return items[offset : offset + limit]
