#!/usr/bin/env python3
"""
SkillPath - skill progression engine for guided learning paths.
CLI interface for browsing learning paths and recording learner progress.
"""

import logging
from contextlib import contextmanager
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from config import Config
from core.dto.skills import PathStatus, SkillStatus
from core.errors import GraphError, ProgressionError
from core.service import ProgressionService
from storage.catalog import PathCatalog
from storage.database import Database

console = Console()

STATUS_STYLES = {
    SkillStatus.NOT_STARTED.value: "dim",
    SkillStatus.IN_PROGRESS.value: "yellow",
    SkillStatus.COMPLETED.value: "green",
    SkillStatus.MASTERED.value: "bold magenta",
}


def styled_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.replace('_', ' ')}[/{style}]"


def fail(error: Exception):
    """Print an error and exit with status 1."""
    console.print(f"\n[bold red]Error:[/bold red] {error}\n")
    raise click.Abort()


def prepare_db_path(ctx: click.Context) -> Path:
    """Database path for this invocation, with its directory created."""
    db_path = Path(ctx.obj["db_path"])
    if db_path == Config.DB_PATH:
        Config.ensure_dirs()
    else:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path


@contextmanager
def open_service(ctx: click.Context):
    """Catalog + database + service for one command."""
    catalog = PathCatalog.from_yaml(ctx.obj["catalog_path"])
    with Database(prepare_db_path(ctx)) as db:
        yield ProgressionService(catalog, db)


def normalize_percent(percent: float):
    return int(percent) if float(percent).is_integer() else percent


@click.group()
@click.version_option(version="0.1.0", prog_name="SkillPath")
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="SQLite database file (default: SKILLPATH_DB_PATH or data/skillpath.db)",
)
@click.option(
    "--catalog",
    "catalog_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Learning path catalog YAML (default: SKILLPATH_CATALOG)",
)
@click.pass_context
def cli(ctx, db_path, catalog_path):
    """SkillPath - track learner progress through prerequisite-based learning paths."""
    logging.basicConfig(
        level=Config.LOG_LEVEL,
        format="%(levelname)s:\t%(name)s\t%(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db_path or Config.DB_PATH
    ctx.obj["catalog_path"] = catalog_path or Config.CATALOG_PATH


@cli.command()
@click.pass_context
def init(ctx):
    """Initialize the database and validate the learning path catalog."""
    console.print("\n[bold cyan]Initializing SkillPath...[/bold cyan]\n")

    try:
        catalog = PathCatalog.from_yaml(ctx.obj["catalog_path"])
        db_path = prepare_db_path(ctx)

        with Database(db_path) as db:
            console.print("   ✓ Database schema created\n")
            service = ProgressionService(catalog, db)

            valid = 0
            for path_id in catalog.path_ids():
                try:
                    snapshot = service.load_path(path_id)
                except GraphError as e:
                    console.print(f"   [red]✗ {e}[/red]")
                    continue
                valid += 1
                console.print(f"   ✓ {snapshot.title} ({snapshot.total_skills} skills)")

        console.print(
            f"\n[bold green]Loaded {valid}/{len(catalog.path_ids())} learning paths "
            f"and {len(catalog.achievements)} achievements[/bold green]\n"
        )
        console.print(f"Database: {db_path}")
        console.print(f"Catalog: {ctx.obj['catalog_path']}\n")
    except (ProgressionError, ValueError, FileNotFoundError) as e:
        fail(e)


@cli.command()
@click.option("--subject", "-s", help="Filter by subject (e.g., Science)")
@click.option("--grade", "-g", "grade_level", help="Filter by grade level")
@click.option(
    "--difficulty",
    "-d",
    type=click.Choice(["beginner", "intermediate", "advanced"]),
    help="Filter by difficulty",
)
@click.pass_context
def paths(ctx, subject, grade_level, difficulty):
    """List available learning paths."""
    try:
        with open_service(ctx) as service:
            snapshots = service.list_paths(subject, grade_level, difficulty)

        if not snapshots:
            console.print("\n[yellow]No learning paths match.[/yellow]\n")
            return

        table = Table(title="\n📚 Learning Paths")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Subject", style="magenta")
        table.add_column("Grade", style="green")
        table.add_column("Difficulty")
        table.add_column("Skills", justify="right")

        for snapshot in snapshots:
            table.add_row(
                snapshot.path_id,
                snapshot.title,
                snapshot.subject,
                snapshot.grade_level,
                snapshot.difficulty,
                str(snapshot.total_skills),
            )

        console.print(table)
        console.print(f"\nTotal: {len(snapshots)} paths\n")
    except (ProgressionError, ValueError, FileNotFoundError) as e:
        fail(e)


@cli.command()
@click.option("--learner", "-l", required=True, help="Learner id")
@click.option("--path", "-p", "path_id", required=True, help="Learning path id")
@click.pass_context
def show(ctx, learner, path_id):
    """Show a learner's progress on a learning path."""
    try:
        with open_service(ctx) as service:
            snapshot = service.get_path_snapshot(learner, path_id)

        status = snapshot.status.value
        console.print(
            f"\n[bold]{snapshot.title}[/bold] - {styled_status(status)} "
            f"({snapshot.completed_skills}/{snapshot.total_skills} skills, "
            f"{snapshot.progress_percentage}%)\n"
        )

        table = Table()
        table.add_column("Skill", style="cyan", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Status")
        table.add_column("Progress", justify="right")
        table.add_column("Points", justify="right")
        table.add_column("Requires")

        for skill in snapshot.skills:
            table.add_row(
                skill.skill_id,
                skill.title,
                "[red]🔒 locked[/red]" if skill.is_locked else styled_status(skill.status.value),
                f"{skill.progress_percentage}%",
                f"{skill.points_earned}/{skill.points}",
                ", ".join(skill.prerequisites) or "-",
            )
        console.print(table)

        if snapshot.status is PathStatus.COMPLETED:
            console.print("\n[bold green]🎉 Learning path completed![/bold green]")
        console.print()
    except (ProgressionError, ValueError, FileNotFoundError) as e:
        fail(e)


@cli.command()
@click.option("--learner", "-l", required=True, help="Learner id")
@click.option("--skill", "-k", "skill_id", required=True, help="Skill id")
@click.pass_context
def start(ctx, learner, skill_id):
    """Start working on a skill."""
    try:
        with open_service(ctx) as service:
            skill = service.start_skill(learner, skill_id)
        console.print(f"\n[green]✓ Started {skill.skill_id}[/green] - {skill.title}\n")
    except (ProgressionError, ValueError, FileNotFoundError) as e:
        fail(e)


@cli.command()
@click.option("--learner", "-l", required=True, help="Learner id")
@click.option("--skill", "-k", "skill_id", required=True, help="Skill id")
@click.option("--percent", type=float, required=True, help="Progress percentage (0-100)")
@click.pass_context
def progress(ctx, learner, skill_id, percent):
    """Record progress on a skill (100 completes it)."""
    try:
        with open_service(ctx) as service:
            skill = service.update_skill_progress(learner, skill_id, normalize_percent(percent))
        console.print(
            f"\n[green]✓ {skill.skill_id}[/green] {styled_status(skill.status.value)} "
            f"{skill.progress_percentage}% ({skill.points_earned}/{skill.points} points)\n"
        )
    except (ProgressionError, ValueError, FileNotFoundError) as e:
        fail(e)


def print_completion(result, verb: str):
    skill = result.skill
    console.print(
        f"\n[green]✓ {verb} {skill.skill_id}[/green] ({skill.points_earned}/{skill.points} points)"
    )
    for unlocked in result.unlocked_skills:
        console.print(f"   🔓 Unlocked {unlocked}")
    for achievement in result.unlocked_achievements:
        console.print(f"   🏆 Achievement unlocked: [bold]{achievement.name}[/bold]")
    console.print()


@cli.command()
@click.option("--learner", "-l", required=True, help="Learner id")
@click.option("--skill", "-k", "skill_id", required=True, help="Skill id")
@click.pass_context
def complete(ctx, learner, skill_id):
    """Mark a skill as completed."""
    try:
        with open_service(ctx) as service:
            result = service.complete_skill(learner, skill_id)
        print_completion(result, "Completed")
    except (ProgressionError, ValueError, FileNotFoundError) as e:
        fail(e)


@cli.command()
@click.option("--learner", "-l", required=True, help="Learner id")
@click.option("--skill", "-k", "skill_id", required=True, help="Skill id")
@click.pass_context
def master(ctx, learner, skill_id):
    """Promote a skill to mastered."""
    try:
        with open_service(ctx) as service:
            result = service.promote_skill(learner, skill_id)
        print_completion(result, "Mastered")
    except (ProgressionError, ValueError, FileNotFoundError) as e:
        fail(e)


@cli.command()
@click.option("--learner", "-l", required=True, help="Learner id")
@click.option("--unlocked-only", is_flag=True, help="Only show unlocked achievements")
@click.pass_context
def achievements(ctx, learner, unlocked_only):
    """List achievements and a learner's unlock state."""
    try:
        with open_service(ctx) as service:
            items = service.get_achievements(learner)

        if unlocked_only:
            items = [a for a in items if a.is_unlocked]
        if not items:
            console.print("\n[yellow]No achievements yet.[/yellow]\n")
            return

        table = Table(title="\n🏆 Achievements")
        table.add_column("Name", style="white")
        table.add_column("Type", style="magenta")
        table.add_column("Points", justify="right")
        table.add_column("Progress", justify="right")
        table.add_column("Unlocked")

        for achievement in items:
            unlocked = (
                f"[green]{achievement.unlocked_at:%Y-%m-%d}[/green]"
                if achievement.is_unlocked
                else "[dim]-[/dim]"
            )
            table.add_row(
                achievement.name,
                achievement.achievement_type,
                str(achievement.points),
                f"{achievement.progress}/{achievement.goal}",
                unlocked,
            )
        console.print(table)
        unlocked_count = sum(1 for a in items if a.is_unlocked)
        console.print(f"\nUnlocked: {unlocked_count}/{len(items)}\n")
    except (ProgressionError, ValueError, FileNotFoundError) as e:
        fail(e)


@cli.command()
@click.option("--learner", "-l", required=True, help="Learner id")
@click.option("--path", "-p", "path_id", help="Restrict to one learning path")
@click.option("--limit", type=int, default=Config.RECOMMENDATION_LIMIT, help="Maximum results")
@click.pass_context
def recommend(ctx, learner, path_id, limit):
    """Suggest what to work on next."""
    try:
        with open_service(ctx) as service:
            recommendations = service.get_recommendations(learner, path_id, limit)

        if not recommendations:
            console.print("\n[yellow]Nothing to recommend - all caught up![/yellow]\n")
            return

        console.print("\n[bold]💡 Recommended next:[/bold]\n")
        for i, rec in enumerate(recommendations, 1):
            label = "review" if rec.recommendation_type == "review_skill" else "next"
            console.print(f"  {i}. [cyan]{rec.skill_id}[/cyan] ({label})")
            console.print(f"     [dim]{rec.rationale}[/dim]")
        console.print()
    except (ProgressionError, ValueError, FileNotFoundError) as e:
        fail(e)


@cli.command()
@click.option("--learner", "-l", required=True, help="Learner id")
@click.option("--skill", "-k", "skill_id", required=True, help="Skill id")
@click.pass_context
def dismiss(ctx, learner, skill_id):
    """Stop recommending a skill until its status changes."""
    try:
        with open_service(ctx) as service:
            service.dismiss_recommendation(learner, skill_id)
        console.print(f"\n[green]✓ Dismissed recommendation for {skill_id}[/green]\n")
    except (ProgressionError, ValueError, FileNotFoundError) as e:
        fail(e)


@cli.command()
@click.option("--learner", "-l", required=True, help="Learner id")
@click.pass_context
def summary(ctx, learner):
    """Show a learner's progress across all paths."""
    try:
        with open_service(ctx) as service:
            report = service.get_progress_summary(learner)
            history = service.get_points_history(learner)

        paths_ = report.learning_paths
        skills = report.skills
        earned = report.achievements
        console.print(f"\n[bold cyan]📊 Progress for {learner}[/bold cyan]\n")
        console.print(
            f"Paths: {paths_.completed}/{paths_.total} completed, "
            f"{paths_.in_progress} in progress (avg {paths_.avg_progress}%)"
        )
        console.print(
            f"Skills: {skills.completed} completed, {skills.mastered} mastered, "
            f"{skills.in_progress} in progress of {skills.total}"
        )
        console.print(f"Achievements: {earned.unlocked}/{earned.total}")
        console.print(f"Points: {history.total_points}\n")

        if report.subjects:
            table = Table(title="By subject")
            table.add_column("Subject", style="magenta")
            table.add_column("Paths", justify="right")
            table.add_column("Skills", justify="right")
            table.add_column("Points", justify="right")
            for subject in report.subjects:
                table.add_row(
                    subject.subject,
                    f"{subject.completed_paths}/{subject.path_count}",
                    f"{subject.completed_skills}/{subject.total_skills}",
                    str(subject.total_points),
                )
            console.print(table)
            console.print()
    except (ProgressionError, ValueError, FileNotFoundError) as e:
        fail(e)


@cli.command()
@click.option("--learner", "-l", required=True, help="Learner id")
@click.option("--limit", type=int, default=Config.TIMELINE_LIMIT, help="Maximum entries")
@click.option("--offset", type=int, default=0, help="Entries to skip")
@click.pass_context
def timeline(ctx, learner, limit, offset):
    """Show a learner's recent activity."""
    try:
        with open_service(ctx) as service:
            items = service.get_activity_timeline(learner, limit=limit, offset=offset)

        if not items:
            console.print("\n[yellow]No activity yet.[/yellow]\n")
            return

        console.print()
        for item in items:
            console.print(
                f"  [dim]{item.activity_date:%Y-%m-%d %H:%M}[/dim] "
                f"{item.activity_type.replace('_', ' ')} {item.action}: {item.title}"
            )
        console.print()
    except (ProgressionError, ValueError, FileNotFoundError) as e:
        fail(e)


if __name__ == "__main__":
    cli()
