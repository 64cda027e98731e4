"""stats [--week|--month|--year]."""
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Iterable, Optional

from rich.table import Table

from coach_cli.formatting import format_distance, format_duration
from coach_cli.models import Workout, WorkoutFilter

PERIOD_TITLES = {"week": "This Week", "month": "This Month", "year": "This Year", "all": "All Time"}


@dataclass
class TypeTotals:
    count: int = 0
    distance_km: float = 0.0
    duration_minutes: int = 0


@dataclass
class WorkoutSummary:
    count: int = 0
    distance_km: float = 0.0
    duration_minutes: int = 0
    by_type: Dict[str, TypeTotals] = field(default_factory=dict)


def period_start(period: str, today: Optional[date] = None) -> Optional[date]:
    """First day of the period containing `today` (weeks start Monday); None for all time."""
    today = today or date.today()
    if period == "week":
        return today - timedelta(days=today.weekday())
    if period == "month":
        return today.replace(day=1)
    if period == "year":
        return today.replace(month=1, day=1)
    return None


def summarize(workouts: Iterable[Workout]) -> WorkoutSummary:
    summary = WorkoutSummary()
    for workout in workouts:
        totals = summary.by_type.setdefault(workout.exercise_type, TypeTotals())
        for bucket in (summary, totals):
            bucket.count += 1
            bucket.distance_km += workout.distance_km or 0.0
            bucket.duration_minutes += workout.duration_minutes or 0
    return summary


def cmd_stats(args, ctx) -> int:
    period = args.period or "all"
    start = period_start(period)
    workouts = ctx.store.list_workouts(WorkoutFilter(from_date=start))
    summary = summarize(workouts)

    if not summary.count:
        ctx.console.print(f"No workouts {PERIOD_TITLES[period].lower()}.")
        return 0

    units = ctx.config.workouts
    table = Table(title=f"Workout Stats: {PERIOD_TITLES[period]}")
    table.add_column("Type", style="cyan")
    table.add_column("Workouts", justify="right")
    table.add_column("Distance", justify="right")
    table.add_column("Duration", justify="right")
    for exercise_type, totals in sorted(summary.by_type.items()):
        table.add_row(
            exercise_type,
            str(totals.count),
            format_distance(totals.distance_km, units.default_distance_unit),
            format_duration(totals.duration_minutes, units.default_duration_unit),
        )
    table.add_section()
    table.add_row(
        "[bold]Total[/bold]",
        f"[bold]{summary.count}[/bold]",
        format_distance(summary.distance_km, units.default_distance_unit),
        format_duration(summary.duration_minutes, units.default_duration_unit),
    )
    ctx.console.print(table)
    return 0


def register(subparsers) -> None:
    stats = subparsers.add_parser("stats", help="Show workout statistics")
    period = stats.add_mutually_exclusive_group()
    period.add_argument("--week", dest="period", action="store_const", const="week", help="this week")
    period.add_argument("--month", dest="period", action="store_const", const="month", help="this month")
    period.add_argument("--year", dest="period", action="store_const", const="year", help="this year")
    stats.set_defaults(func=cmd_stats, period=None)
