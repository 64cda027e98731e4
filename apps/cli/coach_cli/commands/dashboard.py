"""dashboard: this week, recent workouts, goals, sync status."""
from rich.columns import Columns
from rich.panel import Panel
from rich.table import Table

from coach_cli.commands.stats import period_start, summarize
from coach_cli.formatting import format_distance, format_duration, short_id
from coach_cli.models import EntityType, WorkoutFilter
from coach_cli.storage import LAST_SYNC_KEY

RECENT_LIMIT = 5


def _week_panel(ctx) -> Panel:
    units = ctx.config.workouts
    summary = summarize(ctx.store.list_workouts(WorkoutFilter(from_date=period_start("week"))))
    lines = [
        f"Workouts:  [bold]{summary.count}[/bold]",
        f"Distance:  {format_distance(summary.distance_km, units.default_distance_unit)}",
        f"Duration:  {format_duration(summary.duration_minutes, units.default_duration_unit)}",
    ]
    return Panel("\n".join(lines), title="This Week", border_style="cyan")


def _recent_panel(ctx) -> Panel:
    units = ctx.config.workouts
    workouts = ctx.store.list_workouts(limit=RECENT_LIMIT)
    if not workouts:
        return Panel("No workouts yet.\nLog one with 'ai-coach workout log'.", title="Recent Workouts")
    table = Table(show_header=False, box=None, pad_edge=False)
    for workout in workouts:
        table.add_row(
            workout.date.strftime(ctx.config.ui.date_format),
            workout.exercise_type,
            format_distance(workout.distance_km, units.default_distance_unit),
            format_duration(workout.duration_minutes, units.default_duration_unit),
        )
    return Panel(table, title="Recent Workouts")


def _goals_panel(ctx) -> Panel:
    goals = ctx.store.list_goals()
    if not goals:
        return Panel("No active goals.", title="Goals", border_style="magenta")
    lines = []
    for goal in goals:
        pct = goal.progress_percentage()
        filled = int(pct // 10)
        days = goal.days_remaining()
        due = "" if days is None else f" [dim]({days}d left)[/dim]"
        lines.append(f"{goal.title}{due}\n  [green]{'█' * filled}[/green]{'░' * (10 - filled)} {pct:.0f}%")
    return Panel("\n".join(lines), title="Goals", border_style="magenta")


def _sync_panel(ctx) -> Panel:
    store = ctx.store
    tokens = store.get_tokens()
    pending = sum(len(store.list_unsynced(entity)) for entity in EntityType) + len(store.list_pending_deletes())
    conflicts = store.list_conflicts()
    lines = [
        f"Account:    {tokens.email if tokens else '[yellow]not logged in[/yellow]'}",
        f"Last sync:  {store.get_state(LAST_SYNC_KEY) or 'never'}",
        f"Pending:    {pending} change(s)",
    ]
    if conflicts:
        ids = ", ".join(short_id(c.entity_id) for c in conflicts)
        lines.append(f"[yellow]Conflicts:  {len(conflicts)} ({ids})[/yellow]")
    return Panel("\n".join(lines), title="Sync", border_style="green" if not pending and not conflicts else "yellow")


def cmd_dashboard(args, ctx) -> int:
    console = ctx.console
    console.print(Panel.fit("[bold]AI Coach[/bold]", border_style="blue"))
    console.print(Columns([_week_panel(ctx), _sync_panel(ctx)]))
    console.print(_recent_panel(ctx))
    console.print(_goals_panel(ctx))
    return 0


def register(subparsers) -> None:
    dashboard = subparsers.add_parser("dashboard", help="Overview of training, goals and sync state")
    dashboard.set_defaults(func=cmd_dashboard)
