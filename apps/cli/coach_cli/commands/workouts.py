"""workout log / list / show / edit / delete."""
from datetime import date

from rich.prompt import Confirm
from rich.table import Table

from coach_cli.errors import CliError
from coach_cli.formatting import (
    format_distance,
    format_duration,
    format_pace,
    parse_date,
    short_id,
    sync_badge,
    to_km,
)
from coach_cli.models import EntityType, Workout, WorkoutFilter
from coach_cli.workout_parser import parse_workout


def _distance_arg(args, ctx):
    if args.distance is None:
        return None
    return to_km(args.distance, ctx.config.workouts.default_distance_unit)


def cmd_log(args, ctx) -> int:
    console = ctx.console
    if args.description:
        parsed = parse_workout(args.description)
        exercise_type = args.type or parsed.exercise_type
        duration = args.duration if args.duration is not None else parsed.duration_minutes
        distance = _distance_arg(args, ctx)
        if distance is None:
            distance = parsed.distance_km
    elif args.type:
        exercise_type = args.type
        duration = args.duration
        distance = _distance_arg(args, ctx)
    else:
        raise CliError(
            "Nothing to log",
            hint='Describe the workout ("Ran 5 miles in 40 minutes") or pass --type',
        )

    workout = Workout(
        date=args.date or date.today(),
        exercise_type=exercise_type,
        duration_minutes=duration,
        distance_km=distance,
        notes=args.notes,
    )
    ctx.store.add_workout(workout)

    units = ctx.config.workouts
    console.print(f"[green]✓ Workout logged[/green] [dim]{short_id(workout.id)}[/dim]")
    console.print(
        f"  {workout.exercise_type}  {format_duration(workout.duration_minutes, units.default_duration_unit)}"
        f"  {format_distance(workout.distance_km, units.default_distance_unit)}"
    )
    ctx.auto_sync()
    return 0


def cmd_list(args, ctx) -> int:
    workout_filter = WorkoutFilter(
        exercise_type=args.type,
        from_date=args.from_date,
        to_date=args.to_date,
        synced=False if args.unsynced else None,
    )
    workouts = ctx.store.list_workouts(workout_filter, limit=args.limit)
    if not workouts:
        ctx.console.print("No workouts found.")
        return 0

    units = ctx.config.workouts
    table = Table(title="Recent Workouts")
    table.add_column("ID", style="dim")
    table.add_column("Date")
    table.add_column("Type", style="cyan")
    table.add_column("Duration", justify="right")
    table.add_column("Distance", justify="right")
    table.add_column("Pace", justify="right")
    if ctx.config.ui.show_sync_status:
        table.add_column("Sync")

    for workout in workouts:
        row = [
            short_id(workout.id),
            workout.date.strftime(ctx.config.ui.date_format),
            workout.exercise_type,
            format_duration(workout.duration_minutes, units.default_duration_unit),
            format_distance(workout.distance_km, units.default_distance_unit),
            format_pace(workout.pace_min_per_km(), units.default_distance_unit),
        ]
        if ctx.config.ui.show_sync_status:
            row.append(sync_badge(workout.synced))
        table.add_row(*row)
    ctx.console.print(table)
    return 0


def cmd_show(args, ctx) -> int:
    store = ctx.store
    workout = store.get_workout(store.resolve_id(EntityType.WORKOUT, args.id))
    units = ctx.config.workouts

    table = Table(show_header=False, box=None)
    table.add_column(style="bold")
    table.add_column()
    table.add_row("ID", workout.id)
    table.add_row("Date", workout.date.strftime(ctx.config.ui.date_format))
    table.add_row("Type", workout.exercise_type)
    table.add_row("Duration", format_duration(workout.duration_minutes, units.default_duration_unit))
    table.add_row("Distance", format_distance(workout.distance_km, units.default_distance_unit))
    table.add_row("Pace", format_pace(workout.pace_min_per_km(), units.default_distance_unit))
    table.add_row("Notes", workout.notes or "-")
    table.add_row("Sync", sync_badge(workout.synced))
    ctx.console.print(table)
    return 0


def cmd_edit(args, ctx) -> int:
    store = ctx.store
    workout = store.get_workout(store.resolve_id(EntityType.WORKOUT, args.id))
    changes = (args.type, args.duration, args.distance, args.notes, args.date)
    if all(value is None for value in changes):
        raise CliError("Nothing to change", hint="Pass --type, --duration, --distance, --notes or --date")

    workout.update(
        exercise_type=args.type,
        duration_minutes=args.duration,
        distance_km=_distance_arg(args, ctx),
        notes=args.notes,
        workout_date=args.date,
    )
    store.update_workout(workout)
    ctx.console.print(f"[green]✓ Workout {short_id(workout.id)} updated[/green]")
    ctx.auto_sync()
    return 0


def cmd_delete(args, ctx) -> int:
    store = ctx.store
    workout_id = store.resolve_id(EntityType.WORKOUT, args.id)
    if not args.force and not Confirm.ask(f"Delete workout {short_id(workout_id)}?", console=ctx.console):
        ctx.console.print("Cancelled.")
        return 0
    store.delete_workout(workout_id)
    ctx.console.print(f"[green]✓ Workout {short_id(workout_id)} deleted[/green]")
    ctx.auto_sync()
    return 0


def _add_field_options(parser) -> None:
    parser.add_argument("--type", help="exercise type (running, cycling, swimming, ...)")
    parser.add_argument("--duration", type=int, help="duration in minutes")
    parser.add_argument("--distance", type=float, help="distance in the configured unit")
    parser.add_argument("--notes")
    parser.add_argument("--date", type=parse_date, help="YYYY-MM-DD (default: today)")


def register(subparsers) -> None:
    workout = subparsers.add_parser("workout", help="Manage workouts")
    sub = workout.add_subparsers(dest="workout_command", metavar="<command>")
    sub.required = True

    log = sub.add_parser("log", help="Log a new workout")
    log.add_argument("description", nargs="?", help='e.g. "Ran 5 miles in 40 minutes"')
    _add_field_options(log)
    log.set_defaults(func=cmd_log)

    listing = sub.add_parser("list", help="List recent workouts")
    listing.add_argument("-t", "--type", help="filter by exercise type")
    listing.add_argument("--from", dest="from_date", type=parse_date, help="from date (YYYY-MM-DD)")
    listing.add_argument("--to", dest="to_date", type=parse_date, help="to date (YYYY-MM-DD)")
    listing.add_argument("-l", "--limit", type=int, default=10, help="number of workouts to show")
    listing.add_argument("--unsynced", action="store_true", help="only workouts not yet synced")
    listing.set_defaults(func=cmd_list)

    show = sub.add_parser("show", help="Show workout details")
    show.add_argument("id", help="workout id (or unique prefix)")
    show.set_defaults(func=cmd_show)

    edit = sub.add_parser("edit", help="Edit a workout")
    edit.add_argument("id", help="workout id (or unique prefix)")
    _add_field_options(edit)
    edit.set_defaults(func=cmd_edit)

    remove = sub.add_parser("delete", help="Delete a workout")
    remove.add_argument("id", help="workout id (or unique prefix)")
    remove.add_argument("-f", "--force", action="store_true", help="skip confirmation prompt")
    remove.set_defaults(func=cmd_delete)
