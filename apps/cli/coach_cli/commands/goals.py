"""goals list / create / update / complete / delete."""
from rich.progress_bar import ProgressBar
from rich.prompt import Confirm
from rich.table import Table

from coach_cli.errors import CliError
from coach_cli.formatting import parse_date, short_id, sync_badge
from coach_cli.models import EntityType, Goal, GoalType


def _goal_type(value: str) -> GoalType:
    try:
        return GoalType.parse(value)
    except ValueError as e:
        raise CliError(str(e), hint="Use distance, duration, event or frequency")


def cmd_list(args, ctx) -> int:
    goals = ctx.store.list_goals(include_completed=args.all)
    if not goals:
        ctx.console.print("No goals yet. Create one with 'ai-coach goals create'.")
        return 0

    table = Table(title="Goals")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="bold")
    table.add_column("Type")
    table.add_column("Progress")
    table.add_column("Target date")
    table.add_column("Days left", justify="right")
    if ctx.config.ui.show_sync_status:
        table.add_column("Sync")

    for goal in goals:
        days = goal.days_remaining()
        progress = ProgressBar(total=100, completed=goal.progress_percentage(), width=20)
        row = [
            short_id(goal.id),
            ("[strike]" + goal.title + "[/strike]") if goal.completed else goal.title,
            str(goal.goal_type),
            progress,
            goal.target_date.strftime(ctx.config.ui.date_format) if goal.target_date else "-",
            "done" if goal.completed else ("-" if days is None else str(days)),
        ]
        if ctx.config.ui.show_sync_status:
            row.append(sync_badge(goal.synced))
        table.add_row(*row)
    ctx.console.print(table)
    return 0


def cmd_create(args, ctx) -> int:
    goal = Goal(
        title=args.title,
        goal_type=_goal_type(args.type),
        target_date=args.target_date,
        target_value=args.target,
        notes=args.notes,
    )
    ctx.store.add_goal(goal)
    ctx.console.print(f"[green]✓ Goal created[/green] [dim]{short_id(goal.id)}[/dim] {goal.title}")
    ctx.auto_sync()
    return 0


def cmd_update(args, ctx) -> int:
    store = ctx.store
    goal = store.get_goal(store.resolve_id(EntityType.GOAL, args.id))
    if all(value is None for value in (args.title, args.target, args.target_date, args.notes, args.progress)):
        raise CliError("Nothing to change", hint="Pass --title, --target, --target-date, --notes or --progress")

    goal.update(title=args.title, target_date=args.target_date, target_value=args.target, notes=args.notes)
    if args.progress is not None:
        goal.update_progress(args.progress)
    store.update_goal(goal)
    ctx.console.print(f"[green]✓ Goal {short_id(goal.id)} updated[/green] ({goal.progress_percentage():.0f}%)")
    ctx.auto_sync()
    return 0


def cmd_complete(args, ctx) -> int:
    store = ctx.store
    goal = store.get_goal(store.resolve_id(EntityType.GOAL, args.id))
    if goal.completed:
        ctx.console.print(f"Goal {short_id(goal.id)} is already complete.")
        return 0
    goal.mark_complete()
    store.update_goal(goal)
    ctx.console.print(f"[green]✓ Goal complete:[/green] {goal.title}")
    ctx.auto_sync()
    return 0


def cmd_delete(args, ctx) -> int:
    store = ctx.store
    goal_id = store.resolve_id(EntityType.GOAL, args.id)
    if not args.force and not Confirm.ask(f"Delete goal {short_id(goal_id)}?", console=ctx.console):
        ctx.console.print("Cancelled.")
        return 0
    store.delete_goal(goal_id)
    ctx.console.print(f"[green]✓ Goal {short_id(goal_id)} deleted[/green]")
    ctx.auto_sync()
    return 0


def register(subparsers) -> None:
    goals = subparsers.add_parser("goals", help="Manage goals")
    sub = goals.add_subparsers(dest="goals_command", metavar="<command>")
    sub.required = True

    listing = sub.add_parser("list", help="List goals")
    listing.add_argument("-a", "--all", action="store_true", help="include completed goals")
    listing.set_defaults(func=cmd_list)

    create = sub.add_parser("create", help="Create a goal")
    create.add_argument("title")
    create.add_argument("--type", default="distance", help="distance | duration | event | frequency")
    create.add_argument("--target", type=float, help="target value (km, minutes or workouts)")
    create.add_argument("--target-date", type=parse_date, help="YYYY-MM-DD")
    create.add_argument("--notes")
    create.set_defaults(func=cmd_create)

    upd = sub.add_parser("update", help="Update a goal")
    upd.add_argument("id", help="goal id (or unique prefix)")
    upd.add_argument("--title")
    upd.add_argument("--target", type=float)
    upd.add_argument("--target-date", type=parse_date)
    upd.add_argument("--notes")
    upd.add_argument("--progress", type=float, help="current value toward the target")
    upd.set_defaults(func=cmd_update)

    complete = sub.add_parser("complete", help="Mark a goal complete")
    complete.add_argument("id", help="goal id (or unique prefix)")
    complete.set_defaults(func=cmd_complete)

    remove = sub.add_parser("delete", help="Delete a goal")
    remove.add_argument("id", help="goal id (or unique prefix)")
    remove.add_argument("-f", "--force", action="store_true", help="skip confirmation prompt")
    remove.set_defaults(func=cmd_delete)
