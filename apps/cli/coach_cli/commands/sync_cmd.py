"""sync [--dry-run] [--resolve ID --keep local|server]."""
from rich.table import Table

from coach_cli.context import OfflineError
from coach_cli.errors import CliError
from coach_cli.formatting import short_id
from coach_cli.sync import SyncEngine


def _resolve(args, ctx) -> int:
    if not args.keep:
        raise CliError("--resolve needs --keep local or --keep server")
    # Local only: no server round trip needed.
    engine = SyncEngine(ctx.store, None, ctx.config.sync.conflict_resolution)
    entity, record_id = engine.resolve_conflict(args.resolve, args.keep)
    ctx.console.print(
        f"[green]✓ Conflict on {entity.value} {short_id(record_id)} resolved, kept {args.keep} copy[/green]"
    )
    if args.keep == "local":
        ctx.console.print("[dim]Run 'ai-coach sync' to push it.[/dim]")
    return 0


def _print_report(report, console) -> None:
    rows = [
        ("Uploaded", report.uploaded),
        ("Deleted on server", report.deleted_remote),
        ("Downloaded", report.downloaded),
        ("Removed locally", report.removed_local),
        ("Conflicts", report.conflicts),
        ("Skipped (unresolved)", report.skipped),
    ]
    table = Table(title="Sync (dry run)" if report.dry_run else "Sync")
    table.add_column("Action")
    table.add_column("Count", justify="right")
    table.add_column("Records", style="dim")
    for label, refs in rows:
        if refs:
            table.add_row(label, str(len(refs)), ", ".join(f"{e.value} {short_id(i)}" for e, i in refs))
    if table.row_count:
        console.print(table)
    else:
        console.print("Everything is up to date.")

    for failure in report.failures:
        target = f"{failure.entity_type.value} {short_id(failure.record_id)}" if failure.entity_type else "sync"
        console.print(f"[red]✗ {target}: {failure.error}[/red]")
    for entity, record_id in report.unresolved:
        console.print(
            f"[yellow]⚠ Conflict on {entity.value} {record_id}; resolve with "
            f"'ai-coach sync --resolve {record_id} --keep local|server'[/yellow]"
        )


def cmd_sync(args, ctx) -> int:
    if args.keep and not args.resolve:
        raise CliError("--keep is only valid with --resolve")
    if args.resolve:
        return _resolve(args, ctx)
    if ctx.offline:
        raise OfflineError("Cannot sync with --offline set")

    if args.dry_run:
        ctx.console.print("[dim]Dry run: no changes will be made[/dim]")
    report = ctx.sync_engine().sync(dry_run=args.dry_run)
    _print_report(report, ctx.console)
    if report.ok:
        ctx.console.print("[green]✓ Sync complete[/green]" if not args.dry_run else "[dim]Dry run complete[/dim]")
        return 0
    return 1


def register(subparsers) -> None:
    sync = subparsers.add_parser("sync", help="Sync local data with the server")
    sync.add_argument("--dry-run", action="store_true", help="show what would change without changing anything")
    sync.add_argument("--resolve", metavar="ID", help="resolve a recorded conflict for this record id")
    sync.add_argument("--keep", choices=("local", "server"), help="which copy to keep with --resolve")
    sync.set_defaults(func=cmd_sync)
