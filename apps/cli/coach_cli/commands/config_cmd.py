"""config show / edit / init."""
import logging
import os
import shlex
import subprocess

from coach_cli.config import config_file, init_config, load_config
from coach_cli.errors import ConfigError

logger = logging.getLogger(__name__)


def cmd_show(args, ctx) -> int:
    ctx.console.print(f"[dim]{config_file(ctx.config_path)}[/dim]")
    ctx.console.print_json(ctx.config.to_json())
    return 0


def cmd_edit(args, ctx) -> int:
    target = config_file(ctx.config_path)
    if not target.exists():
        init_config(target)
    editor = os.getenv("VISUAL") or os.getenv("EDITOR") or "vi"
    logger.debug(f"Opening {target} with {editor}")
    try:
        subprocess.run(shlex.split(editor) + [str(target)], check=True)
    except (OSError, subprocess.CalledProcessError) as e:
        raise ConfigError(f"Could not run editor '{editor}': {e}", hint="Set $EDITOR")
    # Reject an invalid edit immediately.
    load_config(target)
    ctx.console.print(f"[green]✓ Saved {target}[/green]")
    return 0


def cmd_init(args, ctx) -> int:
    written = init_config(ctx.config_path, force=args.force)
    if written is None:
        ctx.console.print(
            f"Config already exists at {config_file(ctx.config_path)} (use --force to overwrite)"
        )
        return 0
    ctx.console.print(f"[green]✓ Wrote default config to {written}[/green]")
    return 0


def register(subparsers) -> None:
    config = subparsers.add_parser("config", help="Show or change client configuration")
    sub = config.add_subparsers(dest="config_command", metavar="<command>")
    sub.required = True

    show = sub.add_parser("show", help="Print the effective configuration")
    show.set_defaults(func=cmd_show)

    edit = sub.add_parser("edit", help="Open the config file in $EDITOR")
    edit.set_defaults(func=cmd_edit)

    init = sub.add_parser("init", help="Write a default config file")
    init.add_argument("--force", action="store_true", help="overwrite an existing file")
    init.set_defaults(func=cmd_init)
