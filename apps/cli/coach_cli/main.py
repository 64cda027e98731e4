"""
ai-coach command line entry point.

Usage:
    ai-coach login
    ai-coach workout log "Ran 5 miles in 40 minutes"
    ai-coach sync --dry-run
    ai-coach --offline dashboard
"""
import argparse
import logging
import sys
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from coach_cli import __version__
from coach_cli.commands import register_all
from coach_cli.context import CliContext
from coach_cli.errors import CliError

logger = logging.getLogger("coach_cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ai-coach",
        description="AI Coach: log workouts and goals locally, sync with your coach.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging to stderr")
    parser.add_argument("--offline", action="store_true", help="never contact the server")
    parser.add_argument("--config", metavar="PATH", help="config file (default: ~/.ai-coach/config.json)")

    subparsers = parser.add_subparsers(dest="command", metavar="<command>")
    subparsers.required = True
    register_all(subparsers)
    parser.set_defaults(root_parser=parser)
    return parser


def setup_logging(verbose: bool, console: Console) -> None:
    handler = RichHandler(console=console, show_path=False, rich_tracebacks=verbose)
    logger.handlers[:] = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    err_console = Console(stderr=True)
    setup_logging(args.verbose, err_console)

    ctx = CliContext(config_path=args.config, offline=args.offline)
    try:
        return args.func(args, ctx)
    except CliError as e:
        logger.debug("Command failed", exc_info=True)
        err_console.print(f"[red]Error:[/red] {escape(e.render())}", highlight=False)
        return 1
    except KeyboardInterrupt:
        err_console.print("Interrupted")
        return 130
    finally:
        ctx.close()


if __name__ == "__main__":
    sys.exit(main())
