"""
Subcommand modules. Each exposes `register(subparsers)`, which adds its
parsers and binds handlers of the form `handler(args, ctx) -> int`.
"""
from coach_cli.commands import auth, completions, config_cmd, dashboard, goals, stats, sync_cmd, workouts

COMMAND_MODULES = (auth, workouts, goals, stats, sync_cmd, dashboard, config_cmd, completions)


def register_all(subparsers) -> None:
    for module in COMMAND_MODULES:
        module.register(subparsers)
