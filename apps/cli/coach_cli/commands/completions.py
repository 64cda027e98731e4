"""completions <bash|zsh|fish>: print a shell completion script."""
import argparse
from typing import Dict, List

PROG = "ai-coach"


def command_tree(parser: argparse.ArgumentParser) -> Dict[str, List[str]]:
    """
    Map each command path to what may follow it.

    The root is "", subcommands are space-joined ("workout log"). Values
    list subcommand names first, then option strings.
    """
    tree: Dict[str, List[str]] = {}

    def walk(node: argparse.ArgumentParser, path: str) -> None:
        words: List[str] = []
        children = {}
        for action in node._actions:
            if isinstance(action, argparse._SubParsersAction):
                children.update(action.choices)
            else:
                words.extend(opt for opt in action.option_strings if opt.startswith("--"))
        tree[path] = sorted(children) + sorted(words)
        for name, child in children.items():
            walk(child, f"{path} {name}".strip())

    walk(parser, "")
    return tree


def bash_script(tree: Dict[str, List[str]]) -> str:
    cases = "\n".join(
        f'        "{path}") opts="{" ".join(words)}" ;;' for path, words in sorted(tree.items())
    )
    return f"""# bash completion for {PROG}
_ai_coach() {{
    local cur path word opts
    cur="${{COMP_WORDS[COMP_CWORD]}}"
    path=""
    for word in "${{COMP_WORDS[@]:1:COMP_CWORD-1}}"; do
        [[ "$word" == -* ]] && continue
        path="${{path:+$path }}$word"
    done
    case "$path" in
{cases}
        *) opts="" ;;
    esac
    COMPREPLY=( $(compgen -W "$opts" -- "$cur") )
}}
complete -F _ai_coach {PROG}
"""


def zsh_script(tree: Dict[str, List[str]]) -> str:
    return "#compdef {prog}\nautoload -U bashcompinit && bashcompinit\n{bash}".format(
        prog=PROG, bash=bash_script(tree)
    )


def fish_script(tree: Dict[str, List[str]]) -> str:
    lines = [f"# fish completion for {PROG}", f"complete -c {PROG} -f"]
    for path, words in sorted(tree.items()):
        parts = path.split()
        condition = f"__fish_seen_subcommand_from {parts[-1]}" if parts else "__fish_use_subcommand"
        for word in words:
            if word.startswith("--"):
                lines.append(f"complete -c {PROG} -n \"{condition}\" -l {word[2:]}")
            else:
                lines.append(f"complete -c {PROG} -n \"{condition}\" -a {word}")
    return "\n".join(lines) + "\n"


GENERATORS = {"bash": bash_script, "zsh": zsh_script, "fish": fish_script}


def cmd_completions(args, ctx) -> int:
    script = GENERATORS[args.shell](command_tree(args.root_parser))
    # Plain stdout so the output can be piped or sourced.
    print(script, end="")
    return 0


def register(subparsers) -> None:
    completions = subparsers.add_parser("completions", help="Print a shell completion script")
    completions.add_argument("shell", choices=sorted(GENERATORS))
    completions.set_defaults(func=cmd_completions)
