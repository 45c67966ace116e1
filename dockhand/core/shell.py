"""
Shell command rendering.

Commands are assembled from argument lists and quoted here, at the single
point where they become text for an ExecutionBackend.
"""

import shlex
from typing import Iterable, Union

Arg = Union[str, int]


def quote(value: Arg) -> str:
    """Quote one argument for a POSIX shell."""
    return shlex.quote(str(value))


def render(args: Iterable[Arg]) -> str:
    """
    Render an argument list as one shell command.

    Args:
        args: Program and arguments, unquoted

    Returns:
        Command string with every argument quoted
    """
    return " ".join(quote(arg) for arg in args)


def to_log(command: str, log_path: str) -> str:
    """Append stdout and stderr of a command to a log file."""
    return f"{command} >> {quote(log_path)} 2>&1"


def echo_to_log(message: str, log_path: str) -> str:
    """Render an `echo` that appends a progress line to a log file."""
    return to_log(render(["echo", message]), log_path)


def fragment(*commands: str) -> str:
    """Join commands into a `;`-terminated fragment for chaining."""
    return "".join(f"{command}; " for command in commands if command)


def strict_script(*fragments: str) -> str:
    """Build a script that aborts on the first failing command."""
    return "set -e; " + "".join(fragments)
