"""Centralized console creation utilities."""

import sys

from rich.console import Console


def get_stderr_console(no_color: bool = False) -> Console:
    """Get console for error/warning output to stderr.

    Args:
        no_color: Disable color output

    Returns:
        Console instance configured for stderr
    """
    return Console(file=sys.stderr, no_color=no_color)


def get_stdout_console(no_color: bool = False) -> Console:
    """Get console for standard output to stdout."""
    return Console(file=sys.stdout, no_color=no_color)


def get_error_console(robot: bool, console: Console) -> Console:
    """Get console for error output based on mode.

    Robot mode reports errors as JSON on stdout, so anything human-readable
    goes to a no-color stderr console instead of the default one.
    """
    return get_stderr_console(no_color=True) if robot else console
