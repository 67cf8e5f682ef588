"""Shared utility functions for kdd.

Provides async command execution on top of ``asyncio`` subprocesses and the
Rich-based console helpers used for every banner, warning and error the tool
prints.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Sequence
from pathlib import Path

from rich.console import Console
from rich.rule import Rule
from rich.text import Text

from kdd.errors import CannotExecuteError, CommandFailedError

console = Console()

# ---------------------------------------------------------------------------
# Async command execution
# ---------------------------------------------------------------------------


def format_command(cmd: Sequence[str]) -> str:
    """Join a command and its arguments for display."""
    return " ".join(str(part) for part in cmd)


async def spawn(
    cmd: Sequence[str],
    cwd: str | Path | None = None,
    capture: bool = False,
    stdin_pipe: bool = False,
) -> asyncio.subprocess.Process:
    """Start *cmd* without waiting for it.

    Raises:
        CannotExecuteError: If the process cannot be spawned (binary not
            found, permission denied, missing working directory...).
    """
    stdout_pipe = asyncio.subprocess.PIPE if capture else None
    stderr_pipe = asyncio.subprocess.PIPE if capture else None
    try:
        return await asyncio.create_subprocess_exec(
            *[str(part) for part in cmd],
            stdin=asyncio.subprocess.PIPE if stdin_pipe else None,
            stdout=stdout_pipe,
            stderr=stderr_pipe,
            cwd=str(cwd) if cwd else None,
        )
    except OSError as exc:
        raise CannotExecuteError(format_command(cmd), str(exc)) from exc


async def run_command(
    cmd: Sequence[str],
    cwd: str | Path | None = None,
    capture: bool = True,
    input_text: str | None = None,
) -> tuple[int, str, str]:
    """Run a command asynchronously and wait for it.

    Args:
        cmd: Program and arguments.
        cwd: Working directory for the child process.
        capture: Whether to capture stdout/stderr (if ``False`` they inherit
            the parent's streams).
        input_text: Optional text written to the child's stdin.

    Returns:
        A ``(returncode, stdout, stderr)`` tuple.  If *capture* is ``False``
        the stdout/stderr strings will be empty.
    """
    process = await spawn(cmd, cwd=cwd, capture=capture, stdin_pipe=input_text is not None)
    stdin_bytes = input_text.encode("utf-8") if input_text is not None else None
    stdout_bytes, stderr_bytes = await process.communicate(stdin_bytes)

    stdout_str = (stdout_bytes or b"").decode("utf-8", errors="replace").strip()
    stderr_str = (stderr_bytes or b"").decode("utf-8", errors="replace").strip()
    return (process.returncode or 0, stdout_str, stderr_str)


async def exec_cmd(cmd: Sequence[str], cwd: str | Path | None = None) -> None:
    """Run *cmd* with inherited output streams; a non-zero exit is an error.

    Raises:
        CannotExecuteError: If the process cannot be spawned.
        CommandFailedError: If the process exits with a non-zero status.
    """
    print_executing(cmd)
    returncode, _, _ = await run_command(cmd, cwd=cwd, capture=False)
    if returncode != 0:
        raise CommandFailedError(format_command(cmd), returncode)


async def exec_to_stdout(
    cmd: Sequence[str],
    cwd: str | Path | None = None,
    input_text: str | None = None,
) -> str:
    """Run *cmd* and return its captured stdout.

    Raises:
        CannotExecuteError: If the process cannot be spawned.
        CommandFailedError: If the process exits with a non-zero status
            (stderr is attached to the error).
    """
    returncode, stdout, stderr = await run_command(
        cmd, cwd=cwd, capture=True, input_text=input_text
    )
    if returncode != 0:
        raise CommandFailedError(format_command(cmd), returncode, stderr)
    return stdout


def relative_to(target: str | Path, start: str | Path) -> str:
    """Relative path from *start* to *target*, works for non-existing paths."""
    return os.path.relpath(str(target), str(start))


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


def print_banner(title: str, style: str = "bright_cyan") -> None:
    """Print a full-width rule with *title* in the middle."""
    console.print(Rule(Text(title, style=f"bold {style}"), style=style))


def print_executing(cmd: Sequence[str], cwd: str | Path | None = None) -> None:
    """Echo the command about to run."""
    line = f"> executing: {format_command(cmd)}"
    if cwd is not None:
        line += f" (at cwd: {cwd})"
    console.print(line, style="dim", markup=False, highlight=False)


def print_info(message: str) -> None:
    """Print a plain progress line (block names may contain brackets)."""
    console.print(message, markup=False, highlight=False)


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(message, style="bold green", markup=False)


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(message, style="bold red", markup=False)


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(message, style="bold yellow", markup=False)
