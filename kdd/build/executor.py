"""Builder command execution.

Resolves a builder's :class:`~kdd.models.Exec` into a concrete command line
and working directory, then runs it as a child process that inherits the
operator's terminal.

The child's exit status is intentionally not inspected: builders are
developer tooling whose failures show up live in their own output. Only a
failure to spawn the process is reported, as :class:`CannotExecuteError`.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

from kdd.errors import CannotExecuteError
from kdd.models import CmdKind, Cwd, Exec
from kdd.utils import print_error, print_executing, relative_to, spawn


def working_dir(exec: Exec, base_dir: Path, block_dir: Path) -> Path:
    """Directory the command is launched from."""
    if exec.cwd is Cwd.BASE_DIR:
        return base_dir
    return block_dir


def resolve_command(exec: Exec, base_dir: Path, block_dir: Path) -> str:
    """Command string to spawn, adjusted for the effective working directory.

    * global commands are looked up on ``PATH`` and passed through as-is;
    * ``./x`` commands live in the block dir;
    * ``a/b`` commands live in the kdd base dir, so they get prefixed with the
      path leading from the working directory back to it (e.g.
      ``../../node_modules/.bin/tsc`` from ``services/web``).
    """
    cmd = exec.cmd
    if cmd.kind is CmdKind.GLOBAL:
        return cmd.value

    cwd = working_dir(exec, base_dir, block_dir)
    if cmd.kind is CmdKind.BLOCK_RELATIVE:
        return os.path.join(relative_to(block_dir, cwd), cmd.value[2:])
    return os.path.join(relative_to(base_dir, cwd), cmd.value)


def args_for(exec: Exec, watch: bool) -> list[str]:
    """Watch args in watch mode (when configured), default args otherwise."""
    if watch and exec.watch_args is not None:
        return list(exec.watch_args)
    return list(exec.args)


async def execute(
    exec: Exec,
    base_dir: Path,
    block_dir: Path,
    watch: bool = False,
) -> asyncio.subprocess.Process:
    """Spawn the builder command without waiting for it.

    Raises:
        CannotExecuteError: If the process cannot be started.
    """
    cwd = working_dir(exec, base_dir, block_dir)
    cmd = [resolve_command(exec, base_dir, block_dir), *args_for(exec, watch)]

    print_executing(cmd, cwd=cwd)
    try:
        return await spawn(cmd, cwd=cwd)
    except CannotExecuteError as exc:
        print_error(f"  ERROR - Fail to execute. Cause: {exc.cause}")
        raise


async def execute_and_wait(
    exec: Exec,
    base_dir: Path,
    block_dir: Path,
    watch: bool = False,
) -> int:
    """Spawn the builder command and wait for it to terminate.

    Returns:
        The child's exit code. It is returned for information only; a
        non-zero exit is *not* an error at this level.

    Raises:
        CannotExecuteError: If the process cannot be started.
    """
    process = await execute(exec, base_dir, block_dir, watch=watch)
    returncode = await process.wait()
    return returncode if returncode is not None else -1
