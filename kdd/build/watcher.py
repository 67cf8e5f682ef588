"""Watch mode: one long-lived watcher process per (block, builder) pair.

Every matched builder gets its own watcher, ``run: session`` included, since
each one is an independent process that never returns on its own. Watchers
share no mutable state; a watcher that cannot start does not affect the
others.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path
from typing import Optional

from kdd.config import KddConfig
from kdd.errors import CannotExecuteError
from kdd.models import Builder
from kdd.utils import print_error, print_info, print_warning

from .executor import execute_and_wait
from .matcher import matched_builders
from .resolver import resolve_blocks


async def run_watcher(builder: Builder, base_dir: Path, block_dir: Path, block_name: str) -> Optional[int]:
    """Run one builder in watch mode until it exits.

    Returns:
        The exit code, or ``None`` when the process could not be started.
    """
    print_info(f"--- watch - {builder.name} for [{block_name}]")
    try:
        return await execute_and_wait(builder.exec, base_dir, block_dir, watch=True)
    except CannotExecuteError as exc:
        print_warning(f"WARNING - watcher '{builder.name}' for [{block_name}] not started. {exc}")
        return None


async def watch_blocks(
    config: KddConfig,
    names: Optional[Sequence[str]] = None,
    spawn_delay: float = 2.0,
) -> list[Optional[int]]:
    """Start the watchers of the requested blocks and wait for all of them.

    Successive watcher starts are spaced by *spawn_delay* seconds so their
    start-up output does not interleave.

    Raises:
        UnknownBlockError: If a requested name is not a block (before any
            watcher starts).
    """
    targets, _ = resolve_blocks(config, names)

    tasks: list[asyncio.Task[Optional[int]]] = []
    for block in targets:
        block_dir = config.block_dir(block)
        for builder in matched_builders(config, block):
            tasks.append(
                asyncio.create_task(run_watcher(builder, config.dir, block_dir, block.name))
            )
            await asyncio.sleep(spawn_delay)

    results = await asyncio.gather(*tasks, return_exceptions=True)

    codes: list[Optional[int]] = []
    for result in results:
        if isinstance(result, BaseException):
            print_error(f"ERROR - watcher crashed: {result}")
            codes.append(None)
        else:
            codes.append(result)
    return codes
