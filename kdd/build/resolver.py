"""Block name resolution.

Turns the block names requested on the command line into the ordered list of
blocks to process, plus a name index used to look up dependencies.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Optional

from kdd.config import KddConfig
from kdd.errors import UnknownBlockError
from kdd.models import Block

PACKAGING_DESCRIPTOR = "Dockerfile"


def is_packageable(config: KddConfig, block: Block) -> bool:
    """True when the block dir holds a container build recipe."""
    return (config.block_dir(block) / PACKAGING_DESCRIPTOR).is_file()


def resolve_blocks(
    config: KddConfig,
    names: Optional[Sequence[str]] = None,
    packaging_only: bool = False,
) -> tuple[list[Block], dict[str, Block]]:
    """Resolve *names* into ``(target_blocks, block_by_name)``.

    Args:
        config: The loaded kdd project.
        names: Requested block names, in the order to process them. ``None``
            means every configured block, in declaration order.
        packaging_only: Drop targets without a packaging descriptor. They stay
            in ``block_by_name`` and can still be built as dependencies.

    Returns:
        The target blocks and an index of every configured block by name.
        The target list may be empty.

    Raises:
        UnknownBlockError: On the first requested name that is not a block.
    """
    block_by_name = {block.name: block for block in config.blocks}

    if names is None:
        targets = list(config.blocks)
    else:
        targets = []
        for name in names:
            block = block_by_name.get(name)
            if block is None:
                raise UnknownBlockError(name)
            targets.append(block)

    if packaging_only:
        targets = [block for block in targets if is_packageable(config, block)]

    return targets, block_by_name
