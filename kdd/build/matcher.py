"""Builder matching: which configured builders fire for a given block."""

from __future__ import annotations

from kdd.config import KddConfig
from kdd.models import Block, Builder


def matched_builders(config: KddConfig, block: Block) -> list[Builder]:
    """Builders triggered for *block*, in declaration order.

    A builder is a candidate when its ``when_file`` exists (``./`` paths are
    relative to the block dir, others to the kdd dir). A candidate is dropped
    when another candidate for the same block declares ``replace`` with its
    name. Builders without ``when_file`` never match.
    """
    candidates: list[Builder] = []
    replaced: set[str] = set()

    for builder in config.builders:
        if builder.when_file is None:
            continue
        if config.rel_path(block, builder.when_file).is_file():
            candidates.append(builder)
            if builder.replace is not None:
                replaced.add(builder.replace)

    return [builder for builder in candidates if builder.name not in replaced]
