"""kdd build module.

Block resolution, builder matching, builder execution, and the sequential
build / concurrent watch drivers.

Key classes and functions:
    Orchestrator      - build, watch and publish entry points
    BuildRun          - per-invocation record of built blocks and run builders
    resolve_blocks    - requested names -> target blocks + name index
    matched_builders  - builders triggered for a block
    execute_and_wait  - run one builder command
"""

from .executor import args_for, execute, execute_and_wait, resolve_command, working_dir
from .matcher import matched_builders
from .orchestrator import BuildRun, Orchestrator
from .resolver import PACKAGING_DESCRIPTOR, is_packageable, resolve_blocks
from .watcher import run_watcher, watch_blocks

__all__ = [
    # Orchestration
    "Orchestrator",
    "BuildRun",
    # Resolution & matching
    "resolve_blocks",
    "is_packageable",
    "PACKAGING_DESCRIPTOR",
    "matched_builders",
    # Execution
    "execute",
    "execute_and_wait",
    "resolve_command",
    "working_dir",
    "args_for",
    # Watch
    "watch_blocks",
    "run_watcher",
]
