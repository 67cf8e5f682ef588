"""kdd build orchestrator.

Drives ``build`` (builders, optionally followed by container build and
auto-publish), ``watch`` and ``publish`` over the configured blocks.

The build path is strictly sequential: every process is awaited before the
next step starts, because dependency deduplication, ``run: session``
deduplication and the auto-publish switch all depend on what already ran in
this invocation.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Optional

from kdd.config import KddConfig, Settings
from kdd.container import ContainerPublisher
from kdd.errors import CannotExecuteError, KddError, KubectlError
from kdd.models import Block, Realm, RunOccurrence
from kdd.realm import Kubectl, current_realm
from kdd.utils import print_banner, print_info, print_warning

from .executor import execute_and_wait
from .matcher import matched_builders
from .resolver import resolve_blocks
from .watcher import watch_blocks


@dataclass
class BuildRun:
    """What already ran during one ``build`` invocation."""

    blocks_built: set[str] = field(default_factory=set)
    builders_executed: set[str] = field(default_factory=set)
    images_built: list[str] = field(default_factory=list)
    images_published: list[str] = field(default_factory=list)


class Orchestrator:
    """Entry point for the build, watch and publish operations.

    Attributes:
        config: The loaded kdd project (read-only).
        settings: Tool settings.
        publisher: Container image build/publish.
        kubectl: Used to find the current realm.
    """

    def __init__(
        self,
        config: KddConfig,
        settings: Optional[Settings] = None,
        publisher: Optional[ContainerPublisher] = None,
        kubectl: Optional[Kubectl] = None,
    ) -> None:
        self.config = config
        self.settings = settings or Settings()
        self.publisher = publisher or ContainerPublisher(config, self.settings)
        self.kubectl = kubectl or Kubectl(config, self.settings)

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    async def build_block(self, block: Block, run: BuildRun) -> None:
        """Run the matched builders of *block* and mark it built."""
        block_dir = self.config.block_dir(block)
        builders = matched_builders(self.config, block)

        if builders:
            print_info(f"===  Executing Builders for '{block.name}' ")

        for builder in builders:
            if builder.run is RunOccurrence.SESSION and builder.name in run.builders_executed:
                print_info(f"- skipping builder '{builder.name}' (session builder already ran)")
                continue

            print_info(f"--- builder - {builder.name} for [{block.name}]")
            try:
                await execute_and_wait(builder.exec, self.config.dir, block_dir)
            except CannotExecuteError:
                # already reported by the executor, the build goes on
                pass
            run.builders_executed.add(builder.name)
            print_info("")

        if builders:
            print_info(f"=== /Executing Builders for '{block.name}' DONE")

        run.blocks_built.add(block.name)

    async def build(
        self,
        names: Optional[Sequence[str]] = None,
        packaging: bool = False,
    ) -> BuildRun:
        """Build the requested blocks (all when *names* is ``None``).

        Each block's declared dependencies are built first (one level, each
        at most once per invocation). With *packaging*, only blocks with a
        Dockerfile are targeted; each gets its image built and, when the
        current realm uses a local registry, pushed to it.

        Raises:
            UnknownBlockError: Before anything runs, for an unknown name.
            ContainerBuildError: When an image build fails; later blocks are
                not processed.
        """
        targets, block_by_name = resolve_blocks(self.config, names, packaging_only=packaging)

        realm = await self._current_realm()
        auto_publish = realm is not None and realm.is_local_registry

        run = BuildRun()

        for block in targets:
            print_banner(f"Block '{block.name}' building...")

            for dep_name in block.dependencies:
                if dep_name in run.blocks_built:
                    print_info(f"Dependency {dep_name} already built, skipping")
                    continue
                dep_block = block_by_name.get(dep_name)
                if dep_block is None:
                    print_warning(f"Dependency {dep_name} not a block name, skipping. (from block '{block.name}')")
                    continue
                print_info(f"======  Dependency '{dep_name}' for '{block.name}' building... ")
                await self.build_block(dep_block, run)
                print_info(f"====== /Dependency '{dep_name}' for '{block.name}' DONE\n")

            await self.build_block(block, run)

            if packaging:
                print_info(f"======  Docker Build for '{block.name}' ")
                run.images_built.append(await self.publisher.containerize(block))
                print_info(f"====== /Docker Build for '{block.name}' DONE ")

                if auto_publish and realm is not None:
                    try:
                        run.images_published.extend(await self.publisher.publish(realm, [block]))
                    except KddError as exc:
                        print_warning(f"WARNING dpush to local registry failed. Cause: {exc}")
                        print_warning("Skip dpush to local registry from now on.")
                        auto_publish = False

            print_banner(f"/Block '{block.name}' DONE")
            print_info("")

        return run

    async def _current_realm(self) -> Optional[Realm]:
        try:
            return await current_realm(self.kubectl)
        except (KubectlError, CannotExecuteError):
            return None

    # ------------------------------------------------------------------
    # Watch
    # ------------------------------------------------------------------

    async def watch(self, names: Optional[Sequence[str]] = None) -> None:
        """Start a watcher per matched (block, builder) and wait for them."""
        await watch_blocks(self.config, names, spawn_delay=self.settings.watch_spawn_delay)

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------

    async def publish(self, realm: Realm, names: Optional[Sequence[str]] = None) -> list[str]:
        """Push the images of the requested packageable blocks to *realm*.

        Raises:
            UnknownBlockError: For an unknown name, before anything is pushed.
            PublishError: When at least one block failed (others still ran).
        """
        blocks, _ = resolve_blocks(self.config, names, packaging_only=True)
        return await self.publisher.publish(realm, blocks)
