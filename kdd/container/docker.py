"""Container image build and publish.

Images are always built locally as ``<default registry>/<system>-<block>:<tag>``
(``localhost:5000/...`` unless configured otherwise) and re-tagged for the
realm registry at push time.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Optional

from kdd.config import KddConfig, Settings
from kdd.errors import ContainerBuildError, KddError, PublishError
from kdd.models import Block, Realm
from kdd.utils import exec_cmd, print_banner, print_error, print_success, print_warning

from .provider import reconcile_before_publish, refresh_auth


class ContainerPublisher:
    """Builds block images and pushes them to realm registries.

    A failed push to a remote registry triggers exactly one credential
    refresh followed by exactly one retry. A failed push to a local registry
    is not retried. Each block is isolated: one failed block does not stop
    the rest of the batch.
    """

    def __init__(self, config: KddConfig, settings: Optional[Settings] = None):
        self.config = config
        self.settings = settings or Settings()

    @property
    def engine(self) -> str:
        return self.settings.container_engine

    def image_uri(self, block: Block, realm: Optional[Realm] = None) -> str:
        """``<registry>/<system>-<block>:<tag>``; the local default registry
        is used when *realm* is ``None`` or has no registry."""
        registry = (realm.registry if realm else None) or self.settings.default_registry
        registry = registry.rstrip("/")
        return f"{registry}/{self.config.image_name(block)}:{self.config.image_tag_or_default}"

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    async def containerize(self, block: Block) -> str:
        """Build the image of *block* from its directory.

        Returns:
            The local image URI.

        Raises:
            ContainerBuildError: If the engine cannot run or the build fails.
        """
        # e.g., docker build --rm -t localhost:5000/cstar-db:DROP-002-SNAPSHOT .
        image_uri = self.image_uri(block)
        cwd = self.config.block_dir(block)
        try:
            await exec_cmd([self.engine, "build", "--rm", "-t", image_uri, "."], cwd=cwd)
        except KddError as exc:
            raise ContainerBuildError(block.name, str(exc)) from exc
        return image_uri

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------

    async def publish(self, realm: Realm, blocks: Sequence[Block]) -> list[str]:
        """Push the images of *blocks* to *realm*.

        Provider reconciliation runs once before any push; a reconciliation
        failure aborts the whole batch.

        Returns:
            Names of the blocks successfully published.

        Raises:
            PublishError: After the whole batch ran, when at least one block
                failed.
        """
        await reconcile_before_publish(self.config.system, realm, blocks)

        published: list[str] = []
        failures: dict[str, str] = {}
        for block in blocks:
            try:
                await self.publish_block(realm, block)
            except KddError as exc:
                print_error(f"ERROR - dpush of '{block.name}' failed. Cause: {exc}")
                failures[block.name] = str(exc)
            else:
                published.append(block.name)

        if failures:
            raise PublishError(failures)
        return published

    async def publish_block(self, realm: Realm, block: Block) -> None:
        """Tag and push one block image, with the auth-refresh recovery."""
        cwd = self.config.dir
        local_uri = self.image_uri(block)
        remote_uri = self.image_uri(block, realm)

        print_banner(f"Pushing image {local_uri} : {remote_uri}")
        await exec_cmd([self.engine, "tag", local_uri, remote_uri], cwd=cwd)

        try:
            await exec_cmd([self.engine, "push", remote_uri], cwd=cwd)
        except KddError as exc:
            if realm.is_local_registry:
                raise
            print_warning(f"Failed to do a {self.engine} push (cause: {exc}). Trying to recover...")
            await refresh_auth(realm, engine=self.engine)
            await exec_cmd([self.engine, "push", remote_uri], cwd=cwd)
            print_success("Recovered OK!")

        print_banner(f"/Pushing image {local_uri} : {remote_uri} - DONE")
