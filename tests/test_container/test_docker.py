"""Unit tests for container build and publish (kdd.container.docker).

Tests cover:
- image URI construction (local default registry, realm registry, tag)
- containerize command and failure mapping
- publish: tag then push, per-block isolation, PublishError aggregation
- auth-refresh recovery: exactly one refresh and one retry, never for
  local registries
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from kdd.config import Settings
from kdd.container.docker import ContainerPublisher
from kdd.errors import (
    AuthRefreshError,
    CommandFailedError,
    ContainerBuildError,
    ProviderError,
    PublishError,
)
from kdd.models import Block, Realm


LOCAL_REALM = Realm(name="dev", context="docker-desktop", registry="localhost:5000/")
AWS_REALM = Realm(
    name="aws",
    context="arn:aws:eks:us-west-2:123456789:cluster/cstar-cluster",
    registry="123456789.dkr.ecr.us-west-2.amazonaws.com/",
    profile="jc-root",
)
AWS_REGISTRY = "123456789.dkr.ecr.us-west-2.amazonaws.com"


@pytest.fixture
def project(make_config):
    return make_config(
        blocks=[Block(name="web"), Block(name="web-server"), Block(name="db")],
        image_tag="DROP-002-SNAPSHOT",
    )


@pytest.fixture
def commands():
    """Patch ``exec_cmd``; yields ``(log, fail)``.

    ``fail`` maps a command prefix (as a tuple) to the number of times it
    should fail before succeeding.
    """
    log: list[tuple[str, ...]] = []
    fail: dict[tuple[str, ...], int] = {}

    async def fake_exec_cmd(cmd, cwd=None):
        cmd = tuple(cmd)
        log.append(cmd)
        for prefix, remaining in fail.items():
            if remaining and cmd[: len(prefix)] == prefix:
                fail[prefix] = remaining - 1
                raise CommandFailedError(" ".join(cmd), 1)

    with patch("kdd.container.docker.exec_cmd", AsyncMock(side_effect=fake_exec_cmd)):
        yield log, fail


@pytest.fixture
def provider_hooks():
    """Patch the provider hooks; yields ``(reconcile, refresh)`` mocks."""
    with patch("kdd.container.docker.reconcile_before_publish", AsyncMock()) as reconcile, \
            patch("kdd.container.docker.refresh_auth", AsyncMock()) as refresh:
        yield reconcile, refresh


def _pushes(log):
    return [cmd for cmd in log if cmd[1] == "push"]


# ---------------------------------------------------------------------------
# Image naming
# ---------------------------------------------------------------------------


class TestImageUri:
    @pytest.mark.unit
    def test_local(self, project):
        uri = ContainerPublisher(project).image_uri(project.blocks[0])
        assert uri == "localhost:5000/cstar-web:DROP-002-SNAPSHOT"

    @pytest.mark.unit
    def test_realm_registry_trailing_slash_stripped(self, project):
        uri = ContainerPublisher(project).image_uri(project.blocks[0], AWS_REALM)
        assert uri == f"{AWS_REGISTRY}/cstar-web:DROP-002-SNAPSHOT"

    @pytest.mark.unit
    def test_realm_without_registry_uses_default(self, project):
        realm = Realm(name="dev", context="docker-desktop")
        uri = ContainerPublisher(project).image_uri(project.blocks[0], realm)
        assert uri == "localhost:5000/cstar-web:DROP-002-SNAPSHOT"

    @pytest.mark.unit
    def test_default_tag_and_registry_setting(self, make_config):
        config = make_config(blocks=[Block(name="db")])
        publisher = ContainerPublisher(config, Settings(default_registry="127.0.0.1:5001/"))
        assert publisher.image_uri(config.blocks[0]) == "127.0.0.1:5001/cstar-db:default"


# ---------------------------------------------------------------------------
# containerize
# ---------------------------------------------------------------------------


class TestContainerize:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_build_command(self, project):
        with patch("kdd.container.docker.exec_cmd", AsyncMock()) as exec_cmd:
            uri = await ContainerPublisher(project).containerize(project.blocks[0])

        assert uri == "localhost:5000/cstar-web:DROP-002-SNAPSHOT"
        exec_cmd.assert_awaited_once_with(
            ["docker", "build", "--rm", "-t", uri, "."],
            cwd=project.block_dir(project.blocks[0]),
        )

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_engine_setting(self, project):
        publisher = ContainerPublisher(project, Settings(container_engine="podman"))
        with patch("kdd.container.docker.exec_cmd", AsyncMock()) as exec_cmd:
            await publisher.containerize(project.blocks[0])
        assert exec_cmd.await_args.args[0][0] == "podman"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failure(self, project):
        failing = AsyncMock(side_effect=CommandFailedError("docker build", 1))
        with patch("kdd.container.docker.exec_cmd", failing):
            with pytest.raises(ContainerBuildError) as exc_info:
                await ContainerPublisher(project).containerize(project.blocks[0])
        assert exc_info.value.block == "web"


# ---------------------------------------------------------------------------
# publish
# ---------------------------------------------------------------------------


class TestPublish:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_tag_then_push(self, project, commands, provider_hooks):
        log, _ = commands
        published = await ContainerPublisher(project).publish(AWS_REALM, project.blocks[:1])

        assert published == ["web"]
        assert log == [
            ("docker", "tag", "localhost:5000/cstar-web:DROP-002-SNAPSHOT",
             f"{AWS_REGISTRY}/cstar-web:DROP-002-SNAPSHOT"),
            ("docker", "push", f"{AWS_REGISTRY}/cstar-web:DROP-002-SNAPSHOT"),
        ]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_reconcile_once_before_pushes(self, project, commands, provider_hooks):
        reconcile, _ = provider_hooks
        await ContainerPublisher(project).publish(AWS_REALM, project.blocks)
        reconcile.assert_awaited_once_with("cstar", AWS_REALM, project.blocks)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_reconcile_failure_aborts_batch(self, project, commands, provider_hooks):
        log, _ = commands
        reconcile, _ = provider_hooks
        reconcile.side_effect = ProviderError("aws", "bad json")

        with pytest.raises(ProviderError):
            await ContainerPublisher(project).publish(AWS_REALM, project.blocks)
        assert log == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_batch(self, project, commands, provider_hooks):
        assert await ContainerPublisher(project).publish(AWS_REALM, []) == []


class TestPublishRecovery:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_remote_push_retried_once_after_refresh(self, project, commands, provider_hooks):
        log, fail = commands
        _, refresh = provider_hooks
        fail[("docker", "push")] = 1

        published = await ContainerPublisher(project).publish(AWS_REALM, project.blocks[:1])

        assert published == ["web"]
        assert len(_pushes(log)) == 2
        refresh.assert_awaited_once_with(AWS_REALM, engine="docker")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_remote_retry_failure_reported(self, project, commands, provider_hooks):
        log, fail = commands
        _, refresh = provider_hooks
        fail[("docker", "push")] = 2

        with pytest.raises(PublishError) as exc_info:
            await ContainerPublisher(project).publish(AWS_REALM, project.blocks[:1])

        assert list(exc_info.value.failures) == ["web"]
        assert len(_pushes(log)) == 2
        assert refresh.await_count == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_refresh_failure_no_retry(self, project, commands, provider_hooks):
        log, fail = commands
        _, refresh = provider_hooks
        refresh.side_effect = AuthRefreshError("aws", "expired sso session")
        fail[("docker", "push")] = 1

        with pytest.raises(PublishError) as exc_info:
            await ContainerPublisher(project).publish(AWS_REALM, project.blocks[:1])

        assert "expired sso session" in exc_info.value.failures["web"]
        assert len(_pushes(log)) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_local_push_not_retried_and_batch_continues(self, project, commands, provider_hooks):
        log, fail = commands
        _, refresh = provider_hooks
        fail[("docker", "push")] = 1

        with pytest.raises(PublishError) as exc_info:
            await ContainerPublisher(project).publish(LOCAL_REALM, project.blocks)

        refresh.assert_not_awaited()
        assert list(exc_info.value.failures) == ["web"]
        # web failed once, web-server and db still pushed
        assert len(_pushes(log)) == 3
        assert str(exc_info.value).startswith("Cannot dpush 1 block(s):")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_tag_failure_isolated(self, project, commands, provider_hooks):
        log, fail = commands
        _, refresh = provider_hooks
        fail[("docker", "tag")] = 1

        with pytest.raises(PublishError) as exc_info:
            await ContainerPublisher(project).publish(AWS_REALM, project.blocks)

        assert list(exc_info.value.failures) == ["web"]
        assert len(_pushes(log)) == 2
        refresh.assert_not_awaited()
