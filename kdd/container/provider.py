"""Cloud provider adapters for image publishing.

Two capabilities vary per provider, both dispatched on the realm's
:class:`~kdd.models.ProviderKind`:

* ``reconcile_before_publish`` -- make sure a remote repository exists for
  every block about to be pushed (AWS ECR needs them created up front).
* ``refresh_auth`` -- fetch a short-lived registry credential and hand it to
  the container engine's ``login``.

The ``common`` provider (local/desktop clusters) needs neither.
"""

from __future__ import annotations

import json
from collections.abc import Sequence

from kdd.errors import AuthRefreshError, KddError, ProviderError
from kdd.models import Block, ProviderKind, Realm
from kdd.utils import exec_cmd, exec_to_stdout, print_executing, print_info


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


async def reconcile_before_publish(
    system: str,
    realm: Realm,
    blocks: Sequence[Block],
) -> None:
    """Create the remote repositories missing for *blocks* (idempotent)."""
    if realm.provider is ProviderKind.AWS:
        await _aws_reconcile(system, realm, blocks)


async def refresh_auth(realm: Realm, engine: str = "docker") -> None:
    """Log the container engine into the realm's registry.

    Raises:
        AuthRefreshError: If the credential cannot be fetched or the login fails.
    """
    if realm.registry is None:
        return
    try:
        if realm.provider is ProviderKind.AWS:
            await _aws_refresh_auth(realm, engine)
        elif realm.provider is ProviderKind.GCP:
            await _gcp_refresh_auth(realm, engine)
    except KddError as exc:
        raise AuthRefreshError(realm.name, str(exc)) from exc


async def _engine_login(engine: str, username: str, password: str, registry: str) -> None:
    cmd = [engine, "login", "--username", username, "--password-stdin", registry]
    print_executing(cmd)
    print_info("  (with previous command result as stdin)")
    await exec_to_stdout(cmd, input_text=password)


# ---------------------------------------------------------------------------
# AWS (ECR)
# ---------------------------------------------------------------------------


def repository_name(system: str, block: Block) -> str:
    return f"{system}-{block.name}"


async def aws_repository_names(realm: Realm) -> list[str]:
    """Names of the ECR repositories visible with the realm's profile."""
    # aws ecr describe-repositories --profile jc-root
    raw = await exec_to_stdout(
        ["aws", "ecr", "describe-repositories", "--profile", realm.profile_or_default]
    )
    try:
        data = json.loads(raw) if raw else {}
    except json.JSONDecodeError as exc:
        raise ProviderError(
            "aws", f"'aws ecr describe-repositories' failed cause: {exc}"
        ) from exc
    if not isinstance(data, dict):
        raise ProviderError(
            "aws", "'aws ecr describe-repositories' did not return a JSON object"
        )

    names: list[str] = []
    for repository in data.get("repositories") or []:
        name = repository.get("repositoryName") if isinstance(repository, dict) else None
        if isinstance(name, str):
            names.append(name)
    return names


async def _aws_reconcile(system: str, realm: Realm, blocks: Sequence[Block]) -> None:
    existing = set(await aws_repository_names(realm))
    for block in blocks:
        name = repository_name(system, block)
        if name in existing:
            continue
        await exec_cmd(
            [
                "aws", "ecr", "create-repository",
                "--profile", realm.profile_or_default,
                "--repository-name", name,
            ]
        )
        existing.add(name)


async def _aws_refresh_auth(realm: Realm, engine: str) -> None:
    password = await exec_to_stdout(
        ["aws", "ecr", "get-login-password", "--profile", realm.profile_or_default]
    )
    await _engine_login(engine, "AWS", password, realm.registry or "")


# ---------------------------------------------------------------------------
# GCP (GCR / Artifact Registry)
# ---------------------------------------------------------------------------


async def _gcp_refresh_auth(realm: Realm, engine: str) -> None:
    cmd = ["gcloud", "auth", "print-access-token"]
    if realm.project:
        cmd += ["--project", realm.project]
    token = await exec_to_stdout(cmd)
    await _engine_login(engine, "oauth2accesstoken", token, realm.registry or "")
