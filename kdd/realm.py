"""Realm selection through the kubectl context.

The current realm is the one whose ``context`` matches
``kubectl config current-context``. Switching realm switches the kube
context, creating it first (after confirmation) when it does not exist.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Optional

from rich.table import Table

from kdd.config import KddConfig, Settings
from kdd.errors import KddError, KubectlError, RealmHasNoContextError, RealmNotFoundError
from kdd.models import Realm
from kdd.utils import console, exec_to_stdout, print_info


class Kubectl:
    """Thin async wrapper over the ``kubectl config`` context commands."""

    def __init__(self, config: KddConfig, settings: Optional[Settings] = None):
        self.config = config
        self.binary = (settings or Settings()).kubectl_binary

    async def _run(self, *args: str) -> str:
        try:
            return await exec_to_stdout([self.binary, *args], cwd=self.config.dir)
        except KddError as exc:
            raise KubectlError(str(exc)) from exc

    async def current_context(self) -> str:
        return (await self._run("config", "current-context")).strip()

    async def list_contexts(self) -> list[str]:
        out = await self._run("config", "get-contexts", "-o=name")
        return [line.strip() for line in out.splitlines() if line.strip()]

    async def set_context(self, context: str) -> None:
        await self._run("config", "use-context", context)

    async def create_context(self, context: str) -> None:
        await self._run("config", "set-context", context)


async def current_realm(kubectl: Kubectl) -> Optional[Realm]:
    """The realm matching the current kube context, if any.

    Raises:
        KubectlError: If the current context cannot be read.
    """
    context = await kubectl.current_context()
    return kubectl.config.realm_for_context(context)


def _confirm_from_stdin(question: str) -> bool:
    print_info(question)
    return input().strip() == "YES"


async def realm_set(
    kubectl: Kubectl,
    name: str,
    confirm: Callable[[str], bool] = _confirm_from_stdin,
) -> bool:
    """Make realm *name* current.

    Returns:
        ``False`` when the operator declined creating a missing context.

    Raises:
        RealmNotFoundError: If *name* is not a configured realm.
        RealmHasNoContextError: If the realm declares no context.
    """
    realm = kubectl.config.realms.get(name)
    if realm is None:
        raise RealmNotFoundError(name)
    if realm.context is None:
        raise RealmHasNoContextError(name)

    contexts = set(await kubectl.list_contexts())
    if realm.context not in contexts:
        question = (
            f"Kubernetes context {realm.context} does not exist. Do you want to create it "
            "and set it? (YES to continue, anything else to cancel)"
        )
        if not confirm(question):
            print_info("Canceling kubernetes context creation")
            return False
        await kubectl.create_context(realm.context)

    await kubectl.set_context(realm.context)
    return True


def realms_table(config: KddConfig, current: Optional[Realm]) -> Table:
    """Rich table of the configured realms, the current one starred."""
    table = Table(show_header=True, header_style="bold cyan", box=None, padding=(0, 2))
    table.add_column(" ", no_wrap=True)
    table.add_column("REALM")
    table.add_column("TYPE")
    table.add_column("PROFILE/PROJECT")
    table.add_column("CONTEXT")

    for realm in config.realms.values():
        is_current = current is not None and realm.context is not None and realm.context == current.context
        table.add_row(
            "*" if is_current else "",
            realm.name,
            realm.provider.value,
            realm.profile or realm.project or "-",
            realm.context or "-",
        )
    return table


async def print_realms(kubectl: Kubectl) -> None:
    current = await current_realm(kubectl)
    console.print(realms_table(kubectl.config, current))
