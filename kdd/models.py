"""Pydantic v2 models for the kdd data model.

Blocks, builders (with their exec command definition) and realms are parsed once
from ``kdd.yaml`` and never mutated afterwards, so they can be shared freely
between concurrent watchers.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from kdd.errors import InvalidBuilderError, InvalidKddYamlError
from kdd.utils import print_warning


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class RunOccurrence(str, Enum):
    """How often a builder runs within one build invocation."""
    BLOCK = "block"
    SESSION = "session"


class Cwd(str, Enum):
    """Working directory a builder command is launched from."""
    BLOCK_DIR = "block_dir"
    BASE_DIR = "base_dir"


class CmdKind(str, Enum):
    """Where a builder command is located."""
    GLOBAL = "global"                  # e.g. npm, found on PATH
    BLOCK_RELATIVE = "block_relative"  # e.g. ./node_modules/.bin/tsc
    BASE_RELATIVE = "base_relative"    # e.g. node_modules/.bin/tsc


class ProviderKind(str, Enum):
    """Cloud provider behind a realm, derived from its kube context."""
    AWS = "aws"
    GCP = "gcp"
    COMMON = "common"


def provider_from_context(context: Optional[str]) -> ProviderKind:
    """Select the provider for a kube context string."""
    if context is None:
        return ProviderKind.COMMON
    if context.startswith("arn:aws"):
        return ProviderKind.AWS
    if context.startswith("gke"):
        return ProviderKind.GCP
    return ProviderKind.COMMON


# ---------------------------------------------------------------------------
# Exec
# ---------------------------------------------------------------------------

class Cmd(BaseModel):
    """A command locator."""
    model_config = ConfigDict(frozen=True)

    kind: CmdKind
    value: str

    @classmethod
    def parse(cls, text: str) -> "Cmd":
        if text.startswith("./"):
            return cls(kind=CmdKind.BLOCK_RELATIVE, value=text)
        if "/" in text:
            return cls(kind=CmdKind.BASE_RELATIVE, value=text)
        return cls(kind=CmdKind.GLOBAL, value=text)


class Exec(BaseModel):
    """Command definition of a builder: what to run, from where, with which args."""
    model_config = ConfigDict(frozen=True)

    cmd: Cmd
    cwd: Cwd = Cwd.BLOCK_DIR
    args: list[str] = Field(default_factory=list)
    watch_args: Optional[list[str]] = None

    @classmethod
    def from_dict(cls, data: Any, builder_name: str = "?") -> "Exec":
        if not isinstance(data, dict) or not isinstance(data.get("cmd"), str):
            raise InvalidBuilderError(builder_name, "No exec.cmd found")
        cmd = Cmd.parse(data["cmd"])

        cwd_raw = data.get("cwd")
        if cwd_raw is None:
            cwd = Cwd.BLOCK_DIR
        else:
            try:
                cwd = Cwd(cwd_raw)
            except ValueError:
                raise InvalidBuilderError(
                    builder_name, "'cwd' can only be 'block_dir' or 'base_dir'."
                )

        watch_args = data.get("watch_args")
        return cls(
            cmd=cmd,
            cwd=cwd,
            args=string_list(data.get("args")),
            watch_args=string_list(watch_args) if watch_args is not None else None,
        )


# ---------------------------------------------------------------------------
# Block & Builder
# ---------------------------------------------------------------------------

_BLOCK_KEYS = ("name", "dir", "dependencies")


class Block(BaseModel):
    """A named, independently buildable unit of source."""
    model_config = ConfigDict(frozen=True)

    name: str
    dir: Optional[str] = None
    dependencies: list[str] = Field(default_factory=list)
    extra: dict[str, Any] = Field(default_factory=dict, description="Not interpreted by kdd")

    @classmethod
    def from_yaml(cls, item: Any) -> Optional["Block"]:
        """Parse a block list item; a bare string is a block name."""
        if isinstance(item, str):
            return cls(name=item)
        if isinstance(item, dict) and isinstance(item.get("name"), str):
            return cls(
                name=item["name"],
                dir=item.get("dir"),
                dependencies=string_list(item.get("dependencies")),
                extra={k: v for k, v in item.items() if k not in _BLOCK_KEYS},
            )
        return None


class Builder(BaseModel):
    """A build step triggered by the existence of ``when_file``."""
    model_config = ConfigDict(frozen=True)

    name: str
    when_file: Optional[str] = None
    run: RunOccurrence = RunOccurrence.BLOCK
    replace: Optional[str] = None
    exec: Exec

    @classmethod
    def from_yaml(cls, item: Any) -> Optional["Builder"]:
        """Parse a builder list item, warning and returning ``None`` when invalid."""
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            return None
        name = item["name"]

        try:
            exec_ = Exec.from_dict(item.get("exec"), builder_name=name)
        except InvalidBuilderError as exc:
            print_warning(
                f"KDD PARSING WARNING - Builder {name} does not have a valid exec element. "
                f"Cause: {exc}. Skipping"
            )
            return None

        run_raw = item.get("run")
        try:
            run = RunOccurrence(run_raw) if run_raw is not None else RunOccurrence.BLOCK
        except ValueError:
            error = InvalidBuilderError(name, "'run' can only be 'block' or 'session'.")
            print_warning(f"KDD PARSING WARNING - {error}. Skipping")
            return None

        when_file = item.get("when_file")
        if when_file is None:
            print_warning(
                f"KDD PARSING WARNING - Builder {name} does not have a .when_file property. "
                "Will never get triggered"
            )

        return cls(
            name=name,
            when_file=when_file,
            run=run,
            replace=item.get("replace"),
            exec=exec_,
        )


# ---------------------------------------------------------------------------
# Realm
# ---------------------------------------------------------------------------

class Realm(BaseModel):
    """A deployment target: kube context, registry and cloud provider."""
    model_config = ConfigDict(frozen=True)

    name: str
    context: Optional[str] = None
    registry: Optional[str] = None
    profile: Optional[str] = Field(default=None, description="AWS profile")
    project: Optional[str] = Field(default=None, description="GCP project")
    confirm_delete: bool = True
    vars: dict[str, str] = Field(default_factory=dict)
    yaml_dirs: list[str] = Field(default_factory=list)
    default_configurations: Optional[list[str]] = None

    @computed_field  # type: ignore[misc]
    @property
    def provider(self) -> ProviderKind:
        return provider_from_context(self.context)

    @property
    def is_local_registry(self) -> bool:
        """True when there is no registry or it points to this machine."""
        if self.registry is None:
            return True
        return "localhost" in self.registry or "127.0.0.1" in self.registry

    @property
    def profile_or_default(self) -> str:
        return self.profile or "default"

    @classmethod
    def from_yaml(cls, name: str, data: dict[str, Any]) -> "Realm":
        """Build a realm from its (already ``_base_``-merged) yaml mapping.

        Raises:
            InvalidKddYamlError: If the realm has no ``context``.
        """
        context = data.get("context")
        if not isinstance(context, str):
            raise InvalidKddYamlError(f"Missing 'context' property for realm '{name}'")

        yaml_dirs = string_list(data.get("yaml_dir"))

        default_configurations = data.get("default_configurations")
        if default_configurations is not None:
            default_configurations = string_list(default_configurations)

        realm_vars: dict[str, str] = {}
        for key, value in data.items():
            text = scalar_to_str(value)
            if key != "confirm_delete" and text is not None:
                realm_vars[str(key)] = text

        return cls(
            name=name,
            context=context,
            registry=data.get("registry"),
            profile=data.get("profile"),
            project=data.get("project"),
            confirm_delete=bool(data.get("confirm_delete", True)),
            vars=realm_vars,
            yaml_dirs=yaml_dirs,
            default_configurations=default_configurations,
        )


def scalar_to_str(value: Any) -> Optional[str]:
    """Serialise a yaml scalar (string, bool, number) as string, else ``None``."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    return None


def string_list(value: Any) -> list[str]:
    """Read a yaml value that may be one string or a list of scalars.

    A lone scalar becomes a one-item list; list items that are not scalars
    (nested lists, mappings, nulls) are dropped.
    """
    if value is None:
        return []
    if not isinstance(value, list):
        value = [value]
    items = (scalar_to_str(item) for item in value)
    return [item for item in items if item is not None]
