"""Exception hierarchy for kdd.

Every error the tool raises derives from :class:`KddError` so the CLI can
render it uniformly and exit non-zero.
"""

from __future__ import annotations


class KddError(Exception):
    """Base class for all kdd errors."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class NoKddFileError(KddError):
    """Raised when no ``kdd.yaml`` exists in the root directory."""

    def __init__(self, dir: str):
        self.dir = dir
        super().__init__(f"No kdd.yaml file found at {dir}")


class InvalidKddYamlError(KddError):
    """Raised when ``kdd.yaml`` cannot be parsed or has too many documents."""


class InvalidSettingsError(KddError):
    """Raised when a ``KDD_*`` environment variable holds an invalid value."""

    def __init__(self, variable: str, cause: str):
        self.variable = variable
        self.cause = cause
        super().__init__(f"Invalid {variable} setting. Cause: {cause}")


class NoSystemError(KddError):
    """Raised when the main kdd document has no ``system`` property."""

    def __init__(self) -> None:
        super().__init__("kdd.yaml must have a system property")


class InvalidBuilderError(KddError):
    """Raised when a builder or its exec section is malformed."""

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid builder '{name}'. {reason}")


# ---------------------------------------------------------------------------
# Build
# ---------------------------------------------------------------------------


class UnknownBlockError(KddError):
    """Raised when an explicitly requested block name is not configured."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Block {name} unknown. Build aborted")


class CannotExecuteError(KddError):
    """Raised when a process cannot be spawned at all."""

    def __init__(self, command: str, cause: str):
        self.command = command
        self.cause = cause
        super().__init__(f"Cannot execute '{command}' - cause: {cause}")


class CommandFailedError(KddError):
    """Raised when a command whose exit status matters exits non-zero."""

    def __init__(self, command: str, returncode: int, stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        message = f"Fail to execute {command} (exit {returncode})"
        if stderr:
            message += f"\n{stderr}"
        super().__init__(message)


class ContainerBuildError(KddError):
    """Raised when the container image of a block fails to build."""

    def __init__(self, block: str, cause: str):
        self.block = block
        self.cause = cause
        super().__init__(f"Container build failed for block '{block}'. Cause: {cause}")


# ---------------------------------------------------------------------------
# Publish
# ---------------------------------------------------------------------------


class AuthRefreshError(KddError):
    """Raised when the registry credentials of a realm cannot be refreshed."""

    def __init__(self, realm: str, cause: str):
        self.realm = realm
        self.cause = cause
        super().__init__(f"Registry auth refresh failed for realm '{realm}'. Cause: {cause}")


class ProviderError(KddError):
    """Raised when a cloud provider CLI returns something unusable."""

    def __init__(self, provider: str, cause: str):
        self.provider = provider
        self.cause = cause
        super().__init__(f"{provider} provider error, cause: {cause}")


class PublishError(KddError):
    """Raised at the end of a publish batch when one or more blocks failed.

    ``failures`` maps each failed block name to its failure message.
    """

    def __init__(self, failures: dict[str, str]):
        self.failures = dict(failures)
        lines = [f"Cannot dpush {len(self.failures)} block(s):"]
        lines.extend(f"  - {name}: {cause}" for name, cause in self.failures.items())
        super().__init__("\n".join(lines))


# ---------------------------------------------------------------------------
# Realm / kubectl
# ---------------------------------------------------------------------------


class NoRealmError(KddError):
    def __init__(self) -> None:
        super().__init__("Cannot dpush, no current realm")


class RealmNotFoundError(KddError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Realm {name} not found")


class RealmHasNoContextError(KddError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Realm {name} has no kubernetes context "
            "(make sure this realm .context is set in the kdd.yaml)"
        )


class KubectlError(KddError):
    def __init__(self, cause: str):
        self.cause = cause
        super().__init__(f"kubectl failed, cause: {cause}")
