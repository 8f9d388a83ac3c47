"""Exception types raised by the provisioning engine."""

from __future__ import annotations

from typing import Iterable, Mapping, Sequence

__all__ = [
    "ProvisioningError",
    "FetchError",
    "ParseError",
    "NotFoundError",
    "NotInstalledError",
    "CyclicDependencyError",
    "VersionConflictError",
    "InUseError",
    "UpgradeFailedError",
    "AuthorizationError",
    "ModuleActivationError",
    "RepositoryBatchError",
    "TransitionError",
]


class ProvisioningError(RuntimeError):
    """Base class for all provisioning failures."""


class FetchError(ProvisioningError):
    """Raised when a repository descriptor cannot be retrieved."""

    def __init__(self, locator: str, message: str | None = None) -> None:
        super().__init__(message or f"Unable to fetch repository {locator}")
        self.locator = locator


class ParseError(ProvisioningError):
    """Raised when a repository descriptor is malformed."""

    def __init__(self, locator: str, message: str) -> None:
        super().__init__(f"Malformed repository descriptor {locator}: {message}")
        self.locator = locator


class NotFoundError(ProvisioningError):
    """Raised for unknown feature or repository references."""


class NotInstalledError(NotFoundError):
    """Raised when uninstalling a feature that is not installed."""


class CyclicDependencyError(ProvisioningError):
    def __init__(self, cycle: Sequence[str]) -> None:
        path = " -> ".join(list(cycle) + [cycle[0]]) if cycle else ""
        super().__init__(f"Cyclic feature dependency: {path}")
        self.cycle = tuple(cycle)


class VersionConflictError(ProvisioningError):
    def __init__(self, name: str, versions: Iterable[str], detail: str | None = None) -> None:
        ordered = sorted(set(versions))
        message = f"Version conflict for feature '{name}': {', '.join(ordered)}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.name = name
        self.versions = tuple(ordered)


class InUseError(ProvisioningError):
    """Raised when an operation is blocked by installed features."""

    def __init__(self, message: str, *, dependents: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.dependents = tuple(dependents)


class UpgradeFailedError(ProvisioningError):
    """Raised when an upgrade could not be applied.

    ``rolled_back`` tells whether the previously installed version was
    restored to its started state.
    """

    def __init__(
        self,
        message: str,
        *,
        rolled_back: bool,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.rolled_back = rolled_back
        self.cause = cause


class AuthorizationError(ProvisioningError):
    """Raised when the caller lacks an administrative role."""


class ModuleActivationError(ProvisioningError):
    """Raised when the module runtime fails during a provisioning run."""

    def __init__(
        self, module: str, operation: str, cause: BaseException | None = None
    ) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to {operation} module {module}{detail}")
        self.module = module
        self.operation = operation
        self.cause = cause


class RepositoryBatchError(ProvisioningError):
    """Aggregates per-repository failures of a pattern-based operation."""

    def __init__(
        self,
        operation: str,
        failures: Mapping[str, ProvisioningError],
        *,
        completed: Sequence[str] = (),
    ) -> None:
        lines = [f"{locator}: {error}" for locator, error in failures.items()]
        super().__init__(
            f"Repository {operation} failed for {len(lines)} repositories: " + "; ".join(lines)
        )
        self.operation = operation
        self.failures = dict(failures)
        self.completed = list(completed)


class TransitionError(ProvisioningError):
    """Raised on an illegal feature state transition."""
