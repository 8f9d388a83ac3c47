"""Role checks for mutating provisioning requests."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import FrozenSet, Iterable

from .errors import AuthorizationError

logger = logging.getLogger(__name__)

__all__ = ["Subject", "AuthorizationPolicy"]


@dataclass(frozen=True)
class Subject:
    """The caller of a service operation."""

    name: str
    roles: FrozenSet[str] = frozenset()

    @classmethod
    def of(cls, name: str, roles: Iterable[str]) -> "Subject":
        return cls(name=name, roles=frozenset(roles))


class AuthorizationPolicy:
    """Mutating operations need at least one of ``admin_roles``."""

    def __init__(self, admin_roles: Iterable[str] = ("admin",)) -> None:
        self.admin_roles = frozenset(admin_roles)

    def allows(self, subject: Subject) -> bool:
        return bool(self.admin_roles & subject.roles)

    def require(self, subject: Subject, operation: str) -> None:
        if self.allows(subject):
            return
        logger.warning(
            "Denied %s for %s (roles: %s)",
            operation,
            subject.name,
            ", ".join(sorted(subject.roles)) or "none",
        )
        raise AuthorizationError(f"{subject.name} is not allowed to {operation}")
