"""Permission checks for resource operations.

An operation declares the ``(securable, permission)`` pairs it needs; the
caller is allowed only when its role is granted every one of them.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Sequence, Union

from taskhub.service.auth import CallerCredential


class Permission(str, Enum):
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class Securable(str, Enum):
    CATEGORY = "CATEGORY"
    TASK = "TASK"


@dataclass(frozen=True)
class OperationDescriptor:
    securable: Securable
    permission: Permission

    def __str__(self) -> str:
        return f"{self.securable.value}:{self.permission.value}"


@dataclass(frozen=True)
class Allow:
    allowed: bool = True


@dataclass(frozen=True)
class Deny:
    reason: str
    status_code: int
    allowed: bool = False


Decision = Union[Allow, Deny]


def _all_of(*securables: Securable) -> FrozenSet[OperationDescriptor]:
    return frozenset(
        OperationDescriptor(securable, permission)
        for securable in securables
        for permission in Permission
    )


def _read_only(*securables: Securable) -> FrozenSet[OperationDescriptor]:
    return frozenset(
        OperationDescriptor(securable, Permission.READ) for securable in securables
    )


# Static role -> grant mapping
DEFAULT_ROLE_GRANTS: Dict[str, FrozenSet[OperationDescriptor]] = {
    "admin": _all_of(*Securable),
    "member": _all_of(Securable.CATEGORY, Securable.TASK),
    "viewer": _read_only(Securable.CATEGORY, Securable.TASK),
}


class PermissionGrants:
    """Role-based grant table consulted by :meth:`check`."""

    def __init__(
        self, role_grants: Optional[Mapping[str, Iterable[OperationDescriptor]]] = None
    ) -> None:
        source = DEFAULT_ROLE_GRANTS if role_grants is None else role_grants
        self._grants: Dict[str, FrozenSet[OperationDescriptor]] = {
            role: frozenset(descriptors) for role, descriptors in source.items()
        }

    def granted(self, role: str) -> FrozenSet[OperationDescriptor]:
        return self._grants.get(role, frozenset())

    def check(
        self,
        credential: Optional[CallerCredential],
        descriptors: Sequence[OperationDescriptor],
    ) -> Decision:
        """Decide whether ``credential`` may perform an operation.

        No credential yields a 401 denial; a credential missing any of the
        descriptors yields a 403 denial. The denial never says which
        descriptor failed.
        """
        if credential is None:
            return Deny(reason="unauthenticated", status_code=401)
        granted = self.granted(credential.role)
        if not descriptors or not all(d in granted for d in descriptors):
            return Deny(reason="forbidden", status_code=403)
        return Allow()
