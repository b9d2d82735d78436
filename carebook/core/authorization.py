"""
Role and ownership authorization.

``authorize`` is a pure decision function: it takes the caller's identity,
a declarative policy and (for ownership policies) the resource, and returns
a ``Decision``. It never raises for a denial; call ``enforce`` to turn a
denial into the matching HTTP error.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, FrozenSet, Iterable, Optional, Tuple, Union

from .exceptions import ForbiddenError, UnauthenticatedError
from .security import Identity, Role


class DenyReason(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenyReason] = None
    detail: str = ""

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenyReason, detail: str) -> "Decision":
        return cls(allowed=False, reason=reason, detail=detail)


@dataclass(frozen=True)
class RoleIn:
    """Allow iff the caller's role is listed. Coordinator is not implied."""
    roles: FrozenSet[Role]

    def __init__(self, roles: Iterable[Role]):
        object.__setattr__(self, "roles", frozenset(Role(r) for r in roles))


@dataclass(frozen=True)
class OwnerOrRoleIn:
    """
    Allow iff the caller's role is listed, the caller is a Coordinator, or
    any of ``owner_fields`` on the resource equals the caller's actor id.
    """
    roles: FrozenSet[Role]
    owner_fields: Tuple[str, ...]

    def __init__(self, roles: Iterable[Role], owner_fields: Union[str, Iterable[str]]):
        if isinstance(owner_fields, str):
            owner_fields = (owner_fields,)
        object.__setattr__(self, "roles", frozenset(Role(r) for r in roles))
        object.__setattr__(self, "owner_fields", tuple(owner_fields))


Policy = Union[RoleIn, OwnerOrRoleIn]


def _owner_value(resource: Any, field: str):
    if resource is None:
        return None
    if isinstance(resource, dict):
        return resource.get(field)
    return getattr(resource, field, None)


def _forbidden(identity: Identity) -> Decision:
    return Decision.deny(
        DenyReason.FORBIDDEN,
        f"Role '{identity.role.value}' is not allowed to access this resource",
    )


def authorize(identity: Optional[Identity], policy: Policy, resource: Any = None) -> Decision:
    if identity is None:
        return Decision.deny(DenyReason.UNAUTHENTICATED, "Authentication required")

    if isinstance(policy, RoleIn):
        if identity.role in policy.roles:
            return Decision.allow()
        return _forbidden(identity)

    if isinstance(policy, OwnerOrRoleIn):
        if identity.role in policy.roles or identity.role == Role.COORDINATOR:
            return Decision.allow()
        for field in policy.owner_fields:
            owner = _owner_value(resource, field)
            if owner is not None and owner == identity.actor_id:
                return Decision.allow()
        return _forbidden(identity)

    raise TypeError(f"Unsupported policy type: {type(policy).__name__}")


def enforce(decision: Decision) -> None:
    """Raise the error matching a denied decision; return silently on allow."""
    if decision.allowed:
        return
    if decision.reason == DenyReason.UNAUTHENTICATED:
        raise UnauthenticatedError(decision.detail)
    raise ForbiddenError(decision.detail)


def require(identity: Optional[Identity], policy: Policy, resource: Any = None) -> Identity:
    """``authorize`` followed by ``enforce``; returns the identity on success."""
    enforce(authorize(identity, policy, resource))
    return identity
