"""
Capability checks.

Every service entry point declares the roles it accepts with
``requires_role``; the check runs before the operation touches the store.
Ownership rules (assigned driver, owning passenger) need the loaded ride
and stay inside the operation.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass

from .enums import Role
from .errors import Unauthorized


@dataclass(frozen=True)
class Actor:
    """An authenticated caller as resolved by the auth gateway."""

    id: int
    role: Role

    @property
    def is_staff(self) -> bool:
        return self.role in (Role.ADMIN, Role.MODERATOR)


def check_role(actor: Actor, allowed: frozenset[Role]) -> None:
    if actor.role not in allowed:
        raise Unauthorized(f"Role {actor.role.value} may not perform this action")


def requires_role(*roles: Role):
    """Decorate an async service method whose first argument is the actor."""
    allowed = frozenset(roles)

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self, actor: Actor, *args, **kwargs):
            check_role(actor, allowed)
            return await func(self, actor, *args, **kwargs)

        wrapper.allowed_roles = allowed
        return wrapper

    return decorator
