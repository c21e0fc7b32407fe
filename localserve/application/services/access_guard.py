from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ...domain.exceptions import AccessDeniedError
from ...domain.models import Subscription


@dataclass(frozen=True, slots=True)
class Caller:
    """Authenticated identity with the profile ids resolved for its account."""

    user_id: int
    role: str
    customer_id: Optional[int] = None
    provider_id: Optional[int] = None
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def has_access(caller: Caller, subscription: Subscription) -> bool:
    """Ownership rule: admins see everything, customers and providers only their own."""
    if caller.role == "admin":
        return True
    if caller.role == "customer":
        return caller.customer_id is not None and caller.customer_id == subscription.customer_id
    if caller.role == "provider":
        return caller.provider_id is not None and caller.provider_id == subscription.provider_id
    return False


def require_access(caller: Caller, subscription: Subscription) -> None:
    if not has_access(caller, subscription):
        raise AccessDeniedError()


def require_role(caller: Caller, *roles: str) -> None:
    if caller.role not in roles:
        raise AccessDeniedError(f"This operation requires one of the roles: {', '.join(roles)}")
