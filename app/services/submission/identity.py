"""
Caller identity as handed over by the authentication layer

Authentication happens outside the core; services only receive the caller
and trust that role checks were made by the adapter calling them.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    PATIENT = "patient"
    ADMIN = "admin"


@dataclass(frozen=True)
class Caller:
    """Authenticated user making a request"""
    id: str
    role: Role
    name: Optional[str] = None


def require_role(caller: Optional[Caller], role: Role) -> Caller:
    """
    Check the caller's role before invoking a core operation

    Raises:
        PermissionError: No caller, or caller has a different role
    """
    if caller is None:
        raise PermissionError("Authentication required")
    if Role(caller.role) != Role(role):
        raise PermissionError(f"{Role(role).value} access required")
    return caller
