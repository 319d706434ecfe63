from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, HTTPException, Request, status


class Role(str, Enum):
    ADMIN = "ADMIN"
    OWNER = "OWNER"
    EMPLOYEE = "EMPLOYEE"


@dataclass
class Principal:
    id: int
    username: str
    role: Role
    active: bool


def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return principal


def has_permission(role: Role, required: Role) -> bool:
    if role == Role.ADMIN:
        return True
    # Owners can do everything except administer principals.
    if role == Role.OWNER:
        return required != Role.ADMIN
    if role == Role.EMPLOYEE:
        return required == Role.EMPLOYEE
    return False


def require_permission(required: Role):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not has_permission(principal.role, required):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
        return principal

    return _dep
