"""
Role-Based Access Control: actor resolution and role-gated dependencies.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from quotereview.core.errors import AccessDeniedError
from quotereview.core.security import decode_token, security, get_role_value
from quotereview.db.session import get_db


class Role(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"


@dataclass(frozen=True)
class Actor:
    """The authenticated caller as seen by the workflow services."""
    id: int
    role: Role
    onboarded_by: Optional[int] = None
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_seller(self) -> bool:
        return self.role == Role.SELLER


def actor_from_user(user) -> Actor:
    """Build an Actor from a ``User`` row."""
    return Actor(
        id=user.id,
        role=Role(get_role_value(user.role)),
        onboarded_by=user.onboarded_by,
        email=user.email,
        name=user.name,
    )


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Actor:
    """Resolve the bearer token to an active user."""
    from quotereview.db.models import User, UserStatus

    payload = decode_token(credentials.credentials)
    user_id_raw = payload.get("sub")
    if user_id_raw is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing user identifier (sub)",
        )

    user = db.query(User).filter(User.id == int(user_id_raw)).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token is not valid",
        )
    if user.status == UserStatus.INACTIVE.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account has been deactivated. Please contact support.",
        )

    return actor_from_user(user)


class RoleChecker:
    """Dependency for checking that the caller holds a given role."""

    def __init__(self, required_role: Role):
        self.required_role = required_role

    async def __call__(self, actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role != self.required_role:
            raise AccessDeniedError(f"Access denied. Required role: {self.required_role.value}")
        return actor


require_buyer = RoleChecker(Role.BUYER)
require_seller = RoleChecker(Role.SELLER)
