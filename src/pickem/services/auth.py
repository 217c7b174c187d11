"""Admin gate and user records for contest operations.

Authentication happens upstream; these helpers only look at the User row
for the already-authenticated actor.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from pickem.db.models import USER_ROLES, User
from pickem.errors import NotFoundError, PermissionDeniedError


def get_user(db: Session, user_id: str) -> User:
    """Return the user, raising NotFoundError when unknown."""
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def require_admin(db: Session, actor_id: Optional[str]) -> User:
    """Return the acting admin, raising PermissionDeniedError otherwise."""
    if not actor_id:
        raise PermissionDeniedError("Admin access required")
    user = db.get(User, actor_id)
    if user is None or not user.is_admin:
        raise PermissionDeniedError("Admin access required")
    return user


def create_or_update_user(
    db: Session,
    user_id: str,
    display_name: str,
    email: Optional[str] = None,
    role: str = "user",
) -> User:
    """Create a user, or update an existing one by id."""
    user_id = user_id.strip()
    if not user_id:
        raise ValueError("User id cannot be empty")
    if role not in USER_ROLES:
        raise ValueError(f"role must be one of {USER_ROLES}")

    user = db.get(User, user_id)
    if user:
        user.display_name = display_name
        user.email = email
        user.role = role
    else:
        user = User(id=user_id, display_name=display_name, email=email, role=role)
        db.add(user)
    db.flush()
    return user
