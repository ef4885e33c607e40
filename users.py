"""
User administration: listing, per-user views, updates and soft deactivation.

Users see and edit their own record; admins see and edit everyone's and are
the only ones who may change a role or the active flag.
"""

from typing import Any, Dict, List, Optional, Tuple

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from database import count_where, days_ago, paginate, start_of_today, transaction
from errors import Forbidden, NotFound, ValidationError
from schemas import User

log = structlog.get_logger(__name__)

ROLES = ("user", "admin")
ADMIN_ONLY_FIELDS = ("role", "is_active")
EDITABLE_FIELDS = ("full_name", "phone", "address") + ADMIN_ONLY_FIELDS


def list_users(
    session: Session,
    role: Optional[str] = None,
    active: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[User], int]:
    stmt = select(User)
    if role:
        stmt = stmt.where(User.role == role)
    if active is not None:
        stmt = stmt.where(User.is_active.is_(active))
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(User.username.ilike(pattern), User.email.ilike(pattern),
                              User.full_name.ilike(pattern)))
    stmt = stmt.order_by(User.created_at.desc(), User.id.desc())
    return paginate(session, stmt, page, limit)


def check_access(actor: User, user_id: int, action: str = "view") -> None:
    if actor.id != user_id and actor.role != "admin":
        raise Forbidden(actor.role, f"Not authorized to {action} this profile")


def get_user(session: Session, user_id: int, actor: User) -> User:
    check_access(actor, user_id)
    user = session.get(User, user_id)
    if user is None:
        raise NotFound("User", user_id)
    return user


def update_user(session: Session, user_id: int, actor: User, changes: Dict[str, Any]) -> User:
    check_access(actor, user_id, "update")
    updates = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None}
    if actor.role != "admin" and any(k in ADMIN_ONLY_FIELDS for k in updates):
        raise Forbidden(actor.role, "Only administrators can modify user roles and status")
    user = session.get(User, user_id)
    if user is None:
        raise NotFound("User", user_id)
    if not updates:
        raise ValidationError("No valid fields to update")
    with transaction(session):
        for key, value in updates.items():
            setattr(user, key, value)
    log.info("user_updated", user_id=user_id, actor_id=actor.id, fields=sorted(updates))
    return user


def deactivate_user(session: Session, user_id: int, actor: User) -> User:
    """Soft delete. Orders and requests keep pointing at the row."""
    if actor.id == user_id:
        raise ValidationError("Cannot delete your own account")
    user = session.get(User, user_id)
    if user is None:
        raise NotFound("User", user_id)
    with transaction(session):
        user.is_active = False
    log.info("user_deactivated", user_id=user_id, actor_id=actor.id)
    return user


def stats(session: Session) -> Dict[str, int]:
    columns = {
        "total_users": func.count(User.id),
        "regular_users": count_where(User.role == "user"),
        "admin_users": count_where(User.role == "admin"),
        "active_users": count_where(User.is_active.is_(True)),
        "inactive_users": count_where(User.is_active.is_(False)),
        "new_today": count_where(User.created_at >= start_of_today()),
        "new_this_week": count_where(User.created_at >= days_ago(7)),
        "new_this_month": count_where(User.created_at >= days_ago(30)),
    }
    row = session.execute(select(*columns.values())).one()
    return dict(zip(columns, row))
