"""
Authentication & authorization helpers.
Handles password hashing, JWT tokens, registration/login and the
bearer-token dependencies used by protected routes.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import bcrypt
import jwt
import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import Settings, get_settings
from database import get_db, transaction
from errors import DuplicateUser, Forbidden, NotAuthenticated, ValidationError
from schemas import User

log = structlog.get_logger(__name__)

JWT_ALGORITHM = "HS256"

bearer_scheme = HTTPBearer(auto_error=False)


# --------------- Passwords -----------------------------------------------

def hash_password(plain: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode(), hashed.encode())
    except ValueError:
        return False


# --------------- Tokens --------------------------------------------------

def create_token(user_id: int, settings: Settings) -> str:
    payload = {
        "id": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expires_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str, settings: Settings) -> Optional[int]:
    """Return the user id carried by a valid token, None otherwise."""
    try:
        data = jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None
    user_id = data.get("id")
    return user_id if isinstance(user_id, int) else None


# --------------- Registration / login ------------------------------------

def register_user(
    session: Session,
    settings: Settings,
    username: str,
    email: str,
    password: str,
    full_name: str,
    phone: Optional[str] = None,
    address: Optional[str] = None,
) -> Tuple[User, str]:
    existing = session.scalar(
        select(User.id).where(or_(User.email == email, User.username == username))
    )
    if existing is not None:
        raise DuplicateUser()

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password, settings.bcrypt_rounds),
        full_name=full_name,
        phone=phone,
        address=address,
        role="user",
    )
    try:
        with transaction(session):
            session.add(user)
    except IntegrityError as exc:
        # lost a race with a concurrent registration
        raise DuplicateUser() from exc
    session.refresh(user)
    log.info("user_registered", user_id=user.id)
    return user, create_token(user.id, settings)


def authenticate_user(session: Session, settings: Settings, email: str, password: str) -> Tuple[User, str]:
    user = session.scalar(select(User).where(User.email == email))
    if user is None or not verify_password(password, user.password_hash):
        raise NotAuthenticated("Invalid credentials")
    if not user.is_active:
        raise NotAuthenticated("Account is deactivated")
    return user, create_token(user.id, settings)


PROFILE_FIELDS = ("full_name", "phone", "address")


def update_profile(session: Session, user: User, **changes) -> User:
    """Apply the non-None profile fields. Role and active flag are not touched here."""
    updates = {k: v for k, v in changes.items() if k in PROFILE_FIELDS and v is not None}
    if updates:
        with transaction(session):
            for key, value in updates.items():
                setattr(user, key, value)
        log.info("profile_updated", user_id=user.id, fields=sorted(updates))
    return user


def change_password(session: Session, settings: Settings, user: User, current: str, new: str) -> None:
    if not verify_password(current, user.password_hash):
        raise ValidationError("Current password is incorrect")
    with transaction(session):
        user.password_hash = hash_password(new, settings.bcrypt_rounds)
    log.info("password_changed", user_id=user.id)


# --------------- Dependencies --------------------------------------------

def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise NotAuthenticated()
    user_id = decode_token(credentials.credentials, settings)
    if user_id is None:
        raise NotAuthenticated()
    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise NotAuthenticated("User not found or inactive")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != "admin":
        raise Forbidden(user.role)
    return user


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Optional[User]:
    """The caller when a valid token is sent; anonymous (None) otherwise."""
    if credentials is None:
        return None
    user_id = decode_token(credentials.credentials, settings)
    if user_id is None:
        return None
    user = db.get(User, user_id)
    return user if user is not None and user.is_active else None
