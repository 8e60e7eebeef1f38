from __future__ import annotations

import enum

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from toothchart.core.security import hash_password, verify_password
from toothchart.models.user import Role, User


class LoginOutcome(enum.Enum):
    ok = "ok"
    unknown = "unknown"
    disabled = "disabled"
    bad_password = "bad_password"


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def find_user(db: Session, email: str) -> User | None:
    return db.scalar(select(User).where(User.email == _normalize_email(email)))


def check_login(db: Session, email: str, password: str) -> tuple[LoginOutcome, User | None]:
    user = find_user(db, email)
    if user is None:
        return LoginOutcome.unknown, None
    if not user.is_active:
        return LoginOutcome.disabled, user
    if not verify_password(password, user.hashed_password):
        return LoginOutcome.bad_password, user
    return LoginOutcome.ok, user


def add_staff_member(
    db: Session,
    *,
    email: str,
    password: str,
    full_name: str = "",
    role: Role = Role.reception,
) -> User:
    user = User(
        email=_normalize_email(email),
        full_name=full_name.strip(),
        role=role,
        is_active=True,
        hashed_password=hash_password(password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def seed_initial_admin(db: Session, *, email: str, password: str) -> bool:
    """Create the superadmin account on an empty users table."""
    if db.scalar(select(func.count(User.id))):
        return False
    add_staff_member(db, email=email, password=password, full_name="Admin", role=Role.superadmin)
    return True
