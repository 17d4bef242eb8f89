"""Auth service."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from sereno.core.security import hash_password, verify_password
from sereno.models.user import User
from sereno.schemas.auth import RegisterRequest, UpdateProfileRequest


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.execute(select(User).where(User.email == email)).scalar_one_or_none()


def create_user(db: Session, data: RegisterRequest) -> User:
    """Create a regular user. Companion and admin roles are granted elsewhere."""
    user = User(
        email=data.email,
        hashed_password=hash_password(data.password),
        full_name=data.full_name,
        first_name=data.first_name,
        role="user",
        country=data.country.upper() if data.country else None,
        latitude=data.latitude,
        longitude=data.longitude,
        mental_health_conditions=list(data.mental_health_conditions),
        emergency_contacts=[c.model_dump() for c in data.emergency_contacts],
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def update_profile(db: Session, user: User, data: UpdateProfileRequest) -> User:
    for name, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
        if name == "country":
            value = value.upper()
        setattr(user, name, value)
    db.commit()
    db.refresh(user)
    return user


def authenticate_user(db: Session, email: str, password: str) -> User | None:
    """Authenticate user by email and password."""
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.hashed_password):
        return None
    if not user.is_active:
        return None
    return user
