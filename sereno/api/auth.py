"""Auth endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from sereno.core.deps import get_current_user
from sereno.core.security import create_access_token
from sereno.db.session import get_db
from sereno.models.user import User
from sereno.schemas.auth import LoginRequest, RegisterRequest, TokenResponse, UpdateProfileRequest, UserMe
from sereno.services.auth_service import authenticate_user, create_user, get_user_by_email, update_profile

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=UserMe)
def register(
    data: RegisterRequest,
    db: Session = Depends(get_db),
):
    """Register a new user with the default role."""
    if get_user_by_email(db, data.email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )
    return create_user(db, data)


@router.post("/login", response_model=TokenResponse)
def login(
    data: LoginRequest,
    db: Session = Depends(get_db),
):
    user = authenticate_user(db, data.email, data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    return TokenResponse(access_token=create_access_token(subject=user.email, role=user.role))


@router.get("/me", response_model=UserMe)
def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.put("/me", response_model=UserMe)
def update_me(
    data: UpdateProfileRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Update the current user's profile and emergency information."""
    return update_profile(db, current_user, data)
