"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from sereno.core.notifications import NotificationDispatcher, notification_dispatcher
from sereno.core.security import decode_access_token
from sereno.db.session import get_db
from sereno.models.user import User
from sereno.services.auth_service import get_user_by_email

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def user_from_token(db: Session, token: str) -> User | None:
    """Resolve a bearer token to its active user, or None."""
    payload = decode_access_token(token)
    if not payload or "sub" not in payload:
        return None
    # sub is the user's email
    user = get_user_by_email(db, payload["sub"])
    if not user or not user.is_active:
        return None
    return user


def get_current_user(
    db: Annotated[Session, Depends(get_db)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> User:
    """Require authenticated user. Raises 401 if not authenticated."""
    if not credentials:
        raise _unauthorized("Not authenticated")
    user = user_from_token(db, credentials.credentials)
    if not user:
        raise _unauthorized("Invalid or expired token")
    return user


def require_companion(current_user: Annotated[User, Depends(get_current_user)]) -> User:
    if current_user.role != "companion":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only companions can do this",
        )
    return current_user


def require_admin(current_user: Annotated[User, Depends(get_current_user)]) -> User:
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


def get_notifier() -> NotificationDispatcher:
    """The app-wide dispatcher. Tests override this with an inline one."""
    return notification_dispatcher
