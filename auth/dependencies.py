"""
Authentication dependencies for FastAPI.
"""
from typing import Optional

from fastapi import Depends, HTTPException, Request, status, Security
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from database.models import User
from auth.permissions import can_access_features, is_account_usable
from auth.security import security_optional
from services.auth_service import AuthService
from services.email_service import EmailService
import config


def get_db_session():
    """Get database session."""
    if not config.db:
        raise HTTPException(status_code=503, detail="Database not initialized")
    with config.db.get_session() as session:
        yield session


def get_email_service(request: Request) -> EmailService:
    """EmailService built once at startup (see app.lifespan)."""
    service = getattr(request.app.state, "email_service", None)
    if service is None:
        service = EmailService(None)
        request.app.state.email_service = service
    return service


def extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    """Bearer header first, then the session cookie."""
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(config.AUTH_COOKIE_NAME)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security_optional),
    db: Session = Depends(get_db_session)
) -> User:
    """
    Get current authenticated user from the session cookie or a Bearer token.

    Raises:
        HTTPException: 401 if there is no valid session, 403 if the account is disabled
    """
    token = extract_token(request, credentials)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = AuthService.resolve_session(db, token)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not is_account_usable(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )

    return user


async def get_current_user_optional(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security_optional),
    db: Session = Depends(get_db_session)
) -> Optional[User]:
    """Get current user if authenticated, otherwise None."""
    token = extract_token(request, credentials)
    if not token:
        return None
    user = AuthService.resolve_session(db, token)
    if user is None or not is_account_usable(user):
        return None
    return user


async def get_active_user(current_user: User = Depends(get_current_user)) -> User:
    """Authenticated user who has finished password setup (admins are exempt)."""
    if not can_access_features(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Please set your password before accessing this feature",
        )
    return current_user


def require_role(allowed_roles: list[str]):
    """
    Dependency factory for role-based access control.

    Args:
        allowed_roles: List of allowed role values

    Returns:
        Dependency function
    """
    async def role_checker(current_user: User = Depends(get_active_user)) -> User:
        if current_user.role.value not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {', '.join(allowed_roles)}"
            )
        return current_user

    return role_checker


require_admin = require_role(["admin"])
require_staff = require_role(["officer", "student-affairs", "admin"])
require_student = require_role(["student"])
