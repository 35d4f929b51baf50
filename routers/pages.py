"""
Page-state endpoints behind the cookie-gated page routes.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from database.models import User, TokenPurpose
from auth.dependencies import get_db_session, get_current_user_optional
from auth.permissions import capabilities_for, has_set_password
from services.auth_service import AuthService
import config


router = APIRouter(tags=["pages"])

DASHBOARD_DATA = {
    "/dashboard/student": "/api/dashboard/student",
    "/dashboard/officer": "/api/dashboard/officer",
    "/dashboard/admin": "/api/dashboard/admin",
}


def to_login() -> RedirectResponse:
    """Redirect to login and drop a cookie that no longer maps to a session."""
    response = RedirectResponse(url="/login", status_code=307)
    response.delete_cookie(config.AUTH_COOKIE_NAME, path="/")
    return response


def token_page(db: Session, page: str, token: Optional[str], purpose: TokenPurpose) -> dict:
    user = AuthService.peek_token(db, token, purpose) if token else None
    if user is None:
        return {"page": page, "valid": False, "message": "Invalid or expired link. Please request a new one."}
    return {"page": page, "valid": True, "email": user.email, "name": user.name}


@router.get("/login")
async def login_page():
    return {"page": "login", "loginUrl": "/api/auth/login"}


@router.get("/verify-email")
async def verify_email_page(
    token: Optional[str] = Query(None),
    db: Session = Depends(get_db_session)
):
    """Whether a magic link is still usable, and for whom."""
    return token_page(db, "verify-email", token, TokenPurpose.MAGIC_LINK)


@router.get("/reset-password")
async def reset_password_page(
    token: Optional[str] = Query(None),
    db: Session = Depends(get_db_session)
):
    """Whether a password-reset link is still usable, and for whom."""
    return token_page(db, "reset-password", token, TokenPurpose.PASSWORD_RESET)


@router.get("/dashboard")
async def dashboard_page(current_user: Optional[User] = Depends(get_current_user_optional)):
    """Send the user to their role's dashboard."""
    if current_user is None:
        return to_login()
    return RedirectResponse(url=capabilities_for(current_user).dashboard, status_code=307)


@router.get("/dashboard/{role_page}")
async def role_dashboard_page(
    role_page: str,
    current_user: Optional[User] = Depends(get_current_user_optional)
):
    if current_user is None:
        return to_login()
    own_dashboard = capabilities_for(current_user).dashboard
    if f"/dashboard/{role_page}" != own_dashboard:
        return RedirectResponse(url=own_dashboard, status_code=307)
    return {
        "page": "dashboard",
        "role": current_user.role.value,
        "dataUrl": DASHBOARD_DATA[own_dashboard],
        "passwordSetupRequired": not has_set_password(current_user),
    }
