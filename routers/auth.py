"""
Authentication endpoints: login sessions, magic links and password reset.
"""
from dataclasses import asdict
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status, Request, Response, Security
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from pydantic import BaseModel, EmailStr

from database.models import User, TokenPurpose
from auth.dependencies import get_db_session, get_current_user, get_email_service, extract_token
from auth.permissions import has_set_password, is_account_usable, is_admin_or_self, capabilities_for
from auth.security import security_optional, validate_password
from services.auth_service import AuthService
from services.audit_service import AuditService, client_info
from services.email_service import EmailService
from services.email_templates import PasswordResetEmailData
from services.serializers import serialize_user
from services.user_service import send_account_email
from core.logger import logger
import config


router = APIRouter(prefix="/api/auth", tags=["authentication"])


# Request Models
class LoginRequest(BaseModel):
    """Login request."""
    email: EmailStr
    password: str


class EmailRequest(BaseModel):
    """Request carrying only an email address (magic link, password reset)."""
    email: EmailStr


class TokenPasswordRequest(BaseModel):
    """Emailed token plus the new password."""
    token: str
    password: str


def set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=config.AUTH_COOKIE_NAME,
        value=token,
        max_age=config.SESSION_EXPIRE_HOURS * 3600,
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


@router.post("/login")
async def login(
    credentials: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db_session)
):
    """
    Login with email + password.
    Sets the HTTP-only session cookie and also returns the token for API clients.
    """
    user = AuthService.get_user_by_email(db, credentials.email)
    if user is not None and not is_account_usable(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account has been deactivated. Please contact the administrator."
        )
    if user is not None and not has_set_password(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Please set your password using the link sent to your email"
        )

    user = AuthService.authenticate_user(db, credentials.email, credentials.password)
    if not user:
        AuditService.log(db, action="login_failed", request=request, resource_type="user",
                         details={"email": credentials.email.lower()})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    ip_address, user_agent = client_info(request)
    token, session = AuthService.create_session(db, user, ip_address, user_agent)
    set_auth_cookie(response, token)

    AuditService.log(db, action="login", request=request, user_id=user.id,
                     resource_type="user", resource_id=user.id)
    return {
        "user": serialize_user(user, user),
        "token": token,
        "expiresAt": session.expires_at.isoformat(),
        "redirectTo": capabilities_for(user).dashboard,
    }


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    credentials: HTTPAuthorizationCredentials = Security(security_optional),
    db: Session = Depends(get_db_session)
):
    """Revoke the current session and clear the cookie."""
    token = extract_token(request, credentials)
    if token:
        AuthService.revoke_session(db, token)
    response.delete_cookie(config.AUTH_COOKIE_NAME, path="/")
    return {"success": True}


@router.get("/session")
async def get_session(current_user: User = Depends(get_current_user)):
    """Current user and what their role may do."""
    return {
        "user": serialize_user(current_user, current_user),
        "capabilities": asdict(capabilities_for(current_user)),
        "canAccessFeatures": has_set_password(current_user),
    }


@router.post("/magic-link")
async def send_magic_link(
    request_data: EmailRequest,
    request: Request,
    db: Session = Depends(get_db_session),
    email_service: EmailService = Depends(get_email_service)
):
    """
    Email a fresh password-setup link. The response does not reveal whether
    the address is registered.
    """
    user = AuthService.get_user_by_email(db, request_data.email)
    if user is not None and is_account_usable(user):
        token = AuthService.issue_token(db, user, TokenPurpose.MAGIC_LINK)
        await send_account_email(email_service, user, AuthService.build_link(token, TokenPurpose.MAGIC_LINK))
        AuditService.log(db, action="magic_link_sent", request=request, user_id=user.id,
                         resource_type="user", resource_id=user.id)
    return {"success": True, "message": "If an account exists for this email, a link has been sent."}


@router.post("/magic-link/verify")
async def verify_magic_link(
    request_data: TokenPasswordRequest,
    request: Request,
    db: Session = Depends(get_db_session)
):
    """Set the password from a magic link. The link works once."""
    is_valid, error_message = validate_password(request_data.password)
    if not is_valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error_message)

    try:
        user = AuthService.consume_token(db, request_data.token, TokenPurpose.MAGIC_LINK)
        AuthService.set_password(db, user, request_data.password)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    AuditService.log(db, action="password_set", request=request, user_id=user.id,
                     resource_type="user", resource_id=user.id)
    return {"success": True, "message": "Password set successfully. You can now log in.", "email": user.email}


@router.post("/password-reset")
async def send_password_reset(
    request_data: EmailRequest,
    request: Request,
    db: Session = Depends(get_db_session),
    email_service: EmailService = Depends(get_email_service)
):
    """Email a password-reset link (valid for one hour, single use)."""
    user = AuthService.get_user_by_email(db, request_data.email)
    if user is not None and is_account_usable(user):
        token = AuthService.issue_token(db, user, TokenPurpose.PASSWORD_RESET)
        await email_service.send_password_reset_email(PasswordResetEmailData(
            name=user.name,
            email=user.email,
            reset_link=AuthService.build_link(token, TokenPurpose.PASSWORD_RESET),
            requested_at=datetime.utcnow().strftime("%Y-%m-%d %H:%M UTC"),
        ))
        AuditService.log(db, action="password_reset_requested", request=request, user_id=user.id,
                         resource_type="user", resource_id=user.id)
    return {"success": True, "message": "If an account exists for this email, a reset link has been sent."}


@router.post("/password-reset/confirm")
async def reset_password(
    request_data: TokenPasswordRequest,
    request: Request,
    db: Session = Depends(get_db_session)
):
    """Set a new password from a reset link and sign out every other session."""
    is_valid, error_message = validate_password(request_data.password)
    if not is_valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error_message)

    try:
        user = AuthService.consume_token(db, request_data.token, TokenPurpose.PASSWORD_RESET)
        AuthService.set_password(db, user, request_data.password)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    revoked = AuthService.revoke_user_sessions(db, user.id)
    AuditService.log(db, action="password_reset", request=request, user_id=user.id,
                     resource_type="user", resource_id=user.id, details={"sessionsRevoked": revoked})
    logger.info(f"Password reset for user {user.id}")
    return {"success": True, "message": "Password reset successfully. Please log in."}


@router.get("/users/{user_id}/has-set-password")
async def get_has_set_password(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Whether a user finished password setup. Admins or the user themself."""
    if not is_admin_or_self(current_user, user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    user = AuthService.get_user_by_id(db, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return {"hasSetPassword": has_set_password(user), "passwordSetAt": user.password_set_at.isoformat() if user.password_set_at else None}
