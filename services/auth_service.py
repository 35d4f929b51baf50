"""
Authentication service: accounts, login sessions, and emailed one-time tokens.
"""
from datetime import datetime, timedelta
from typing import Optional, Tuple
from urllib.parse import urlencode

from sqlalchemy.orm import Session
from sqlalchemy import func

from database.models import (
    User, UserRole, UserStatus, ClearanceStatus, AuthToken, TokenPurpose, UserSession
)
from auth.security import (
    verify_password, get_password_hash, validate_password,
    create_access_token, decode_access_token, create_token, decode_token, hash_token
)
from core.logger import logger
import config

TOKEN_LINK_PATHS = {
    TokenPurpose.MAGIC_LINK: "/verify-email",
    TokenPurpose.PASSWORD_RESET: "/reset-password",
}


def token_lifetime(purpose: TokenPurpose) -> timedelta:
    if purpose == TokenPurpose.MAGIC_LINK:
        return timedelta(hours=config.MAGIC_LINK_EXPIRE_HOURS)
    return timedelta(minutes=config.PASSWORD_RESET_EXPIRE_MINUTES)


class AuthService:
    """Service for authentication operations."""

    @staticmethod
    def create_user(
        db: Session,
        email: str,
        name: str,
        role: UserRole,
        department_id: Optional[int] = None,
        matric_no: Optional[str] = None,
        phone: Optional[str] = None,
        created_by: Optional[int] = None,
        created_by_department_id: Optional[int] = None,
        password: Optional[str] = None,
    ) -> User:
        """
        Create a new user. Password is optional; if omitted, the user sets it
        through the magic link sent with the welcome email.

        Raises:
            ValueError: Duplicate email/matric number or weak password
        """
        email = email.strip().lower()
        if AuthService.get_user_by_email(db, email):
            raise ValueError("User with this email already exists")

        if matric_no:
            matric_no = matric_no.strip().upper()
            if db.query(User).filter(User.matric_no == matric_no).first():
                raise ValueError(f"Matric number {matric_no} is already registered")

        hashed_password = ""
        password_set_at = None
        if password:
            is_valid, error_message = validate_password(password)
            if not is_valid:
                raise ValueError(error_message)
            hashed_password = get_password_hash(password)
            password_set_at = datetime.utcnow()

        user = User(
            email=email,
            name=name.strip(),
            role=role,
            department_id=department_id,
            matric_no=matric_no or None,
            phone=phone,
            status=UserStatus.ACTIVE,
            is_active=True,
            clearance_status=ClearanceStatus.NOT_STARTED if role == UserRole.STUDENT else None,
            hashed_password=hashed_password,
            has_set_password=bool(password),
            password_set_at=password_set_at,
            created_by=created_by,
            created_by_department_id=created_by_department_id,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info(f"Created user: {email} (role: {role.value})")
        return user

    @staticmethod
    def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
        """
        Authenticate a user with account lockout protection.

        Returns:
            User if authenticated, None otherwise
        """
        user = AuthService.get_user_by_email(db, email)
        if not user or not user.hashed_password:
            return None

        if user.is_locked:
            if user.locked_until and user.locked_until > datetime.utcnow():
                logger.warning(f"Login attempt for locked account: {email}")
                return None
            user.is_locked = False
            user.locked_until = None
            user.failed_login_attempts = 0
            db.commit()

        if not verify_password(password, user.hashed_password):
            user.failed_login_attempts += 1
            if user.failed_login_attempts >= config.MAX_LOGIN_ATTEMPTS:
                user.is_locked = True
                user.locked_until = datetime.utcnow() + timedelta(minutes=config.LOCKOUT_DURATION_MINUTES)
                logger.warning(f"Account locked due to too many failed attempts: {email}")
            db.commit()
            return None

        user.failed_login_attempts = 0
        user.is_locked = False
        user.locked_until = None
        user.last_login = datetime.utcnow()
        db.commit()
        return user

    # Sessions
    @staticmethod
    def create_session(
        db: Session,
        user: User,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Tuple[str, UserSession]:
        """
        Open a login session.

        Returns:
            Tuple of (access token for the cookie/Bearer header, UserSession)
        """
        lifetime = timedelta(hours=config.SESSION_EXPIRE_HOURS)
        token = create_access_token(
            {"sub": str(user.id), "email": user.email, "role": user.role.value},
            config.SECRET_KEY,
            expires_delta=lifetime,
        )
        session = UserSession(
            user_id=user.id,
            session_hash=hash_token(token),
            ip_address=ip_address,
            user_agent=user_agent[:500] if user_agent else None,
            expires_at=datetime.utcnow() + lifetime,
            is_active=True,
        )
        db.add(session)
        db.commit()
        db.refresh(session)
        logger.info(f"Created session for user: {user.id}")
        return token, session

    @staticmethod
    def resolve_session(db: Session, token: str) -> Optional[User]:
        """User behind an access token, or None if the token or its session is no longer valid."""
        payload = decode_access_token(token, config.SECRET_KEY)
        if payload is None or not payload.get("sub"):
            return None

        session = db.query(UserSession).filter(
            UserSession.session_hash == hash_token(token),
            UserSession.is_active == True,
            UserSession.expires_at > datetime.utcnow()
        ).first()
        if session is None:
            return None

        try:
            user_id = int(payload["sub"])
        except (TypeError, ValueError):
            return None
        if session.user_id != user_id:
            return None

        session.last_activity = datetime.utcnow()
        return db.get(User, user_id)

    @staticmethod
    def revoke_session(db: Session, token: str) -> bool:
        """Revoke the session behind a token."""
        session = db.query(UserSession).filter(
            UserSession.session_hash == hash_token(token),
            UserSession.is_active == True
        ).first()
        if not session:
            return False
        session.is_active = False
        db.commit()
        return True

    @staticmethod
    def revoke_user_sessions(db: Session, user_id: int) -> int:
        """Revoke every active session of a user; returns how many were closed."""
        count = db.query(UserSession).filter(
            UserSession.user_id == user_id,
            UserSession.is_active == True
        ).update({UserSession.is_active: False}, synchronize_session=False)
        db.commit()
        return count

    # One-time tokens (magic link / password reset)
    @staticmethod
    def issue_token(db: Session, user: User, purpose: TokenPurpose) -> str:
        """
        Issue a single-use token and revoke earlier unused tokens of the same purpose.

        The JWT carries userId, email, type and role.
        """
        now = datetime.utcnow()
        db.query(AuthToken).filter(
            AuthToken.user_id == user.id,
            AuthToken.purpose == purpose,
            AuthToken.used_at.is_(None)
        ).update({AuthToken.used_at: now}, synchronize_session=False)

        lifetime = token_lifetime(purpose)
        token = create_token(
            {"sub": str(user.id), "userId": user.id, "email": user.email, "role": user.role.value},
            config.SECRET_KEY,
            purpose.value,
            lifetime,
        )
        db.add(AuthToken(
            user_id=user.id,
            purpose=purpose,
            token_hash=hash_token(token),
            expires_at=now + lifetime,
        ))
        db.commit()
        logger.info(f"Issued {purpose.value} token for user {user.id}")
        return token

    @staticmethod
    def _find_token(db: Session, token: str, purpose: TokenPurpose) -> Tuple[Optional[AuthToken], Optional[User]]:
        payload = decode_token(token, config.SECRET_KEY, purpose.value)
        if payload is None:
            return None, None
        record = db.query(AuthToken).filter(
            AuthToken.token_hash == hash_token(token),
            AuthToken.purpose == purpose
        ).first()
        if record is None or record.used_at is not None or record.expires_at <= datetime.utcnow():
            return None, None
        if payload.get("userId") != record.user_id:
            return None, None
        return record, db.get(User, record.user_id)

    @staticmethod
    def peek_token(db: Session, token: str, purpose: TokenPurpose) -> Optional[User]:
        """User a token belongs to, without consuming it."""
        _, user = AuthService._find_token(db, token, purpose)
        return user

    @staticmethod
    def consume_token(db: Session, token: str, purpose: TokenPurpose) -> User:
        """
        Mark a token used and return its user.

        Raises:
            ValueError: If the token is invalid, expired or already used
        """
        record, user = AuthService._find_token(db, token, purpose)
        if record is None or user is None:
            raise ValueError("Invalid or expired link. Please request a new one.")
        record.used_at = datetime.utcnow()
        return user

    @staticmethod
    def set_password(db: Session, user: User, password: str) -> User:
        """
        Set a user's password and mark password setup complete.

        Raises:
            ValueError: If the password is too weak
        """
        is_valid, error_message = validate_password(password)
        if not is_valid:
            raise ValueError(error_message)
        user.hashed_password = get_password_hash(password)
        user.has_set_password = True
        user.password_set_at = datetime.utcnow()
        user.failed_login_attempts = 0
        user.is_locked = False
        user.locked_until = None
        db.commit()
        db.refresh(user)
        logger.info(f"Password set for user {user.id}")
        return user

    @staticmethod
    def build_link(token: str, purpose: TokenPurpose) -> str:
        """Frontend URL that carries the token."""
        return f"{config.APP_URL}{TOKEN_LINK_PATHS[purpose]}?{urlencode({'token': token})}"

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID."""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by email (case-insensitive)."""
        return db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()
