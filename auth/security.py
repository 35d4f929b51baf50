"""
Security utilities: password hashing, signed tokens and token hashing.
"""
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, Tuple
from jose import JWTError, jwt
from passlib.context import CryptContext
import bcrypt
from fastapi.security import HTTPBearer
import secrets
import hashlib

import config

# Password hashing
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__ident="2b",
    bcrypt__rounds=12
)

# Token type
ACCESS_TOKEN_TYPE = "access"

# Bearer header is optional; the session cookie is the primary transport
security_optional = HTTPBearer(auto_error=False)


# Password utilities
def validate_password(password: str) -> Tuple[bool, Optional[str]]:
    """
    Validate password strength.

    Requirements:
    - Minimum 8 characters
    - At least 1 letter and 1 number
    - Maximum 72 bytes (bcrypt limit)

    Args:
        password: Password to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not password:
        return False, "Password is required"

    if len(password) < 8:
        return False, "Password must be at least 8 characters long"

    if len(password.encode('utf-8')) > 72:
        return False, "Password cannot be longer than 72 bytes. Please use a shorter password."

    if not any(char.isdigit() for char in password):
        return False, "Password must contain at least one number"

    if not any(char.isalpha() for char in password):
        return False, "Password must contain at least one letter"

    return True, None


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash."""
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))
    except ValueError:
        # Hashes written by other bcrypt front-ends
        return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt.

    Note: Password validation should be done before calling this function.
    Use validate_password() to check password requirements.
    """
    password_bytes = password.encode('utf-8')
    if len(password_bytes) > 72:
        raise ValueError("Password cannot be longer than 72 bytes. Please use a shorter password.")
    return bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=12)).decode('utf-8')


# Signed token utilities
def create_token(
    data: Dict[str, Any],
    secret_key: str,
    token_type: str,
    expires_delta: timedelta
) -> str:
    """
    Create a signed JWT of the given type.

    Adds "exp", "iat", "type" and a random "jti" claim.

    Args:
        data: Claims to encode
        secret_key: Secret key for signing
        token_type: Value of the "type" claim
        expires_delta: Lifetime of the token

    Returns:
        Encoded JWT
    """
    now = datetime.utcnow()
    to_encode = data.copy()
    to_encode.update({
        "exp": now + expires_delta,
        "iat": now,
        "type": token_type,
        "jti": secrets.token_urlsafe(16),
    })
    return jwt.encode(to_encode, secret_key, algorithm=config.ALGORITHM)


def decode_token(token: str, secret_key: str, token_type: str) -> Optional[Dict[str, Any]]:
    """
    Decode and verify a JWT of the expected type.

    Returns:
        Decoded claims, or None if the token is invalid, expired or of another type
    """
    try:
        payload = jwt.decode(token, secret_key, algorithms=[config.ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != token_type:
        return None
    return payload


def create_access_token(
    data: Dict[str, Any],
    secret_key: str,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create a session access token."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    return create_token(data, secret_key, ACCESS_TOKEN_TYPE, expires_delta)


def decode_access_token(token: str, secret_key: str) -> Optional[Dict[str, Any]]:
    """Decode a session access token."""
    return decode_token(token, secret_key, ACCESS_TOKEN_TYPE)


def hash_token(token: str) -> str:
    """
    Hash a token for storage/comparison.

    Args:
        token: Token string

    Returns:
        Hex digest
    """
    return hashlib.sha256(token.encode()).hexdigest()

