"""Security utilities - JWT signing/verification and slow one-way hashing"""

import base64
import hashlib
import secrets
import time
from datetime import timedelta
from typing import Optional, Dict, Any

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from keepintouch.config import settings
from keepintouch.core.clock import utcnow
from keepintouch.core.exceptions import TokenExpiredError, TokenInvalidError

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

RESET_TOKEN_BYTES = 32


def _prepare_secret(value: str) -> bytes:
    """
    Reduce an arbitrary-length secret to a fixed 44-byte bcrypt input.

    bcrypt ignores everything past 72 bytes, and signed tokens share long
    common prefixes, so the raw value is never fed to it directly.
    """
    digest = hashlib.sha256(value.encode("utf-8")).digest()
    return base64.b64encode(digest)


def hash_secret(value: str) -> str:
    """
    Salted bcrypt hash of a password or token

    Args:
        value: Plain text secret

    Returns:
        str: bcrypt hash (includes salt and cost)
    """
    return bcrypt.hashpw(
        _prepare_secret(value),
        bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    ).decode("utf-8")


def verify_secret(value: str, hashed: str) -> bool:
    """
    Compare a plain secret against a hash produced by hash_secret

    Args:
        value: Plain text secret
        hashed: Stored bcrypt hash

    Returns:
        bool: True if the secret matches
    """
    if not value or not hashed:
        return False
    try:
        return bcrypt.checkpw(_prepare_secret(value), hashed.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt"""
    return hash_secret(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    return verify_secret(plain_password, hashed_password)


def _secret_for(token_type: str) -> str:
    if token_type == ACCESS_TOKEN_TYPE:
        return settings.ACCESS_TOKEN_SECRET
    if token_type == REFRESH_TOKEN_TYPE:
        return settings.REFRESH_TOKEN_SECRET
    raise ValueError(f"Unknown token type: {token_type}")


def _lifetime_for(token_type: str) -> timedelta:
    if token_type == ACCESS_TOKEN_TYPE:
        return timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)


def _create_token(user_id: Any, token_type: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = utcnow() + (expires_delta if expires_delta is not None else _lifetime_for(token_type))
    to_encode = {
        "sub": str(user_id),
        "typ": token_type,
        "iat": int(time.time()),
        "exp": expire,
        "jti": secrets.token_urlsafe(16),  # Unique token ID
    }
    return jwt.encode(to_encode, _secret_for(token_type), algorithm=settings.ALGORITHM)


def create_access_token(user_id: Any, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a short-lived JWT access token

    Args:
        user_id: Subject of the token
        expires_delta: Override for ACCESS_TOKEN_EXPIRE_MINUTES

    Returns:
        str: Encoded JWT token
    """
    return _create_token(user_id, ACCESS_TOKEN_TYPE, expires_delta)


def create_refresh_token(user_id: Any, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a long-lived JWT refresh token, signed with its own secret

    Args:
        user_id: Subject of the token
        expires_delta: Override for REFRESH_TOKEN_EXPIRE_DAYS

    Returns:
        str: Encoded JWT token
    """
    return _create_token(user_id, REFRESH_TOKEN_TYPE, expires_delta)


def verify_token(token: str, token_type: str) -> Dict[str, Any]:
    """
    Verify signature and expiry of a token using the secret for token_type

    The decoded "typ" claim is returned as-is; callers still compare it
    against the type they expect.

    Args:
        token: JWT token string
        token_type: "access" or "refresh"

    Returns:
        Dict: Decoded claims (sub, typ, iat, exp, jti)

    Raises:
        TokenExpiredError: Token is past its exp claim
        TokenInvalidError: Signature, format or claims are invalid
    """
    if not token:
        raise TokenInvalidError()
    try:
        payload = jwt.decode(token, _secret_for(token_type), algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError:
        raise TokenExpiredError()
    except JWTError:
        raise TokenInvalidError()

    if not payload.get("sub"):
        raise TokenInvalidError()
    return payload


def generate_reset_token() -> str:
    """
    Generate a raw password reset token

    Returns:
        str: 64 hex characters from 32 random bytes
    """
    return secrets.token_hex(RESET_TOKEN_BYTES)
