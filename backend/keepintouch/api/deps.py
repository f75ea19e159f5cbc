"""API dependencies - authentication and authorization"""

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional

from keepintouch.core.database import get_db
from keepintouch.core.exceptions import AuthenticationError, AuthorizationError
from keepintouch.models.user import User
from keepintouch.schemas.auth import DEVICE_INFO_MAX_LENGTH
from keepintouch.services.auth_service import AuthService
from keepintouch.services.email_service import EmailService, get_email_service

# HTTP Bearer token scheme; missing credentials are reported by get_current_user
security = HTTPBearer(auto_error=False)


def get_auth_service(
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
) -> AuthService:
    """Build the request-scoped authentication service"""
    return AuthService(db, email_service)


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    auth_service: AuthService = Depends(get_auth_service),
) -> User:
    """
    Get current authenticated user from the bearer access token

    Args:
        request: Incoming request; the user is attached to request.state
        credentials: HTTP Bearer credentials
        auth_service: Request-scoped authentication service

    Returns:
        Current user

    Raises:
        AuthenticationError: If the header is missing, the token is invalid
            or the user no longer exists
    """
    if not credentials or not credentials.credentials:
        raise AuthenticationError("Access token is required. Please login to continue")

    user = auth_service.validate_access_token(credentials.credentials)
    request.state.user_id = user.id
    return user


def get_current_admin_user(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Get current admin user (authorization check)

    Raises:
        AuthorizationError: If user is not admin
    """
    if current_user.role != "admin":
        raise AuthorizationError("Admin access required")
    return current_user


def resolve_device_info(request: Request, explicit: Optional[str] = None) -> Optional[str]:
    """Device description from the body when given, else the User-Agent header"""
    device_info = explicit or request.headers.get("user-agent")
    if not device_info:
        return None
    return device_info[:DEVICE_INFO_MAX_LENGTH]
