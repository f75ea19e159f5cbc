"""Pydantic schemas for API validation"""

from keepintouch.schemas.user import (
    UserCreate,
    UserUpdate,
    UserResponse,
    UserSummary,
    UserRole,
)
from keepintouch.schemas.auth import (
    RegisterRequest,
    LoginRequest,
    RefreshTokenRequest,
    LogoutRequest,
    ForgotPasswordRequest,
    ResetPasswordRequest,
    UpdatePasswordRequest,
    TokenPairResponse,
    AuthResponse,
    SessionResponse,
    SessionListResponse,
    SessionRevokeResponse,
)
from keepintouch.schemas.response import ErrorResponse, MessageResponse

__all__ = [
    "UserCreate", "UserUpdate", "UserResponse", "UserSummary", "UserRole",
    "RegisterRequest", "LoginRequest", "RefreshTokenRequest", "LogoutRequest",
    "ForgotPasswordRequest", "ResetPasswordRequest", "UpdatePasswordRequest",
    "TokenPairResponse", "AuthResponse",
    "SessionResponse", "SessionListResponse", "SessionRevokeResponse",
    "ErrorResponse", "MessageResponse",
]
