"""Authentication request/response schemas"""

from datetime import datetime
from typing import List, Optional

from pydantic import EmailStr, Field, field_validator

from keepintouch.schemas.response import CamelModel
from keepintouch.schemas.user import (
    UserCreate,
    UserResponse,
    PASSWORD_MIN_LENGTH,
    PASSWORD_MAX_LENGTH,
)

DEVICE_INFO_MAX_LENGTH = 255


class RegisterRequest(UserCreate):
    """Self-service registration; role is always "user" """
    device_info: Optional[str] = Field(None, max_length=DEVICE_INFO_MAX_LENGTH)

    @field_validator('role')
    @classmethod
    def role_is_user(cls, v):
        if v.value != "user":
            raise ValueError('Role cannot be chosen at registration')
        return v


class LoginRequest(CamelModel):
    """Login with username or email"""
    identifier: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    device_info: Optional[str] = Field(None, max_length=DEVICE_INFO_MAX_LENGTH)

    @field_validator('identifier', mode='before')
    @classmethod
    def strip_identifier(cls, v):
        return v.strip() if isinstance(v, str) else v


class RefreshTokenRequest(CamelModel):
    """Refresh token exchange"""
    refresh_token: str = Field(..., min_length=1)
    device_info: Optional[str] = Field(None, max_length=DEVICE_INFO_MAX_LENGTH)


class LogoutRequest(CamelModel):
    """Logout request"""
    refresh_token: Optional[str] = None
    logout_all_devices: bool = False


class ForgotPasswordRequest(CamelModel):
    email: EmailStr

    @field_validator('email')
    @classmethod
    def email_lowercase(cls, v):
        return v.lower()


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)


class UpdatePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)


class TokenPairResponse(CamelModel):
    """Fresh access/refresh pair"""
    message: str
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class AuthResponse(TokenPairResponse):
    """Token pair plus the authenticated user's profile"""
    user: UserResponse


class SessionResponse(CamelModel):
    """One active refresh-token session"""
    token_id: int
    device_info: Optional[str] = None
    created_at: datetime
    expires_at: datetime


class SessionListResponse(CamelModel):
    message: str
    sessions: List[SessionResponse]


class SessionRevokeResponse(CamelModel):
    success: bool
    message: str
