"""User schemas"""

from pydantic import EmailStr, Field, field_validator
from typing import Optional
from datetime import datetime
from enum import Enum

from keepintouch.schemas.response import CamelModel

USERNAME_PATTERN = r'^[a-zA-Z0-9_]+$'
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 128


class UserRole(str, Enum):
    """User role enumeration"""
    ADMIN = "admin"
    USER = "user"


class UserCreate(CamelModel):
    """User creation schema"""
    username: str = Field(..., min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    role: UserRole = UserRole.USER

    @field_validator('username', 'name', mode='before')
    @classmethod
    def strip_whitespace(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator('email')
    @classmethod
    def email_lowercase(cls, v):
        return v.lower()


class UserUpdate(CamelModel):
    """Profile fields a user may change about themselves"""
    username: Optional[str] = Field(None, min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    name: Optional[str] = Field(None, min_length=1, max_length=50)

    @field_validator('username', 'name', mode='before')
    @classmethod
    def strip_whitespace(cls, v):
        return v.strip() if isinstance(v, str) else v


class UserResponse(CamelModel):
    """Public profile"""
    id: int
    username: str
    name: str
    email: str
    role: str
    last_seen_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserSummary(CamelModel):
    """Minimal user info for listings"""
    id: int
    username: str
    name: str
