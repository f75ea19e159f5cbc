"""Database models"""

from keepintouch.models.user import User
from keepintouch.models.security import RefreshToken, PasswordResetToken

__all__ = ["User", "RefreshToken", "PasswordResetToken"]
