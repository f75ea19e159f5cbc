"""Security-related persistence models."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from keepintouch.core.clock import utcnow, naive_utc
from keepintouch.core.database import Base


class RefreshToken(Base):
    """Issued refresh token, stored only as a salted bcrypt hash."""

    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(255), nullable=False)
    device_info = Column(String(255), nullable=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    is_revoked = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="refresh_tokens")

    __table_args__ = (
        Index("idx_refresh_tokens_user_revoked", "user_id", "is_revoked"),
    )

    def is_expired(self) -> bool:
        return utcnow() >= naive_utc(self.expires_at)

    def is_valid(self) -> bool:
        return not self.is_revoked and not self.is_expired()


class PasswordResetToken(Base):
    """Single-use password reset token, stored only as a salted bcrypt hash."""

    __tablename__ = "password_reset_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(255), nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    is_used = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="password_reset_tokens")

    __table_args__ = (
        Index("idx_password_reset_tokens_user_used", "user_id", "is_used"),
    )

    def is_expired(self) -> bool:
        return utcnow() >= naive_utc(self.expires_at)

    def is_valid(self) -> bool:
        return not self.is_used and not self.is_expired()
