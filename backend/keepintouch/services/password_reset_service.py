"""Password reset token ledger."""

from __future__ import annotations

from datetime import timedelta
from typing import Dict, Tuple
import logging

from sqlalchemy.orm import Session

from keepintouch.config import settings
from keepintouch.core.clock import utcnow
from keepintouch.core.exceptions import InvalidResetTokenError
from keepintouch.core.security import generate_reset_token, hash_secret, verify_secret
from keepintouch.models.security import PasswordResetToken

logger = logging.getLogger(__name__)


class PasswordResetService:
    """Issue, validate and consume single-use password reset tokens."""

    @staticmethod
    def create_reset_token(db: Session, user_id: int) -> Tuple[str, PasswordResetToken]:
        """
        Issue a new reset token for user_id

        Any unused token the user still holds is marked used first, so at
        most one reset token per user is ever redeemable.

        Args:
            db: Database session
            user_id: Account being reset

        Returns:
            (raw_token, record); the raw token is never stored
        """
        superseded = (
            db.query(PasswordResetToken)
            .filter(PasswordResetToken.user_id == user_id, PasswordResetToken.is_used == False)  # noqa: E712
            .update({PasswordResetToken.is_used: True})
        )

        raw_token = generate_reset_token()
        expires_at = utcnow() + timedelta(minutes=settings.PASSWORD_RESET_TOKEN_EXPIRE_MINUTES)
        record = PasswordResetToken(
            user_id=user_id,
            token_hash=hash_secret(raw_token),
            expires_at=expires_at,
            is_used=False,
        )
        db.add(record)
        db.commit()
        db.refresh(record)

        logger.info(
            "Password reset token created: user_id=%s token_id=%s expires_at=%s superseded=%s",
            user_id,
            record.id,
            expires_at.isoformat(),
            superseded,
        )
        return raw_token, record

    @staticmethod
    def validate_reset_token(db: Session, raw_token: str) -> Tuple[int, PasswordResetToken]:
        """
        Find the unused, unexpired record matching raw_token

        Returns:
            (user_id, record)

        Raises:
            InvalidResetTokenError: Token missing, unknown, used or expired
        """
        if not raw_token:
            raise InvalidResetTokenError("Password reset token is required")

        candidates = (
            db.query(PasswordResetToken)
            .filter(
                PasswordResetToken.is_used == False,  # noqa: E712
                PasswordResetToken.expires_at > utcnow(),
            )
            .all()
        )

        match = None
        for record in candidates:
            if verify_secret(raw_token, record.token_hash):
                match = record
                break

        if match is None or not match.is_valid():
            raise InvalidResetTokenError()

        logger.info("Password reset token validated: user_id=%s token_id=%s", match.user_id, match.id)
        return match.user_id, match

    @staticmethod
    def mark_token_used(db: Session, record: PasswordResetToken, *, commit: bool = True) -> None:
        """Consume a token; repeating the call is a no-op"""
        if record.is_used:
            return
        record.is_used = True
        if commit:
            db.commit()
        else:
            db.flush()
        logger.info("Password reset token marked as used: user_id=%s token_id=%s", record.user_id, record.id)

    @staticmethod
    def cleanup_expired_tokens(db: Session) -> int:
        """
        Hard-delete used or expired records

        Returns:
            Number of records deleted
        """
        now = utcnow()
        count = (
            db.query(PasswordResetToken)
            .filter((PasswordResetToken.is_used == True) | (PasswordResetToken.expires_at < now))  # noqa: E712
            .delete(synchronize_session=False)
        )
        db.commit()

        if count:
            logger.info("Cleaned up expired password reset tokens: deleted=%s", count)
        return count

    @staticmethod
    def get_token_stats(db: Session) -> Dict[str, int]:
        """Independent counts of total, active, expired and used records"""
        now = utcnow()
        query = db.query(PasswordResetToken)
        return {
            "total": query.count(),
            "active": query.filter(
                PasswordResetToken.is_used == False,  # noqa: E712
                PasswordResetToken.expires_at > now,
            ).count(),
            "expired": query.filter(PasswordResetToken.expires_at <= now).count(),
            "used": query.filter(PasswordResetToken.is_used == True).count(),  # noqa: E712
        }


password_reset_service = PasswordResetService()
