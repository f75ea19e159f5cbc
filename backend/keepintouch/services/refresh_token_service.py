"""Refresh token ledger: hashed-at-rest storage, lookup and revocation."""

from __future__ import annotations

from datetime import timedelta
from typing import Dict, List, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from keepintouch.config import settings
from keepintouch.core.clock import utcnow
from keepintouch.core.exceptions import AuthenticationError
from keepintouch.core.security import hash_secret, verify_secret
from keepintouch.models.security import RefreshToken

logger = logging.getLogger(__name__)


class RefreshTokenService:
    """Track issued refresh tokens so they can be revoked before expiry."""

    DEVICE_INFO_MAX_LENGTH = 255

    @staticmethod
    def _active_filter(query, now=None):
        now = now or utcnow()
        return query.filter(
            RefreshToken.is_revoked == False,  # noqa: E712
            RefreshToken.expires_at > now,
        )

    @staticmethod
    def store_refresh_token(
        db: Session,
        user_id: int,
        raw_token: str,
        device_info: Optional[str] = None,
        *,
        commit: bool = True,
    ) -> RefreshToken:
        """
        Persist a salted hash of a freshly issued refresh token

        Args:
            db: Database session
            user_id: Owner of the token
            raw_token: Signed refresh token as handed to the client
            device_info: Free-form client description (User-Agent etc.)
            commit: Commit immediately; False lets the caller group writes

        Returns:
            The new ledger record
        """
        expires_at = utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
        record = RefreshToken(
            user_id=user_id,
            token_hash=hash_secret(raw_token),
            device_info=device_info[: RefreshTokenService.DEVICE_INFO_MAX_LENGTH] if device_info else None,
            expires_at=expires_at,
            is_revoked=False,
        )
        db.add(record)
        if commit:
            db.commit()
            db.refresh(record)
        else:
            db.flush()

        logger.info(
            "Refresh token stored: user_id=%s token_id=%s expires_at=%s device=%s",
            user_id,
            record.id,
            expires_at.isoformat(),
            device_info,
        )
        return record

    @staticmethod
    def validate_refresh_token(db: Session, raw_token: str) -> Tuple[int, RefreshToken]:
        """
        Find the ledger record for a raw refresh token

        Hashes are salted per record, so every active record is loaded and
        compared in turn.

        Args:
            db: Database session
            raw_token: Refresh token presented by the client

        Returns:
            (user_id, record)

        Raises:
            AuthenticationError: Token missing, unknown, revoked or expired
        """
        if not raw_token:
            raise AuthenticationError("Refresh token is required")

        candidates = RefreshTokenService._active_filter(db.query(RefreshToken)).all()

        match: Optional[RefreshToken] = None
        for record in candidates:
            if verify_secret(raw_token, record.token_hash):
                match = record
                break

        if match is None or not match.is_valid():
            raise AuthenticationError("Invalid or expired refresh token")

        logger.info("Refresh token validated: user_id=%s token_id=%s", match.user_id, match.id)
        return match.user_id, match

    @staticmethod
    def revoke_record(db: Session, record: RefreshToken, *, commit: bool = True) -> None:
        """Mark one already-loaded record as revoked"""
        record.is_revoked = True
        if commit:
            db.commit()
        else:
            db.flush()

    @staticmethod
    def revoke_refresh_token(db: Session, raw_token: str) -> bool:
        """
        Revoke the record matching a raw token

        An unknown or already revoked token counts as revoked, so this never
        raises for a bad token.

        Returns:
            True if a record was revoked by this call
        """
        try:
            _, record = RefreshTokenService.validate_refresh_token(db, raw_token)
        except AuthenticationError as exc:
            logger.warning("Attempted to revoke invalid refresh token: %s", exc.message)
            return False

        RefreshTokenService.revoke_record(db, record)
        logger.info("Refresh token revoked: user_id=%s token_id=%s", record.user_id, record.id)
        return True

    @staticmethod
    def revoke_all_user_tokens(db: Session, user_id: int, *, commit: bool = True) -> int:
        """
        Revoke every non-revoked token of a user

        Returns:
            Number of records revoked (0 if none)
        """
        count = (
            db.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id, RefreshToken.is_revoked == False)  # noqa: E712
            .update({RefreshToken.is_revoked: True, RefreshToken.updated_at: utcnow()})
        )
        if commit:
            db.commit()

        logger.info("All user refresh tokens revoked: user_id=%s count=%s", user_id, count)
        return count

    @staticmethod
    def revoke_other_user_tokens(db: Session, user_id: int, keep_token_id: int) -> int:
        """
        Revoke every non-revoked token of a user except keep_token_id

        Returns:
            Number of records revoked (0 if none)
        """
        count = (
            db.query(RefreshToken)
            .filter(
                RefreshToken.user_id == user_id,
                RefreshToken.id != keep_token_id,
                RefreshToken.is_revoked == False,  # noqa: E712
            )
            .update({RefreshToken.is_revoked: True, RefreshToken.updated_at: utcnow()})
        )
        db.commit()

        logger.info(
            "Other user refresh tokens revoked: user_id=%s kept=%s count=%s",
            user_id,
            keep_token_id,
            count,
        )
        return count

    @staticmethod
    def revoke_user_token(db: Session, user_id: int, token_id: int) -> int:
        """
        Revoke one record, only if it belongs to user_id

        Returns:
            1 if revoked, 0 if missing, foreign or already revoked
        """
        count = (
            db.query(RefreshToken)
            .filter(
                RefreshToken.id == token_id,
                RefreshToken.user_id == user_id,
                RefreshToken.is_revoked == False,  # noqa: E712
            )
            .update({RefreshToken.is_revoked: True, RefreshToken.updated_at: utcnow()})
        )
        db.commit()
        return count

    @staticmethod
    def get_user_active_tokens(db: Session, user_id: int) -> List[RefreshToken]:
        """Non-revoked, unexpired records of a user, newest first"""
        return (
            RefreshTokenService._active_filter(
                db.query(RefreshToken).filter(RefreshToken.user_id == user_id)
            )
            .order_by(RefreshToken.created_at.desc(), RefreshToken.id.desc())
            .all()
        )

    @staticmethod
    def cleanup_expired_tokens(db: Session) -> int:
        """
        Hard-delete revoked or expired records

        Returns:
            Number of records deleted
        """
        now = utcnow()
        count = (
            db.query(RefreshToken)
            .filter((RefreshToken.is_revoked == True) | (RefreshToken.expires_at < now))  # noqa: E712
            .delete(synchronize_session=False)
        )
        db.commit()

        if count:
            logger.info("Cleaned up expired refresh tokens: deleted=%s", count)
        return count

    @staticmethod
    def get_token_stats(db: Session) -> Dict[str, int]:
        """Independent counts of total, active, expired and revoked records"""
        now = utcnow()
        return {
            "total": db.query(RefreshToken).count(),
            "active": RefreshTokenService._active_filter(db.query(RefreshToken), now).count(),
            "expired": db.query(RefreshToken).filter(RefreshToken.expires_at <= now).count(),
            "revoked": db.query(RefreshToken).filter(RefreshToken.is_revoked == True).count(),  # noqa: E712
        }


refresh_token_service = RefreshTokenService()
