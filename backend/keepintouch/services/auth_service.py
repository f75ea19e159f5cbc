"""Authentication orchestration - login, token rotation, logout and password reset."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from keepintouch.config import settings
from keepintouch.core.exceptions import (
    AuthenticationError,
    InvalidCredentialsError,
    TokenInvalidError,
)
from keepintouch.core.security import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    verify_password,
    verify_token,
)
from keepintouch.models.user import User
from keepintouch.schemas.user import UserCreate
from keepintouch.services.email_service import EmailService
from keepintouch.services.password_reset_service import password_reset_service
from keepintouch.services.refresh_token_service import refresh_token_service
from keepintouch.services.user_service import user_service

logger = logging.getLogger(__name__)


@dataclass
class AuthTokens:
    access_token: str
    refresh_token: str


@dataclass
class AuthResult(AuthTokens):
    user: User


class AuthService:
    """
    Composes the credential store, token codec and both token ledgers.

    One instance per request: it holds the request's database session and
    the email sender it should use.
    """

    def __init__(self, db: Session, email_service: EmailService) -> None:
        self.db = db
        self.email_service = email_service

    # Token issue

    @staticmethod
    def _generate_tokens(user_id: int) -> AuthTokens:
        return AuthTokens(
            access_token=create_access_token(user_id),
            refresh_token=create_refresh_token(user_id),
        )

    def _start_session(self, user: User, device_info: Optional[str]) -> AuthResult:
        tokens = self._generate_tokens(user.id)
        refresh_token_service.store_refresh_token(self.db, user.id, tokens.refresh_token, device_info)
        user_service.update_last_seen(self.db, user.id)
        return AuthResult(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            user=user,
        )

    # Operations

    def register(self, user_data: UserCreate, device_info: Optional[str] = None) -> AuthResult:
        """
        Create an account and sign it in

        Raises:
            UsernameTakenError, EmailTakenError: 409 conflicts
        """
        user = user_service.create_user(self.db, user_data)
        result = self._start_session(user, device_info)

        logger.info(
            "User registered and logged in: %s (id: %s, device: %s)",
            user.username,
            user.id,
            device_info,
        )
        return result

    def login(self, identifier: str, password: str, device_info: Optional[str] = None) -> AuthResult:
        """
        Authenticate by username or email

        Raises:
            InvalidCredentialsError: Unknown identifier or wrong password
        """
        user = user_service.find_by_username_or_email(self.db, identifier)
        if not user:
            raise InvalidCredentialsError("Invalid credentials or account is inactive")

        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError("Invalid credentials")

        result = self._start_session(user, device_info)
        logger.info("User logged in: %s (id: %s, device: %s)", user.username, user.id, device_info)
        return result

    def refresh_token(self, raw_refresh_token: str, device_info: Optional[str] = None) -> AuthTokens:
        """
        Exchange a refresh token for a new pair and revoke the old one

        The new record and the revocation of the old one are committed
        together.

        Raises:
            AuthenticationError: Bad signature, wrong type, unknown/revoked
                token or deleted user
        """
        if not raw_refresh_token:
            raise AuthenticationError("Refresh token is required")

        payload = verify_token(raw_refresh_token, REFRESH_TOKEN_TYPE)
        if payload.get("typ") != REFRESH_TOKEN_TYPE:
            raise AuthenticationError("Invalid token type")

        user_id, old_record = refresh_token_service.validate_refresh_token(self.db, raw_refresh_token)
        if str(user_id) != str(payload.get("sub")):
            raise AuthenticationError("Invalid or expired refresh token")

        if not user_service.user_exists(self.db, user_id):
            raise AuthenticationError("User not found")

        tokens = self._generate_tokens(user_id)
        carried_device_info = device_info or old_record.device_info
        try:
            refresh_token_service.store_refresh_token(
                self.db, user_id, tokens.refresh_token, carried_device_info, commit=False
            )
            refresh_token_service.revoke_record(self.db, old_record, commit=False)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        user_service.update_last_seen(self.db, user_id)

        logger.info(
            "Token refreshed for user: %s (old token: %s, device: %s)",
            user_id,
            old_record.id,
            carried_device_info,
        )
        return tokens

    def logout(
        self,
        user_id: int,
        raw_refresh_token: Optional[str] = None,
        logout_all_devices: bool = False,
    ) -> None:
        """Revoke one or all sessions; failures are logged, never raised"""
        try:
            if logout_all_devices:
                count = refresh_token_service.revoke_all_user_tokens(self.db, user_id)
                logger.info("User logged out from all devices: %s (revoked: %s)", user_id, count)
            elif raw_refresh_token:
                refresh_token_service.revoke_refresh_token(self.db, raw_refresh_token)
                logger.info("User logged out: %s", user_id)
            else:
                logger.info("User logout initiated without token: %s", user_id)
        except Exception as exc:
            self.db.rollback()
            logger.warning("Error during logout for user %s: %s", user_id, exc)

    def forgot_password(self, email: str) -> None:
        """
        Issue a reset token and email it

        Returns normally whether or not the email belongs to an account, and
        whether or not delivery worked.
        """
        try:
            user = user_service.get_user_by_email(self.db, email)
            if not user:
                logger.warning("Password reset requested for non-existent email: %s", email)
                return

            raw_token, record = password_reset_service.create_reset_token(self.db, user.id)
            reset_url = settings.get_reset_url(raw_token)
        except Exception as exc:
            self.db.rollback()
            logger.error("Failed to issue password reset token: %s", exc)
            return

        try:
            self.email_service.send_password_reset_email(user, reset_url)
            logger.info("Password reset email sent successfully: user_id=%s", user.id)
        except Exception as exc:
            logger.error("Failed to send password reset email: user_id=%s error=%s", user.id, exc)
            if not settings.is_production:
                logger.info("Password reset token for development: user_id=%s token=%s", user.id, raw_token)

    def reset_password(self, raw_reset_token: str, new_password: str) -> None:
        """
        Set a new password with a reset token and end every session

        Raises:
            InvalidResetTokenError: 400 when the token is missing, unknown,
                used or expired
        """
        user_id, record = password_reset_service.validate_reset_token(self.db, raw_reset_token)
        try:
            user_service.update_password(
                self.db, user_id, new_password, verify_current=False, commit=False
            )
            password_reset_service.mark_token_used(self.db, record, commit=False)
            revoked = refresh_token_service.revoke_all_user_tokens(self.db, user_id, commit=False)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Password reset completed for user: %s (token: %s, sessions revoked: %s)",
            user_id,
            record.id,
            revoked,
        )

    def update_password(self, user_id: int, current_password: str, new_password: str) -> None:
        """
        Change password for a signed-in user; existing sessions stay valid

        Raises:
            AuthenticationError: current_password is wrong
        """
        user_service.update_password(self.db, user_id, new_password, current_password=current_password)

    def get_user_sessions(self, user_id: int) -> List[Dict[str, Any]]:
        """Active refresh-token sessions, newest first"""
        return [
            {
                "token_id": record.id,
                "device_info": record.device_info,
                "created_at": record.created_at,
                "expires_at": record.expires_at,
            }
            for record in refresh_token_service.get_user_active_tokens(self.db, user_id)
        ]

    def revoke_session(self, user_id: int, token_id: int) -> Dict[str, Any]:
        """Revoke one of the user's own sessions; never raises"""
        logger.info("Session revocation requested: user_id=%s token_id=%s", user_id, token_id)
        try:
            count = refresh_token_service.revoke_user_token(self.db, user_id, token_id)
        except Exception as exc:
            self.db.rollback()
            logger.error("Failed to revoke session: user_id=%s token_id=%s error=%s", user_id, token_id, exc)
            return {"success": False, "message": "Failed to revoke session"}

        if count == 0:
            logger.warning("Session not found for revocation: user_id=%s token_id=%s", user_id, token_id)
            return {"success": False, "message": "Session not found"}

        return {"success": True, "message": "Session revoked successfully"}

    def validate_access_token(self, token: str) -> User:
        """
        Resolve a bearer token to its user

        Raises:
            AuthenticationError: Expired, forged, wrong type or user missing
        """
        payload = verify_token(token, ACCESS_TOKEN_TYPE)
        if payload.get("typ") != ACCESS_TOKEN_TYPE:
            raise AuthenticationError("Invalid token type")

        try:
            user_id = int(payload["sub"])
        except (KeyError, TypeError, ValueError):
            raise TokenInvalidError()

        user = user_service.get_user_by_id(self.db, user_id)
        if not user:
            raise AuthenticationError("User not found")
        return user

    def is_authenticated(self, token: str) -> bool:
        try:
            self.validate_access_token(token)
        except AuthenticationError:
            return False
        return True

    def get_authenticated_user(self, token: str) -> User:
        return self.validate_access_token(token)
