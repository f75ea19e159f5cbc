"""User service - credential store and profile management"""

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List, Optional
from keepintouch.models.user import User
from keepintouch.schemas.user import UserCreate, UserUpdate
from keepintouch.core.clock import utcnow
from keepintouch.core.security import get_password_hash, verify_password
from keepintouch.core.exceptions import (
    AuthenticationError,
    ConflictError,
    EmailTakenError,
    ResourceNotFoundError,
    UsernameTakenError,
    ValidationError,
)
import logging

logger = logging.getLogger(__name__)


class UserService:
    """Service for user management"""

    SEARCH_LIMIT = 10

    @staticmethod
    def create_user(db: Session, user_data: UserCreate) -> User:
        """
        Create new user

        Username is checked before email, so a request that collides on both
        reports the username.

        Args:
            db: Database session
            user_data: User creation data

        Returns:
            Created user

        Raises:
            UsernameTakenError: Username belongs to another user
            EmailTakenError: Email belongs to another user
        """
        if UserService.get_user_by_username(db, user_data.username):
            raise UsernameTakenError()
        if UserService.get_user_by_email(db, user_data.email):
            raise EmailTakenError()

        user = User(
            username=user_data.username,
            name=user_data.name,
            email=user_data.email.lower(),
            password_hash=get_password_hash(user_data.password),
            role=user_data.role.value
        )

        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration
            db.rollback()
            if UserService.get_user_by_username(db, user_data.username):
                raise UsernameTakenError()
            if UserService.get_user_by_email(db, user_data.email):
                raise EmailTakenError()
            raise ConflictError("User already exists")
        db.refresh(user)

        logger.info(f"Created user: {user.username} (id: {user.id}, role: {user.role})")
        return user

    @staticmethod
    def find_by_username_or_email(db: Session, identifier: str) -> Optional[User]:
        """
        Look up a user by exact username or case-insensitive email

        Args:
            db: Database session
            identifier: Username or email

        Returns:
            Matching user or None
        """
        identifier = (identifier or "").strip()
        if not identifier:
            return None
        return (
            db.query(User)
            .filter(or_(User.username == identifier, User.email == identifier.lower()))
            .order_by(User.id.asc())
            .first()
        )

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID"""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_user_by_username(db: Session, username: str) -> Optional[User]:
        """Get user by username"""
        return db.query(User).filter(User.username == username).first()

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by email (emails are stored lowercased)"""
        return db.query(User).filter(User.email == email.strip().lower()).first()

    @staticmethod
    def user_exists(db: Session, user_id: int) -> bool:
        """Check if user exists by ID"""
        return db.query(User.id).filter(User.id == user_id).first() is not None

    @staticmethod
    def update_password(
        db: Session,
        user_id: int,
        new_password: str,
        current_password: Optional[str] = None,
        verify_current: bool = True,
        commit: bool = True,
    ) -> User:
        """
        Replace a user's password hash

        Args:
            db: Database session
            user_id: User ID
            new_password: Plain text replacement
            current_password: Required when verify_current is True
            verify_current: False for the reset-token path, where the
                caller has already proven control of the account
            commit: Commit the change immediately

        Returns:
            Updated user

        Raises:
            ResourceNotFoundError: User does not exist
            AuthenticationError: current_password does not match
        """
        user = UserService.get_user_by_id(db, user_id)
        if not user:
            raise ResourceNotFoundError("User")

        if verify_current and not verify_password(current_password or "", user.password_hash):
            raise AuthenticationError("Current password is incorrect")

        user.password_hash = get_password_hash(new_password)
        if commit:
            db.commit()
            db.refresh(user)

        logger.info(f"Password updated for user: {user.username}")
        return user

    @staticmethod
    def update_last_seen(db: Session, user_id: int) -> None:
        """Stamp the user's last-seen time; unknown ids are ignored"""
        user = UserService.get_user_by_id(db, user_id)
        if user:
            user.last_seen_at = utcnow()
            db.commit()

    @staticmethod
    def update_profile(db: Session, user_id: int, update_data: UserUpdate) -> User:
        """
        Update name and/or username

        Raises:
            ValidationError: Neither field was given
            ResourceNotFoundError: User does not exist
            UsernameTakenError: New username belongs to another user
        """
        user = UserService.get_user_by_id(db, user_id)
        if not user:
            raise ResourceNotFoundError("User")

        changes = update_data.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            raise ValidationError("At least one field (name or username) must be provided")
        if "username" in changes:
            existing = UserService.get_user_by_username(db, changes["username"])
            if existing and existing.id != user.id:
                raise UsernameTakenError()

        for field, value in changes.items():
            setattr(user, field, value)

        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise UsernameTakenError()
        db.refresh(user)

        logger.info(f"User profile updated: {user.username} (fields: {sorted(changes)})")
        return user

    @staticmethod
    def search_users(
        db: Session,
        term: str,
        exclude_user_id: Optional[int] = None,
        limit: int = SEARCH_LIMIT,
    ) -> List[User]:
        """
        Case-insensitive substring search over username and name

        Args:
            db: Database session
            term: Search text
            exclude_user_id: Omit this user (usually the caller)
            limit: Maximum results

        Returns:
            Matching users
        """
        pattern = f"%{term.strip().lower()}%"
        query = db.query(User).filter(
            or_(func.lower(User.username).like(pattern), func.lower(User.name).like(pattern))
        )
        if exclude_user_id is not None:
            query = query.filter(User.id != exclude_user_id)
        return query.order_by(User.username.asc()).limit(limit).all()

    @staticmethod
    def delete_user(db: Session, user_id: int) -> bool:
        """
        Delete user and, by cascade, their refresh and reset tokens

        Args:
            db: Database session
            user_id: User ID

        Returns:
            True if deleted
        """
        user = db.query(User).filter(User.id == user_id).first()

        if not user:
            raise ResourceNotFoundError("User")

        username = user.username
        db.delete(user)
        db.commit()

        logger.info(f"Deleted user: {username} (id: {user_id})")
        return True


# Singleton instance
user_service = UserService()
