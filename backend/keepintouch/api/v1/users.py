"""User profile routes"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List

from keepintouch.core.database import get_db
from keepintouch.core.exceptions import ResourceNotFoundError
from keepintouch.schemas.response import MessageResponse
from keepintouch.schemas.user import UserResponse, UserSummary, UserUpdate
from keepintouch.services.user_service import user_service
from keepintouch.api.deps import get_current_user
from keepintouch.models.user import User

router = APIRouter()


@router.get("/me", response_model=UserResponse)
def get_my_profile(
    current_user: User = Depends(get_current_user)
):
    """
    Get current user profile

    Args:
        current_user: Current authenticated user

    Returns:
        User profile
    """
    return UserResponse.model_validate(current_user)


@router.patch("/me", response_model=UserResponse)
def update_my_profile(
    update_data: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Update name and/or username

    Args:
        update_data: Fields to change
        current_user: Current authenticated user
        db: Database session

    Returns:
        Updated profile
    """
    user = user_service.update_profile(db, current_user.id, update_data)
    return UserResponse.model_validate(user)


@router.delete("/me", response_model=MessageResponse, status_code=status.HTTP_200_OK)
def delete_my_account(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete the caller's account and every token issued to it"""
    user_service.delete_user(db, current_user.id)
    return MessageResponse(message="Account deleted successfully")


@router.get("/search", response_model=List[UserSummary])
def search_users(
    q: str = Query(..., min_length=1, max_length=50),
    limit: int = Query(10, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Search other users by username or name"""
    users = user_service.search_users(db, q, exclude_user_id=current_user.id, limit=limit)
    return [UserSummary.model_validate(user) for user in users]


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Public profile of any user"""
    user = user_service.get_user_by_id(db, user_id)
    if not user:
        raise ResourceNotFoundError("User")
    return UserResponse.model_validate(user)
