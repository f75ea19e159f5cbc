"""Admin routes - token ledger maintenance"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from keepintouch.core.database import get_db
from keepintouch.services.password_reset_service import password_reset_service
from keepintouch.services.refresh_token_service import refresh_token_service
from keepintouch.api.deps import get_current_admin_user
from keepintouch.models.user import User

router = APIRouter()


@router.get("/token-stats", status_code=status.HTTP_200_OK)
def get_token_stats(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """
    Counts for both token ledgers (admin only)

    Args:
        current_user: Current admin user
        db: Database session

    Returns:
        Refresh and password reset token statistics
    """
    return {
        "success": True,
        "refresh_tokens": refresh_token_service.get_token_stats(db),
        "password_reset_tokens": password_reset_service.get_token_stats(db),
    }


@router.post("/tokens/purge", status_code=status.HTTP_200_OK)
def purge_tokens(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """
    Delete revoked, used and expired tokens now (admin only)

    Args:
        current_user: Current admin user
        db: Database session

    Returns:
        Number of records deleted per ledger
    """
    return {
        "success": True,
        "deleted": {
            "refresh_tokens": refresh_token_service.cleanup_expired_tokens(db),
            "password_reset_tokens": password_reset_service.cleanup_expired_tokens(db),
        },
    }
