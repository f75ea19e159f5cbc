"""Authentication routes"""

from fastapi import APIRouter, Depends, Header, Request, status
from typing import Optional

from keepintouch.config import settings
from keepintouch.schemas.auth import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SessionListResponse,
    SessionRevokeResponse,
    TokenPairResponse,
    UpdatePasswordRequest,
)
from keepintouch.schemas.response import MessageResponse
from keepintouch.schemas.user import UserResponse
from keepintouch.services.auth_service import AuthResult, AuthService
from keepintouch.api.deps import get_auth_service, get_current_user, resolve_device_info
from keepintouch.models.user import User

router = APIRouter()


def _auth_response(message: str, result: AuthResult) -> AuthResponse:
    return AuthResponse(
        message=message,
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        token_type="bearer",
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserResponse.model_validate(result.user),
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    user_data: RegisterRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Register endpoint - create account and return a token pair

    Args:
        user_data: Username, name, email and password
        auth_service: Request-scoped authentication service

    Returns:
        Token pair and public profile
    """
    device_info = resolve_device_info(request, user_data.device_info)
    result = auth_service.register(user_data, device_info=device_info)
    return _auth_response("User registered successfully", result)


@router.post("/login", response_model=AuthResponse, status_code=status.HTTP_200_OK)
def login(
    credentials: LoginRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Login endpoint - authenticate by username or email

    Args:
        credentials: Identifier and password
        auth_service: Request-scoped authentication service

    Returns:
        Token pair and public profile
    """
    device_info = resolve_device_info(request, credentials.device_info)
    result = auth_service.login(credentials.identifier, credentials.password, device_info=device_info)
    return _auth_response("Login successful", result)


@router.post("/refresh", response_model=TokenPairResponse)
def refresh_token(
    req: RefreshTokenRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Rotate a refresh token

    The presented refresh token is revoked; reusing it fails.
    """
    tokens = auth_service.refresh_token(req.refresh_token, device_info=req.device_info or None)

    return TokenPairResponse(
        message="Token refreshed successfully",
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type="bearer",
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.post("/logout", response_model=MessageResponse, status_code=status.HTTP_200_OK)
def logout(
    body: Optional[LogoutRequest] = None,
    x_refresh_token: Optional[str] = Header(None),
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Logout endpoint - revoke this session or every session

    Always succeeds for an authenticated caller.
    """
    body = body or LogoutRequest()
    raw_refresh_token = body.refresh_token or x_refresh_token
    auth_service.logout(current_user.id, raw_refresh_token, body.logout_all_devices)

    if body.logout_all_devices:
        return MessageResponse(message="Logged out from all devices successfully")
    return MessageResponse(message="Logged out successfully")


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(
    data: ForgotPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Start a password reset

    The response is identical whether or not the email is registered.
    """
    auth_service.forgot_password(data.email)
    return MessageResponse(message="Password reset instructions sent to your email")


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(
    data: ResetPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Set a new password using an emailed reset token"""
    auth_service.reset_password(data.token, data.new_password)
    return MessageResponse(message="Password reset successfully")


@router.patch("/update-password", response_model=MessageResponse)
def update_password(
    data: UpdatePasswordRequest,
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Change password for the signed-in user"""
    auth_service.update_password(current_user.id, data.current_password, data.new_password)
    return MessageResponse(message="Password updated successfully")


@router.get("/sessions", response_model=SessionListResponse)
def get_sessions(
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service)
):
    """List the caller's active sessions, newest first"""
    sessions = auth_service.get_user_sessions(current_user.id)
    return SessionListResponse(message="User sessions retrieved successfully", sessions=sessions)


@router.delete("/sessions/{token_id}", response_model=SessionRevokeResponse)
def revoke_session(
    token_id: int,
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Revoke one of the caller's sessions"""
    result = auth_service.revoke_session(current_user.id, token_id)
    return SessionRevokeResponse(**result)
