"""Custom exception classes for the application"""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorKind(str, Enum):
    """Category an API error is rendered as at the HTTP boundary"""
    VALIDATION = "validation"
    CONFLICT = "conflict"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# Authentication Errors
class AuthenticationError(BaseAPIException):
    """Base authentication error"""
    kind = ErrorKind.AUTHENTICATION

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, status_code=401)


class InvalidCredentialsError(AuthenticationError):
    """Invalid identifier or password"""
    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class TokenExpiredError(AuthenticationError):
    """JWT token has expired"""
    def __init__(self):
        super().__init__("Token has expired")


class TokenInvalidError(AuthenticationError):
    """JWT token is malformed or its signature does not verify"""
    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)


# Authorization Errors
class AuthorizationError(BaseAPIException):
    """Insufficient permissions"""
    kind = ErrorKind.AUTHORIZATION

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, status_code=403)


# Resource Errors
class ResourceNotFoundError(BaseAPIException):
    """Resource not found"""
    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found", status_code=404)


class ConflictError(BaseAPIException):
    """Unique constraint would be violated"""
    kind = ErrorKind.CONFLICT

    def __init__(self, message: str):
        super().__init__(message, status_code=409)


class UsernameTakenError(ConflictError):
    def __init__(self):
        super().__init__("Username already taken")


class EmailTakenError(ConflictError):
    def __init__(self):
        super().__init__("Email already registered")


# Validation Errors
class ValidationError(BaseAPIException):
    """Validation error"""
    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=400, details=details)


# Business Logic Errors
class BusinessLogicError(BaseAPIException):
    """Business logic error"""
    kind = ErrorKind.VALIDATION

    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class InvalidResetTokenError(BusinessLogicError):
    """Password reset token missing, unknown, used or expired"""
    def __init__(self, message: str = "Invalid or expired password reset token"):
        super().__init__(message)


# System Errors
class InternalError(BaseAPIException):
    """Unexpected failure"""
    def __init__(self, message: str = "An unexpected error occurred"):
        super().__init__(message, status_code=500)


class EmailDeliveryError(InternalError):
    """Outbound email could not be sent"""
    def __init__(self, message: str = "Email delivery failed"):
        super().__init__(message)
