"""Pydantic schemas for API validation"""

from voice_control.schemas.user import (
    UserCreate,
    UserUpdate,
    UserResponse,
    UserLogin,
    UserRole,
    LoginResponse,
    RefreshResponse,
    RefreshTokenRequest,
    LogoutRequest,
    LogoutAllResponse,
    ChangePasswordRequest,
)
from voice_control.schemas.token import AccessClaims, RefreshClaims
from voice_control.schemas.response import ErrorResponse, MessageResponse

__all__ = [
    "UserCreate", "UserUpdate", "UserResponse", "UserLogin", "UserRole",
    "LoginResponse", "RefreshResponse", "RefreshTokenRequest", "LogoutRequest",
    "LogoutAllResponse", "ChangePasswordRequest",
    "AccessClaims", "RefreshClaims",
    "ErrorResponse", "MessageResponse",
]
