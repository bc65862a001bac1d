"""Custom exception classes for the application"""

from typing import Optional, Dict, Any


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


# Authentication Errors
class AuthenticationError(BaseAPIException):
    """Base authentication error"""
    def __init__(self, message: str = "Authentication failed", code: Optional[str] = None):
        super().__init__(message, status_code=401, code=code)


class InvalidCredentialsError(AuthenticationError):
    """Unknown user or wrong password; deliberately indistinguishable"""
    def __init__(self):
        super().__init__("Invalid credentials")


class IncorrectPasswordError(AuthenticationError):
    """Current password did not match during a password change"""
    def __init__(self):
        super().__init__("Current password is incorrect")


class TokenMissingError(AuthenticationError):
    """No bearer token on a protected request"""
    def __init__(self):
        super().__init__("Access token required", code="TOKEN_MISSING")


class TokenInvalidError(BaseAPIException):
    """Bearer token failed verification (bad signature, expired, wrong claims)"""
    def __init__(self):
        super().__init__("Invalid or expired token", status_code=403, code="TOKEN_INVALID")


class RefreshTokenMissingError(AuthenticationError):
    """Refresh request without a refresh token"""
    def __init__(self):
        super().__init__("Refresh token required", code="REFRESH_TOKEN_MISSING")


class RefreshTokenInvalidError(AuthenticationError):
    """Refresh token unverifiable, revoked, or bound to an inactive user"""
    def __init__(self):
        super().__init__("Invalid or expired refresh token", code="REFRESH_TOKEN_INVALID")


# Authorization Errors
class AuthorizationError(BaseAPIException):
    """Insufficient permissions"""
    def __init__(self, message: str = "Insufficient permissions", code: Optional[str] = None):
        super().__init__(message, status_code=403, code=code)


class AdminRequiredError(AuthorizationError):
    def __init__(self):
        super().__init__("Admin access required", code="ADMIN_REQUIRED")


class AccessDeniedError(AuthorizationError):
    def __init__(self):
        super().__init__("Access denied. You can only access your own data.", code="ACCESS_DENIED")


# Resource Errors
class ResourceNotFoundError(BaseAPIException):
    """Resource not found"""
    def __init__(self, resource: str):
        super().__init__(f"{resource} not found", status_code=404)


class ResourceAlreadyExistsError(BaseAPIException):
    """Resource already exists"""
    def __init__(self, resource: str):
        super().__init__(f"{resource} already exists", status_code=409)


class DuplicateUsernameError(ResourceAlreadyExistsError):
    def __init__(self):
        super().__init__("Username")


class DuplicateEmailError(ResourceAlreadyExistsError):
    def __init__(self):
        super().__init__("Email")


# System Errors
class RateLimitExceededError(BaseAPIException):
    """Rate limit exceeded"""
    def __init__(self, message: str = "Rate limit exceeded. Please try again later.", retry_after: Optional[int] = None):
        details = {"retryAfter": retry_after} if retry_after is not None else None
        super().__init__(message, status_code=429, details=details)
