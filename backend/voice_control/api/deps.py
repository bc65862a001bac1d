"""API dependencies - authentication and authorization guards"""

from fastapi import Depends, Request
from fastapi.security import APIKeyHeader
from typing import Optional

from voice_control.core.database import get_db  # noqa: F401  (re-exported for routers)
from voice_control.core.exceptions import (
    AccessDeniedError,
    AdminRequiredError,
    TokenMissingError,
)
from voice_control.schemas.token import AccessClaims
from voice_control.services.rate_limiter import InMemoryRateLimiter
from voice_control.services.token_service import TokenService

# Raw Authorization header; get_current_claims reports a missing token itself
security = APIKeyHeader(name="Authorization", auto_error=False)


def _token_from_header(authorization: Optional[str]) -> Optional[str]:
    # The token is the second word whatever the first one says, so
    # "Basic <x>" is a bad token rather than a missing one.
    parts = (authorization or "").split()
    return parts[1] if len(parts) > 1 else None


def get_token_service(request: Request) -> TokenService:
    """Token service built at startup and held on the application state"""
    return request.app.state.token_service


def get_rate_limiter(request: Request) -> InMemoryRateLimiter:
    return request.app.state.rate_limiter


def get_current_claims(
    request: Request,
    authorization: Optional[str] = Depends(security),
    token_service: TokenService = Depends(get_token_service),
) -> AccessClaims:
    """
    Authenticate the request from its bearer access token

    A missing header and a bad token are reported differently
    (TOKEN_MISSING vs TOKEN_INVALID); why a token is bad is not.

    Returns:
        Decoded access claims, also stored on request.state.claims

    Raises:
        TokenMissingError: No bearer token
        TokenInvalidError: Token failed verification
    """
    token = _token_from_header(authorization)
    if not token:
        raise TokenMissingError()

    claims = token_service.verify_access_token(token)
    request.state.claims = claims
    return claims


def require_admin(
    claims: AccessClaims = Depends(get_current_claims)
) -> AccessClaims:
    """
    Require the admin role

    Raises:
        AdminRequiredError: If caller is not admin
    """
    if not claims.is_admin:
        raise AdminRequiredError()
    return claims


def ensure_ownership_or_admin(claims: AccessClaims, username: str) -> None:
    """Admins may act on anyone; everyone else only on their own username"""
    if claims.is_admin or claims.username == username:
        return
    raise AccessDeniedError()


def require_ownership_or_admin(
    username: str,
    claims: AccessClaims = Depends(get_current_claims)
) -> AccessClaims:
    """
    Guard for /{username} routes

    Args:
        username: Route path parameter
        claims: Caller's access claims

    Raises:
        AccessDeniedError: Caller is neither the owner nor an admin
    """
    ensure_ownership_or_admin(claims, username)
    return claims
