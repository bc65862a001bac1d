"""Authentication routes"""

from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.orm import Session
from typing import Optional
import logging

from voice_control.api.deps import (
    ensure_ownership_or_admin,
    get_current_claims,
    get_db,
    get_rate_limiter,
    get_token_service,
)
from voice_control.core.exceptions import RefreshTokenMissingError, ResourceNotFoundError
from voice_control.schemas.response import ErrorResponse, MessageResponse
from voice_control.schemas.token import AccessClaims
from voice_control.schemas.user import (
    ChangePasswordRequest,
    LoginResponse,
    LogoutAllResponse,
    LogoutRequest,
    RefreshResponse,
    RefreshTokenRequest,
    UserLogin,
    UserResponse,
)
from voice_control.services.rate_limiter import (
    InMemoryRateLimiter,
    enforce_login_limits,
    enforce_refresh_limits,
)
from voice_control.services.token_service import TokenService
from voice_control.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/login",
    response_model=LoginResponse,
    status_code=status.HTTP_200_OK,
    responses={401: {"model": ErrorResponse}},
)
def login(
    credentials: UserLogin,
    request: Request,
    db: Session = Depends(get_db),
    token_service: TokenService = Depends(get_token_service),
    limiter: InMemoryRateLimiter = Depends(get_rate_limiter),
):
    """
    Login endpoint - authenticate user and return a token pair

    Unknown usernames and wrong passwords get the same 401.
    """
    enforce_login_limits(limiter, request, credentials.username)

    user = user_service.authenticate_user(db, credentials.username, credentials.password)
    access_token, refresh_token = token_service.issue_token_pair(user)

    return LoginResponse(
        message="Login successful",
        user=UserResponse.model_validate(user),
        access_token=access_token,
        refresh_token=refresh_token,
    )


@router.post(
    "/refresh",
    response_model=RefreshResponse,
    response_model_exclude_unset=True,
    responses={401: {"model": ErrorResponse}},
)
def refresh_token(
    request: Request,
    body: Optional[RefreshTokenRequest] = None,
    db: Session = Depends(get_db),
    token_service: TokenService = Depends(get_token_service),
    limiter: InMemoryRateLimiter = Depends(get_rate_limiter),
):
    """
    Exchange a registered refresh token for a new access token

    The refresh token is returned unchanged unless rotation is enabled,
    in which case the new one comes back as refreshToken.
    """
    enforce_refresh_limits(limiter, request)

    if body is None or not body.refresh_token:
        raise RefreshTokenMissingError()

    user, access_token, rotated = token_service.refresh_access_token(db, body.refresh_token)

    response = RefreshResponse(
        message="Token refreshed successfully",
        access_token=access_token,
        user=UserResponse.model_validate(user),
    )
    if rotated:
        response.refresh_token = rotated
    return response


@router.post("/logout", response_model=MessageResponse, status_code=status.HTTP_200_OK)
def logout(
    body: Optional[LogoutRequest] = None,
    claims: AccessClaims = Depends(get_current_claims),
    token_service: TokenService = Depends(get_token_service),
):
    """Revoke one refresh token; succeeds whether or not it was still registered"""
    if body and body.refresh_token:
        token_service.revoke_refresh_token(body.refresh_token)
        logger.info(f"Logout: refresh token revoked for {claims.username}")

    return {"message": "Logged out successfully"}


@router.post("/logout-all", response_model=LogoutAllResponse)
def logout_all(
    claims: AccessClaims = Depends(get_current_claims),
    token_service: TokenService = Depends(get_token_service),
):
    """Revoke every refresh token issued to the caller"""
    revoked = token_service.revoke_all_for_subject(claims.sub)
    return LogoutAllResponse(
        message="Logged out from all devices successfully",
        revoked_tokens=revoked,
    )


@router.get("/me", response_model=UserResponse, responses={404: {"model": ErrorResponse}})
def get_current_user_info(
    claims: AccessClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    """Caller's own user record"""
    user = user_service.get_active_user_by_id(db, claims.sub)
    if not user:
        raise ResourceNotFoundError("User")
    return UserResponse.model_validate(user)


@router.put("/change-password", response_model=MessageResponse, status_code=status.HTTP_200_OK)
def change_password(
    body: ChangePasswordRequest,
    claims: AccessClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    """
    Change a password after verifying the current one

    Users may only change their own; admins still need the current password.
    """
    ensure_ownership_or_admin(claims, body.username)
    user_service.change_password(db, body.username, body.current_password, body.new_password)
    return {"message": "Password changed successfully"}
