"""User management routes"""

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.orm import Session
from typing import Annotated, List

from voice_control.api.deps import (
    get_db,
    get_token_service,
    require_admin,
    require_ownership_or_admin,
)
from voice_control.core.exceptions import AdminRequiredError
from voice_control.schemas.response import ErrorResponse, MessageResponse
from voice_control.schemas.token import AccessClaims
from voice_control.schemas.user import (
    USERNAME_PATTERN,
    ApiKeyResponse,
    ApiKeyType,
    ApiKeyUpdate,
    TwoFactorStatus,
    TwoFactorUpdate,
    UserCreate,
    UserResponse,
    UserUpdate,
)
from voice_control.services.token_service import TokenService
from voice_control.services.user_service import user_service

router = APIRouter()

UsernamePath = Annotated[str, Path(min_length=3, max_length=30, pattern=USERNAME_PATTERN)]


@router.get("", response_model=List[UserResponse])
def get_all_users(
    current_user: AccessClaims = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """All active users (admin only)"""
    return [UserResponse.model_validate(user) for user in user_service.get_all_users(db)]


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
def create_user(
    user_data: UserCreate,
    current_user: AccessClaims = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """
    Create new user (admin only)

    Returns 409 when the username or email is already taken by any
    record, including deactivated ones.
    """
    user = user_service.create_user(db, user_data)
    return UserResponse.model_validate(user)


@router.get("/{username}", response_model=UserResponse)
def get_user(
    username: UsernamePath,
    current_user: AccessClaims = Depends(require_ownership_or_admin),
    db: Session = Depends(get_db)
):
    user = user_service.require_active_user(db, username)
    return UserResponse.model_validate(user)


@router.put("/{username}", response_model=UserResponse)
def update_user(
    updates: UserUpdate,
    username: UsernamePath,
    current_user: AccessClaims = Depends(require_ownership_or_admin),
    db: Session = Depends(get_db)
):
    """
    Partially update a user

    Only admins may change a role, including their own.
    """
    if updates.role is not None and not current_user.is_admin:
        raise AdminRequiredError()
    user = user_service.update_user(db, username, updates)
    return UserResponse.model_validate(user)


@router.delete("/{username}", response_model=MessageResponse, status_code=status.HTTP_200_OK)
def delete_user(
    username: UsernamePath,
    current_user: AccessClaims = Depends(require_admin),
    db: Session = Depends(get_db),
    token_service: TokenService = Depends(get_token_service),
):
    """
    Deactivate a user (admin only) and revoke their refresh tokens
    """
    user = user_service.deactivate_user(db, username)
    token_service.revoke_all_for_subject(user.id)
    return {"message": "User deleted successfully"}


@router.put("/{username}/api-key", response_model=MessageResponse, status_code=status.HTTP_200_OK)
def update_api_key(
    body: ApiKeyUpdate,
    username: UsernamePath,
    current_user: AccessClaims = Depends(require_ownership_or_admin),
    db: Session = Depends(get_db)
):
    user_service.set_api_key(db, username, body.key_type.value, body.api_key)
    return {"message": "API key updated successfully"}


@router.get("/{username}/api-key/{key_type}", response_model=ApiKeyResponse)
def get_api_key(
    key_type: ApiKeyType,
    username: UsernamePath,
    current_user: AccessClaims = Depends(require_ownership_or_admin),
    db: Session = Depends(get_db)
):
    user = user_service.require_active_user(db, username)
    return ApiKeyResponse(api_key=(user.api_keys or {}).get(key_type.value, ""))


@router.put("/{username}/2fa", response_model=MessageResponse, status_code=status.HTTP_200_OK)
def update_two_factor(
    body: TwoFactorUpdate,
    username: UsernamePath,
    current_user: AccessClaims = Depends(require_ownership_or_admin),
    db: Session = Depends(get_db)
):
    user_service.set_two_factor(db, username, body.enabled)
    return {"message": "2FA status updated successfully"}


@router.get("/{username}/2fa", response_model=TwoFactorStatus)
def get_two_factor(
    username: UsernamePath,
    current_user: AccessClaims = Depends(require_ownership_or_admin),
    db: Session = Depends(get_db)
):
    user = user_service.require_active_user(db, username)
    return TwoFactorStatus(enabled=bool((user.settings or {}).get("twoFactorEnabled", False)))


@router.put("/{username}/last-login", response_model=MessageResponse, status_code=status.HTTP_200_OK)
def update_last_login(
    username: UsernamePath,
    current_user: AccessClaims = Depends(require_ownership_or_admin),
    db: Session = Depends(get_db)
):
    user = user_service.require_active_user(db, username)
    user_service.touch_last_login(db, user)
    return {"message": "Last login updated successfully"}
