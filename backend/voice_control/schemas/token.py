"""Decoded token claim sets"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ValidationError

from voice_control.schemas.user import UserRole


class TokenClaims(BaseModel):
    """Registered claims shared by every token the API signs"""
    sub: str
    username: str
    iat: datetime
    exp: datetime
    iss: str
    aud: str
    jti: Optional[str] = None


class AccessClaims(TokenClaims):
    """Claims carried by a bearer access token"""
    typ: Literal["access"]
    role: UserRole
    email: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class RefreshClaims(TokenClaims):
    """Claims carried by a refresh token; never accepted as a bearer token"""
    typ: Literal["refresh"]


def parse_access_claims(payload: dict) -> Optional[AccessClaims]:
    try:
        return AccessClaims.model_validate(payload)
    except ValidationError:
        return None


def parse_refresh_claims(payload: dict) -> Optional[RefreshClaims]:
    try:
        return RefreshClaims.model_validate(payload)
    except ValidationError:
        return None
