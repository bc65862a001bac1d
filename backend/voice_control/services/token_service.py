"""Access/refresh token issuance, verification and revocation."""

from __future__ import annotations

from datetime import timedelta
from typing import Optional, Tuple, Union
import logging

from sqlalchemy.orm import Session

from voice_control.config import settings
from voice_control.core.exceptions import RefreshTokenInvalidError, TokenInvalidError
from voice_control.core.security import decode_token, encode_token
from voice_control.models.user import User
from voice_control.schemas.token import (
    AccessClaims,
    RefreshClaims,
    parse_access_claims,
    parse_refresh_claims,
)
from voice_control.services.token_registry import RefreshTokenRegistry
from voice_control.services.user_service import user_service

logger = logging.getLogger(__name__)


class TokenService:
    """Issue and verify signed tokens; refresh tokens are tracked in the registry."""

    def __init__(
        self,
        registry: RefreshTokenRegistry,
        access_ttl: Optional[timedelta] = None,
        refresh_ttl: Optional[timedelta] = None,
        rotate_refresh_tokens: Optional[bool] = None,
    ) -> None:
        self.registry = registry
        self.access_ttl = access_ttl or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self.refresh_ttl = refresh_ttl or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
        self.rotate_refresh_tokens = (
            settings.ROTATE_REFRESH_TOKENS if rotate_refresh_tokens is None else rotate_refresh_tokens
        )

    def issue_access_token(self, user: User, expires_delta: Optional[timedelta] = None) -> str:
        return encode_token(
            {
                "sub": str(user.id),
                "username": user.username,
                "role": user.role,
                "email": user.email,
                "typ": "access",
            },
            expires_delta if expires_delta is not None else self.access_ttl,
        )

    def issue_refresh_token(self, user: User, expires_delta: Optional[timedelta] = None) -> str:
        """Sign a refresh token and register it before anyone can see it."""
        token = encode_token(
            {
                "sub": str(user.id),
                "username": user.username,
                "typ": "refresh",
            },
            expires_delta if expires_delta is not None else self.refresh_ttl,
        )
        self.registry.register(token)
        return token

    def issue_token_pair(self, user: User) -> Tuple[str, str]:
        return self.issue_access_token(user), self.issue_refresh_token(user)

    def verify(self, token: str) -> Union[AccessClaims, RefreshClaims]:
        """
        Verify signature, expiry, issuer and audience.

        Every failure collapses into TokenInvalidError. The registry is not
        consulted here; that is the refresh flow's job.
        """
        payload = decode_token(token)
        if payload is None:
            raise TokenInvalidError()
        claims = parse_access_claims(payload) or parse_refresh_claims(payload)
        if claims is None:
            logger.debug("Token rejected: unexpected claim shape")
            raise TokenInvalidError()
        return claims

    def verify_access_token(self, token: str) -> AccessClaims:
        claims = self.verify(token)
        if not isinstance(claims, AccessClaims):
            logger.debug("Token rejected: refresh token presented as bearer token")
            raise TokenInvalidError()
        return claims

    def verify_refresh_token(self, token: str) -> RefreshClaims:
        claims = self.verify(token)
        if not isinstance(claims, RefreshClaims):
            raise TokenInvalidError()
        return claims

    def refresh_access_token(self, db: Session, refresh_token: str) -> Tuple[User, str, Optional[str]]:
        """
        Exchange a registered refresh token for a new access token.

        Returns:
            (user, access_token, rotated refresh token or None)

        Raises:
            RefreshTokenInvalidError: for any failure, whatever the cause
        """
        try:
            claims = self.verify_refresh_token(refresh_token)
        except TokenInvalidError:
            raise RefreshTokenInvalidError()

        if not self.registry.is_valid(refresh_token):
            logger.info("Refresh rejected: token not registered (subject=%s)", claims.sub)
            raise RefreshTokenInvalidError()

        user = user_service.get_active_user_by_id(db, claims.sub)
        if not user:
            logger.info("Refresh rejected: subject %s missing or inactive", claims.sub)
            raise RefreshTokenInvalidError()

        access_token = self.issue_access_token(user)
        new_refresh_token = None
        if self.rotate_refresh_tokens:
            # Two concurrent refreshes with one token: only one may rotate it.
            if not self.registry.consume(refresh_token):
                raise RefreshTokenInvalidError()
            new_refresh_token = self.issue_refresh_token(user)

        return user, access_token, new_refresh_token

    def revoke_refresh_token(self, refresh_token: str) -> None:
        self.registry.revoke(refresh_token)

    def revoke_all_for_subject(self, subject_id: str) -> int:
        return self.registry.revoke_all_for_subject(subject_id)
