"""Security utilities - JWT signing/verification, password hashing"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError
import bcrypt
import logging
import secrets
from voice_control.config import settings

logger = logging.getLogger(__name__)

# bcrypt only reads the first 72 bytes of a secret
BCRYPT_MAX_PASSWORD_BYTES = 72
_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash

    Args:
        plain_password: Plain text password
        hashed_password: Hashed password

    Returns:
        bool: True if password matches

    Raises:
        ValueError: If hashed_password is not a bcrypt hash
    """
    secret = plain_password.encode('utf-8')
    if len(secret) > BCRYPT_MAX_PASSWORD_BYTES:
        # get_password_hash never accepts such input, so it cannot match.
        return False
    return bcrypt.checkpw(secret, hashed_password.encode('utf-8'))


def get_password_hash(password: str, rounds: Optional[int] = None) -> str:
    """
    Hash a password using bcrypt

    Args:
        password: Plain text password
        rounds: bcrypt cost factor, defaults to settings.BCRYPT_ROUNDS

    Returns:
        str: Hashed password
    """
    secret = password.encode('utf-8')
    if len(secret) > BCRYPT_MAX_PASSWORD_BYTES:
        raise ValueError(f"Password cannot exceed {BCRYPT_MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(
        secret,
        bcrypt.gensalt(rounds=rounds or settings.BCRYPT_ROUNDS)
    ).decode('utf-8')


def is_password_hash(value: Optional[str]) -> bool:
    """True when value looks like a stored bcrypt hash rather than plaintext"""
    return bool(value) and value.startswith(_BCRYPT_PREFIXES) and len(value) == 60


def encode_token(data: Dict[str, Any], expires_delta: timedelta) -> str:
    """
    Sign a JWT carrying data plus the standard registered claims

    Args:
        data: Private claims (sub, username, typ, ...)
        expires_delta: Lifetime from now; expiry is absolute wall-clock time

    Returns:
        str: Encoded JWT token
    """
    now = datetime.now(timezone.utc)
    to_encode = data.copy()
    to_encode.update({
        "iat": now,
        "exp": now + expires_delta,
        "iss": settings.TOKEN_ISSUER,
        "aud": settings.TOKEN_AUDIENCE,
        "jti": secrets.token_urlsafe(16),
    })
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and fully verify a JWT (signature, expiry, issuer, audience)

    Callers only learn valid/invalid; the reason is logged, not returned.

    Args:
        token: JWT token string

    Returns:
        Optional[Dict]: Decoded claims or None if invalid
    """
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            audience=settings.TOKEN_AUDIENCE,
            issuer=settings.TOKEN_ISSUER,
        )
    except ExpiredSignatureError:
        logger.debug("Token rejected: expired")
    except JWTClaimsError as exc:
        logger.debug("Token rejected: claims mismatch (%s)", exc)
    except JWTError as exc:
        logger.debug("Token rejected: %s", exc)
    return None


def decode_token_unverified(token: str) -> Optional[Dict[str, Any]]:
    """Read claims without checking signature or expiry; None if undecodable"""
    try:
        return jwt.get_unverified_claims(token)
    except JWTError:
        return None
