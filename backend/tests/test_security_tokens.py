from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from jose import jwt

from voice_control.config import settings
from voice_control.core.exceptions import TokenInvalidError
from voice_control.schemas.token import AccessClaims, RefreshClaims
from voice_control.schemas.user import UserRole
from voice_control.services.token_registry import RefreshTokenRegistry
from voice_control.services.token_service import TokenService


def _user(**overrides):
    fields = {"id": "5f1c0ffee", "username": "alice", "role": "User", "email": "alice@example.com"}
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.fixture
def service():
    return TokenService(RefreshTokenRegistry())


def _forge(**claims):
    now = datetime.now(timezone.utc)
    payload = {
        "sub": "5f1c0ffee",
        "username": "alice",
        "role": "User",
        "email": "alice@example.com",
        "typ": "access",
        "iat": now,
        "exp": now + timedelta(minutes=5),
        "iss": settings.TOKEN_ISSUER,
        "aud": settings.TOKEN_AUDIENCE,
    }
    payload.update(claims)
    key = payload.pop("key", settings.SECRET_KEY)
    return jwt.encode(payload, key, algorithm=settings.ALGORITHM)


def test_access_token_round_trip(service):
    token = service.issue_access_token(_user(role="Admin"))
    claims = service.verify_access_token(token)
    assert isinstance(claims, AccessClaims)
    assert claims.sub == "5f1c0ffee"
    assert claims.username == "alice"
    assert claims.role == UserRole.ADMIN
    assert claims.email == "alice@example.com"
    assert claims.iss == "voice-agent-control"
    assert claims.aud == "voice-agent-users"


def test_access_token_expiry_uses_configured_ttl(service):
    token = service.issue_access_token(_user())
    claims = service.verify_access_token(token)
    lifetime = claims.exp - claims.iat
    assert lifetime == timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)


def test_refresh_token_is_registered_on_issue(service):
    token = service.issue_refresh_token(_user())
    assert service.registry.is_valid(token)
    claims = service.verify_refresh_token(token)
    assert isinstance(claims, RefreshClaims)
    assert claims.typ == "refresh"
    assert claims.sub == "5f1c0ffee"


def test_tokens_issued_together_are_distinct(service):
    first = service.issue_refresh_token(_user())
    second = service.issue_refresh_token(_user())
    assert first != second
    assert len(service.registry) == 2


def test_access_check_rejects_refresh_token(service):
    refresh = service.issue_refresh_token(_user())
    with pytest.raises(TokenInvalidError):
        service.verify_access_token(refresh)


def test_refresh_check_rejects_access_token(service):
    access = service.issue_access_token(_user())
    with pytest.raises(TokenInvalidError):
        service.verify_refresh_token(access)


def test_expired_token_fails_even_with_valid_signature(service):
    token = service.issue_access_token(_user(), expires_delta=timedelta(seconds=-1))
    with pytest.raises(TokenInvalidError):
        service.verify(token)


@pytest.mark.parametrize(
    "claims",
    [
        {"key": "some-other-secret-key-with-plenty-of-length"},
        {"iss": "someone-else"},
        {"aud": "other-audience"},
        {"typ": "id"},
        {"role": "Superuser"},
    ],
)
def test_bad_tokens_collapse_to_one_error(service, claims):
    with pytest.raises(TokenInvalidError) as exc_info:
        service.verify(_forge(**claims))
    assert exc_info.value.code == "TOKEN_INVALID"


def test_forged_control_token_verifies(service):
    # Sanity check for the parametrized cases above.
    assert service.verify(_forge()).username == "alice"


@pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
def test_malformed_tokens_fail(service, token):
    with pytest.raises(TokenInvalidError):
        service.verify(token)
