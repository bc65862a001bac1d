"""User schemas"""

import re
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import (
    AliasChoices,
    AliasGenerator,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


USERNAME_PATTERN = r'^[A-Za-z0-9]+$'
NAME_PATTERN = r"^[a-zA-Z\s\-']+$"
API_KEY_PATTERN = re.compile(r'^[A-Za-z0-9\-_.]+$')


class UserRole(str, Enum):
    """User role enumeration"""
    ADMIN = "Admin"
    USER = "User"


class ApiKeyType(str, Enum):
    """Named external-service key slots on a user record"""
    VAPI = "vapi_key"
    OPENAI = "openai_key"
    ELEVENLABS = "elevenlabs_key"
    DEEPGRAM = "deepgram_key"


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire; both accepted on input"""

    model_config = ConfigDict(
        alias_generator=AliasGenerator(
            validation_alias=lambda name: AliasChoices(name, to_camel(name)),
            serialization_alias=to_camel,
        ),
        from_attributes=True,
    )


class RequestModel(CamelModel):
    model_config = ConfigDict(str_strip_whitespace=True)


def check_password_strength(value: str) -> str:
    """At least one lowercase, one uppercase letter and one digit; bcrypt's 72-byte ceiling"""
    if len(value.encode('utf-8')) > 72:
        raise ValueError('Password cannot exceed 72 bytes')
    if not (re.search(r'[a-z]', value) and re.search(r'[A-Z]', value) and re.search(r'\d', value)):
        raise ValueError(
            'Password must contain at least one lowercase letter, one uppercase letter, and one number'
        )
    return value


def check_api_key(value: Optional[str], allow_empty: bool) -> Optional[str]:
    if value is None or (allow_empty and value == ""):
        return value
    if not 10 <= len(value) <= 500:
        raise ValueError('API key must be between 10 and 500 characters long')
    if not API_KEY_PATTERN.match(value):
        raise ValueError('API key contains invalid characters')
    return value


class UserSettings(RequestModel):
    two_factor_enabled: Optional[bool] = None
    notifications_enabled: Optional[bool] = None


class UserFeatures(RequestModel):
    sms_campaigns: Optional[bool] = None
    chatbot_transcripts: Optional[bool] = None
    ai_video_generation: Optional[bool] = None


class ApiKeys(RequestModel):
    """Opaque provider keys; empty string clears a slot"""
    vapi_key: Optional[str] = Field(None, validation_alias="vapi_key", serialization_alias="vapi_key")
    openai_key: Optional[str] = Field(None, validation_alias="openai_key", serialization_alias="openai_key")
    elevenlabs_key: Optional[str] = Field(None, validation_alias="elevenlabs_key", serialization_alias="elevenlabs_key")
    deepgram_key: Optional[str] = Field(None, validation_alias="deepgram_key", serialization_alias="deepgram_key")

    @field_validator('vapi_key', 'openai_key', 'elevenlabs_key', 'deepgram_key')
    @classmethod
    def validate_key(cls, v):
        return check_api_key(v, allow_empty=True)


class UserLogin(RequestModel):
    """User login schema"""
    username: str = Field(..., min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    password: str = Field(..., min_length=1)


class UserCreate(RequestModel):
    """User creation schema"""
    username: str = Field(..., min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=100, pattern=NAME_PATTERN)
    email: EmailStr
    role: UserRole = Field(
        UserRole.USER,
        validation_alias=AliasChoices("role", "userType"),
        serialization_alias="role",
    )
    features: Optional[UserFeatures] = None
    settings: Optional[UserSettings] = None
    api_keys: Optional[ApiKeys] = None

    @field_validator('password')
    @classmethod
    def password_strength(cls, v):
        return check_password_strength(v)


class UserUpdate(RequestModel):
    """Partial user update; at least one field"""
    name: Optional[str] = Field(None, min_length=1, max_length=100, pattern=NAME_PATTERN)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = Field(
        None,
        validation_alias=AliasChoices("role", "userType"),
        serialization_alias="role",
    )
    features: Optional[UserFeatures] = None
    settings: Optional[UserSettings] = None
    api_keys: Optional[ApiKeys] = None

    @model_validator(mode='after')
    def at_least_one_field(self):
        if not self.model_fields_set:
            raise ValueError('At least one field must be provided')
        return self


class ApiKeyUpdate(RequestModel):
    key_type: ApiKeyType
    api_key: str

    @field_validator('api_key')
    @classmethod
    def validate_key(cls, v):
        return check_api_key(v, allow_empty=False)


class TwoFactorUpdate(RequestModel):
    enabled: bool


class ChangePasswordRequest(RequestModel):
    username: str = Field(..., min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)

    @field_validator('new_password')
    @classmethod
    def password_strength(cls, v):
        return check_password_strength(v)


class RefreshTokenRequest(RequestModel):
    refresh_token: Optional[str] = None


class LogoutRequest(RequestModel):
    refresh_token: Optional[str] = None


class UserResponse(CamelModel):
    """User as returned to clients; the password hash is never part of it"""
    id: str
    username: str
    email: str
    name: str
    role: UserRole
    is_active: bool
    settings: Dict[str, bool]
    features: Dict[str, bool]
    api_keys: Dict[str, str]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None


class LoginResponse(CamelModel):
    message: str
    user: UserResponse
    access_token: str
    refresh_token: str


class RefreshResponse(CamelModel):
    message: str
    access_token: str
    user: UserResponse
    refresh_token: Optional[str] = None


class LogoutAllResponse(CamelModel):
    message: str
    revoked_tokens: int


class ApiKeyResponse(CamelModel):
    api_key: str


class TwoFactorStatus(CamelModel):
    enabled: bool
