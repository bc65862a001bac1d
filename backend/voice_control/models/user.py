"""User model"""

import uuid

from sqlalchemy import Column, String, Boolean, DateTime, JSON, Index
from sqlalchemy.sql import func
from voice_control.core.database import Base


API_KEY_SLOTS = ("vapi_key", "openai_key", "elevenlabs_key", "deepgram_key")

DEFAULT_SETTINGS = {"twoFactorEnabled": False, "notificationsEnabled": True}
DEFAULT_FEATURES = {"smsCampaigns": False, "chatbotTranscripts": False, "aiVideoGeneration": False}


def _new_user_id() -> str:
    return uuid.uuid4().hex


class User(Base):
    """User document: credentials, role and dashboard preferences"""

    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=_new_user_id)
    username = Column(String(30), nullable=False)
    email = Column(String(254), nullable=False)
    name = Column(String(100), nullable=False, default="")
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), default="User", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    settings = Column(JSON, nullable=False, default=lambda: dict(DEFAULT_SETTINGS))
    features = Column(JSON, nullable=False, default=lambda: dict(DEFAULT_FEATURES))
    api_keys = Column(JSON, nullable=False, default=lambda: {slot: "" for slot in API_KEY_SLOTS})
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    last_login_at = Column(DateTime(timezone=True))

    # Uniqueness spans active and soft-deleted records alike.
    __table_args__ = (
        Index("uq_users_username", "username", unique=True),
        Index("uq_users_email", "email", unique=True),
        Index("idx_users_active", "is_active"),
    )

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role}')>"
