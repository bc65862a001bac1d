"""User service - credential store, authentication and account management"""

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime, timezone
from voice_control.models.user import User, API_KEY_SLOTS, DEFAULT_FEATURES, DEFAULT_SETTINGS
from voice_control.schemas.user import UserCreate, UserUpdate, UserRole
from voice_control.core.security import get_password_hash, verify_password
from voice_control.core.exceptions import (
    DuplicateEmailError,
    DuplicateUsernameError,
    IncorrectPasswordError,
    InvalidCredentialsError,
    ResourceNotFoundError,
)
import logging

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserService:
    """Service for user management"""

    _dummy_hash: Optional[str] = None

    @classmethod
    def _timing_hash(cls) -> str:
        # Checked against when the username is unknown so both failure
        # paths pay for one bcrypt comparison.
        if cls._dummy_hash is None:
            cls._dummy_hash = get_password_hash("timing-equaliser-Pw1")
        return cls._dummy_hash

    @staticmethod
    def _raise_conflict(db: Session, username: str, email: str, exclude_id: Optional[str] = None) -> None:
        """Raise the specific duplicate error for username/email, checked in that order"""
        query = db.query(User)
        if exclude_id:
            query = query.filter(User.id != exclude_id)
        if username and query.filter(User.username == username).first():
            raise DuplicateUsernameError()
        if email and query.filter(User.email == email).first():
            raise DuplicateEmailError()

    @staticmethod
    def create_user(db: Session, user_data: UserCreate) -> User:
        """
        Create new user

        Uniqueness is enforced by the unique indexes on username and email;
        the pre-check only picks the error message. A concurrent insert that
        slips past it still surfaces as the same conflict.

        Args:
            db: Database session
            user_data: User creation data

        Returns:
            Created user
        """
        UserService._raise_conflict(db, user_data.username, user_data.email)

        settings = dict(DEFAULT_SETTINGS)
        if user_data.settings:
            settings.update(user_data.settings.model_dump(by_alias=True, exclude_none=True))
        features = dict(DEFAULT_FEATURES)
        if user_data.features:
            features.update(user_data.features.model_dump(by_alias=True, exclude_none=True))
        api_keys = {slot: "" for slot in API_KEY_SLOTS}
        if user_data.api_keys:
            api_keys.update(user_data.api_keys.model_dump(by_alias=True, exclude_none=True))

        user = User(
            username=user_data.username,
            email=user_data.email,
            name=user_data.name,
            password_hash=get_password_hash(user_data.password),
            role=user_data.role.value,
            is_active=True,
            settings=settings,
            features=features,
            api_keys=api_keys,
        )

        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            UserService._raise_conflict(db, user_data.username, user_data.email)
            raise
        db.refresh(user)

        logger.info(f"Created user: {user.username} (role: {user.role})")
        return user

    @staticmethod
    def authenticate_user(db: Session, username: str, password: str) -> User:
        """
        Authenticate an active user and stamp the login time

        Unknown users and wrong passwords raise the same error.

        Args:
            db: Database session
            username: Username
            password: Password

        Returns:
            Authenticated user
        """
        user = UserService.get_active_user_by_username(db, username)

        if not user:
            verify_password(password, UserService._timing_hash())
            logger.info(f"Login failed, no active user: {username}")
            raise InvalidCredentialsError()

        try:
            password_ok = verify_password(password, user.password_hash)
        except ValueError:
            logger.error(f"Stored password for {username} is not a bcrypt hash; run scripts/migrate_passwords.py")
            raise

        if not password_ok:
            logger.info(f"Login failed, bad password: {username}")
            raise InvalidCredentialsError()

        UserService.touch_last_login(db, user)
        logger.info(f"User authenticated: {username}")
        return user

    @staticmethod
    def touch_last_login(db: Session, user: User) -> User:
        user.last_login_at = _utcnow()
        user.updated_at = _utcnow()
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def get_active_user_by_id(db: Session, user_id: str) -> Optional[User]:
        """Get active user by ID"""
        return db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()

    @staticmethod
    def get_active_user_by_username(db: Session, username: str) -> Optional[User]:
        """Get active user by username"""
        return db.query(User).filter(User.username == username, User.is_active.is_(True)).first()

    @staticmethod
    def get_user_by_username(db: Session, username: str) -> Optional[User]:
        """Get user by username, active or not"""
        return db.query(User).filter(User.username == username).first()

    @staticmethod
    def require_active_user(db: Session, username: str) -> User:
        user = UserService.get_active_user_by_username(db, username)
        if not user:
            raise ResourceNotFoundError("User")
        return user

    @staticmethod
    def get_all_users(db: Session) -> List[User]:
        """All active users, oldest first"""
        return (
            db.query(User)
            .filter(User.is_active.is_(True))
            .order_by(User.created_at.asc(), User.username.asc())
            .all()
        )

    @staticmethod
    def update_user(db: Session, username: str, updates: UserUpdate) -> User:
        """
        Apply a partial update to an active user

        Nested documents (settings, features, apiKeys) are merged key by key.
        Callers are responsible for checking who may change the role.
        """
        user = UserService.require_active_user(db, username)

        if updates.email is not None and updates.email != user.email:
            UserService._raise_conflict(db, "", updates.email, exclude_id=user.id)
            user.email = updates.email
        if updates.name is not None:
            user.name = updates.name
        if updates.role is not None:
            user.role = updates.role.value
        if updates.settings is not None:
            user.settings = {**user.settings, **updates.settings.model_dump(by_alias=True, exclude_none=True)}
        if updates.features is not None:
            user.features = {**user.features, **updates.features.model_dump(by_alias=True, exclude_none=True)}
        if updates.api_keys is not None:
            user.api_keys = {**user.api_keys, **updates.api_keys.model_dump(by_alias=True, exclude_none=True)}
        user.updated_at = _utcnow()

        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise DuplicateEmailError()
        db.refresh(user)

        logger.info(f"Updated user: {username} fields={sorted(updates.model_fields_set)}")
        return user

    @staticmethod
    def deactivate_user(db: Session, username: str) -> User:
        """
        Soft delete: the record stays (and keeps its username/email) but
        disappears from every active lookup
        """
        user = UserService.get_user_by_username(db, username)
        if not user:
            raise ResourceNotFoundError("User")

        user.is_active = False
        user.updated_at = _utcnow()
        db.commit()
        db.refresh(user)

        logger.info(f"Deactivated user: {username}")
        return user

    @staticmethod
    def set_api_key(db: Session, username: str, key_type: str, api_key: str) -> User:
        user = UserService.require_active_user(db, username)
        user.api_keys = {**user.api_keys, key_type: api_key}
        user.updated_at = _utcnow()
        db.commit()
        db.refresh(user)
        logger.info(f"Updated {key_type} for user: {username}")
        return user

    @staticmethod
    def set_two_factor(db: Session, username: str, enabled: bool) -> User:
        user = UserService.require_active_user(db, username)
        user.settings = {**user.settings, "twoFactorEnabled": enabled}
        user.updated_at = _utcnow()
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def change_password(db: Session, username: str, current_password: str, new_password: str) -> User:
        """
        Replace the password after checking the current one

        Outstanding refresh tokens are left as they are.
        """
        user = UserService.require_active_user(db, username)

        if not verify_password(current_password, user.password_hash):
            logger.info(f"Password change rejected for {username}: current password mismatch")
            raise IncorrectPasswordError()

        user.password_hash = get_password_hash(new_password)
        user.updated_at = _utcnow()
        db.commit()
        db.refresh(user)

        logger.info(f"Password changed for user: {username}")
        return user

    @staticmethod
    def ensure_admin(db: Session, username: str, password: str, email: str) -> Optional[User]:
        """Create the bootstrap admin account if no user holds that username"""
        if UserService.get_user_by_username(db, username):
            return None
        return UserService.create_user(
            db,
            UserCreate(
                username=username,
                password=password,
                name="Administrator",
                email=email,
                role=UserRole.ADMIN,
            ),
        )


# Singleton instance
user_service = UserService()
