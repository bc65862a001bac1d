import os
import tempfile
from pathlib import Path

# Settings are read once at import time; point them at throwaway resources
# before anything from voice_control is imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DB_INIT_MODE"] = "create_all"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RUN_TOKEN_SWEEPER"] = "false"
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("LOG_FILE", str(Path(tempfile.gettempdir()) / "voice_control-tests.log"))

import pytest
from fastapi.testclient import TestClient

from voice_control.core.database import Base, SessionLocal, engine
from voice_control.main import create_app
from voice_control.schemas.user import UserCreate, UserRole
from voice_control.services.user_service import user_service

DEFAULT_PASSWORD = "Correct1pass"


@pytest.fixture
def db_session():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def app(db_session):
    return create_app()


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def token_service(app):
    return app.state.token_service


@pytest.fixture
def make_user(db_session):
    def _make(username="alice", password=DEFAULT_PASSWORD, role=UserRole.USER, email=None, name="Test User"):
        return user_service.create_user(
            db_session,
            UserCreate(
                username=username,
                password=password,
                name=name,
                email=email or f"{username}@example.com",
                role=role,
            ),
        )
    return _make


@pytest.fixture
def login(client):
    def _login(username="alice", password=DEFAULT_PASSWORD):
        response = client.post("/api/auth/login", json={"username": username, "password": password})
        assert response.status_code == 200, response.text
        return response.json()
    return _login
