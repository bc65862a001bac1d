import importlib.util
from pathlib import Path

from fastapi.testclient import TestClient

from voice_control.config import settings
from voice_control.core.security import is_password_hash, verify_password
from voice_control.main import create_app
from voice_control.models.user import User


def _load_script(name):
    path = Path(__file__).resolve().parent.parent / "scripts" / f"{name}.py"
    spec = importlib.util.spec_from_file_location(name, path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_startup_seeds_admin_account(db_session):
    with TestClient(create_app()) as client:
        response = client.post(
            "/api/auth/login",
            json={"username": settings.ADMIN_USERNAME, "password": settings.ADMIN_PASSWORD},
        )
        assert response.status_code == 200
        assert response.json()["user"]["role"] == "Admin"


def test_startup_does_not_duplicate_admin(db_session):
    with TestClient(create_app()):
        pass
    with TestClient(create_app()):
        pass
    assert db_session.query(User).filter(User.username == settings.ADMIN_USERNAME).count() == 1


def test_sweeper_follows_lifecycle(db_session, monkeypatch):
    monkeypatch.setattr(settings, "RUN_TOKEN_SWEEPER", True)
    app = create_app()
    with TestClient(app):
        assert app.state.token_registry.is_running()
    assert not app.state.token_registry.is_running()


def test_health_reports_readiness(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "OK"
    assert body["readiness"]["database"]["ok"] is True
    assert body["readiness"]["tokenRegistry"]["registered"] == 0
    assert body["readiness"]["tokenRegistry"]["running"] is False
    assert body["readiness"]["rateLimiter"]["trackedKeys"] == 1


def test_metrics_endpoint(client):
    client.get("/api/health")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "voiceagent_http_requests_total" in response.text
    assert "voiceagent_refresh_tokens_registered" in response.text


def test_security_headers_and_request_id(client):
    response = client.get("/api/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Request-ID"] == "req-123"

    generated = client.get("/api/health")
    assert generated.headers["X-Request-ID"]


def test_global_rate_limit(client, monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_PER_WINDOW", 3)
    statuses = [client.get("/api/health").status_code for _ in range(4)]
    assert statuses == [200, 200, 200, 429]


def test_rate_limited_response_keeps_cors_headers(client, monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_PER_WINDOW", 1)
    origin = settings.CORS_ORIGINS[0]
    client.get("/api/health", headers={"Origin": origin})
    response = client.get("/api/health", headers={"Origin": origin})
    assert response.status_code == 429
    assert response.headers["access-control-allow-origin"] == origin
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_migrate_passwords_hashes_plaintext_only(db_session, make_user):
    already_hashed = make_user("alice")
    legacy = User(
        username="legacy",
        email="legacy@example.com",
        name="Legacy User",
        password_hash="Plain1text",
    )
    db_session.add(legacy)
    db_session.commit()
    original_hash = already_hashed.password_hash

    migrate = _load_script("migrate_passwords")
    assert migrate.migrate_passwords(db_session) == 1

    db_session.refresh(legacy)
    db_session.refresh(already_hashed)
    assert is_password_hash(legacy.password_hash)
    assert verify_password("Plain1text", legacy.password_hash)
    assert already_hashed.password_hash == original_hash

    assert migrate.migrate_passwords(db_session) == 0
