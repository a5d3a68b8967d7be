"""Shared fixtures: a throwaway SQLite database, fakeredis and stubbed providers."""

import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="paperworth-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_TMP_DIR, "paperworth.db")
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["FIREBASE_PROJECT_ID"] = "paperworth-test"
os.environ["ADMIN_EMAILS"] = "admin@example.com"
os.environ["REDIS_HOST"] = ""
os.environ["GOOGLE_CREDENTIALS"] = ""
os.environ["GOOGLE_VISION_API_KEY"] = ""
os.environ["POINTS_PER_DOLLAR"] = "1.0"
os.environ["BASE_POINTS_PER_RECEIPT"] = "0"

import fakeredis  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from jose import JWTError, jwt  # noqa: E402

from paperworth.config import get_settings  # noqa: E402
from paperworth.data.base import Base, SessionLocal, engine  # noqa: E402
from paperworth.data.cache import RedisCache  # noqa: E402
from paperworth.domain.services.auth_service import TokenVerifier  # noqa: E402
from paperworth.integrations.firebase_tokens import FirebaseTokenError  # noqa: E402
from paperworth.integrations.vision_client import VisionError  # noqa: E402
from paperworth.main import app  # noqa: E402
from paperworth.presentation.dependencies import (  # noqa: E402
    get_cache,
    get_token_verifier,
    get_vision_client,
)


def firebase_token(uid: str, email: str) -> str:
    """A JWT-shaped stand-in for a Firebase ID token (not HS256, so not local)."""
    return jwt.encode({"sub": uid, "email": email}, "firebase-test", algorithm="HS512")


class StubFirebaseVerifier:
    """Accepts tokens made by ``firebase_token``; rejects anything else."""

    def verify(self, id_token, timeout=10.0):
        try:
            claims = jwt.decode(id_token, "firebase-test", algorithms=["HS512"])
        except JWTError as e:
            raise FirebaseTokenError(str(e))
        claims["uid"] = claims["sub"]
        return claims


class FakeVision:
    def __init__(self):
        self.text = ""
        self.error = None
        self.calls = 0

    def detect_text(self, image_bytes, timeout):
        self.calls += 1
        if self.error:
            raise VisionError(self.error)
        return self.text


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def redis_client():
    client = fakeredis.FakeRedis(decode_responses=True)
    client.flushall()
    yield client
    client.flushall()


@pytest.fixture
def cache(redis_client):
    return RedisCache(redis_client)


@pytest.fixture
def vision():
    return FakeVision()


@pytest.fixture
def client(cache, vision, settings):
    verifier = TokenVerifier(settings, StubFirebaseVerifier())
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_vision_client] = lambda: vision
    app.dependency_overrides[get_token_verifier] = lambda: verifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": "Bearer " + firebase_token("u1", "u1@example.com")}


@pytest.fixture
def admin_headers():
    return {"Authorization": "Bearer " + firebase_token("admin", "admin@example.com")}
