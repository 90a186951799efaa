"""
Shared pytest fixtures for the Vitrine API tests.

Provides:
- Environment required by the settings module (set before any app import)
- In-memory store, recording notifier and temporary local storage
- A TestClient bound to an app wired with those collaborators
- Real PNG / MP4 payloads and a text payload for sniffing
"""

import os
import tempfile

os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")
os.environ.setdefault("MONGO_DB", "vitrine_test")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-vitrine")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.setdefault("LOG_FILE", os.path.join(tempfile.gettempdir(), "vitrine-test.log"))

import pytest
from fastapi.testclient import TestClient

from app.config.settings import settings
from app.dependencies import build_services
from app.main import create_app
from fakes import FakeStore, RecordingNotifier
from helpers import MP4_BYTES, PNG_BYTES, TEXT_BYTES
from infrastructure.external.file_storage import LocalFileStorage


# ============================================================================
# Payload Fixtures
# ============================================================================

@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def mp4_bytes() -> bytes:
    return MP4_BYTES


@pytest.fixture
def text_bytes() -> bytes:
    return TEXT_BYTES


# ============================================================================
# Collaborator Fixtures
# ============================================================================

@pytest.fixture
def upload_dir(tmp_path):
    directory = tmp_path / "uploads"
    directory.mkdir()
    return directory


@pytest.fixture
def storage(upload_dir) -> LocalFileStorage:
    return LocalFileStorage(str(upload_dir))


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def app_settings():
    return settings


@pytest.fixture
def container(app_settings, store, storage, notifier):
    """Service container for tests that call services directly."""
    return build_services(app_settings, store, storage, notifier)


# ============================================================================
# API Client Fixtures
# ============================================================================

@pytest.fixture
def app(app_settings, store, storage, notifier):
    return create_app(
        settings=app_settings,
        store=store,
        storage=storage,
        notifier=notifier,
        schedule_sweeps=False,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def drain(client):
    """Wait for every fire-and-forget task the app has spawned."""

    def _drain():
        client.portal.call(client.app.state.services.runner.drain)

    return _drain


@pytest.fixture
def register(client, png_bytes):
    """Register an account through the API and return the response."""

    def _register(name="Ana", email="ana@x.com", password="secret1234", avatar=None, bio=None):
        data = {"name": name, "email": email, "password": password}
        if bio is not None:
            data["bio"] = bio
        files = {"avatar": avatar or ("avatar.png", png_bytes, "image/png")}
        return client.post("/v1/auth/register", data=data, files=files)

    return _register


@pytest.fixture
def verified_account(client, register, notifier, drain):
    """Register, verify and return ``(token, user)`` for a fresh account."""

    def _verified(email="ana@x.com", name="Ana"):
        response = register(name=name, email=email)
        assert response.status_code == 201, response.text
        drain()
        _, _, token = notifier.last("verification")
        verified = client.get(f"/v1/auth/verify/{token}")
        assert verified.status_code == 200, verified.text
        body = verified.json()
        return body["token"], body["user"]

    return _verified
