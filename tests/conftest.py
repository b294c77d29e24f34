from __future__ import annotations

import dataclasses
from collections.abc import Generator

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from fcm_push.config import Settings, get_settings
from fcm_push.integrations.token_cache import reset_shared_caches
from fcm_push.notifications.fcm_service import FcmService
from tests.fakes import FakeHttpClient


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_key) -> str:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture(autouse=True)
def _isolate_token_caches() -> Generator[None, None, None]:
    reset_shared_caches()
    yield
    reset_shared_caches()


@pytest.fixture
def fcm_settings(private_key_pem) -> Settings:
    return dataclasses.replace(
        get_settings(),
        project_id="demo-project",
        client_email="push-sender@demo-project.iam.gserviceaccount.com",
        private_key=private_key_pem,
        credentials_file="",
        base_url="https://fcm.test/v1/projects",
        oauth_url="https://oauth.test/token",
        timeout=5,
        cache_token=True,
        max_auth_retries=2,
        auth_retry_delay=0,
        http_backoff=0,
        default_mode="data_only",
        auto_cleanup_tokens=True,
        cleanup_lock_seconds=10,
        batch_workers=1,
    )


@pytest.fixture
def make_service(fcm_settings):
    def _make(http: FakeHttpClient | None = None, **overrides) -> FcmService:
        settings = dataclasses.replace(fcm_settings, **overrides) if overrides else fcm_settings
        return FcmService(settings=settings, http_client=http or FakeHttpClient())

    return _make


@pytest.fixture
def test_ctx(tmp_path, monkeypatch, make_service) -> Generator[dict, None, None]:
    import fcm_push.models.db as db_module
    from fcm_push.models import tables  # noqa: F401
    from fcm_push.models.db import Base

    db_file = tmp_path / "test.db"
    test_url = f"sqlite:///{db_file}"
    engine = create_engine(test_url, connect_args={"check_same_thread": False}, future=True)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    monkeypatch.setattr(db_module, "engine", engine, raising=False)
    monkeypatch.setattr(db_module, "SessionLocal", TestingSessionLocal, raising=False)

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    from fcm_push.api import routes
    from fcm_push.app import app
    from fcm_push.notifications.cleanup import DatabaseTokenCleanup

    http = FakeHttpClient()
    service = make_service(http)
    service.signal.subscribe(DatabaseTokenCleanup(routes.device_repository))
    app.dependency_overrides[routes.get_fcm_service] = lambda: service

    with TestClient(app) as client:
        yield {
            "client": client,
            "session_local": TestingSessionLocal,
            "engine": engine,
            "service": service,
            "http": http,
            "repository": routes.device_repository,
        }

    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)
