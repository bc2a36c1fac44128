from __future__ import annotations

import time
import uuid
from collections.abc import Generator
from pathlib import Path
from urllib.parse import urlsplit

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from portal import audit
from portal.core.config import get_settings
from portal.core.database import Base, get_db
from portal.core.dependencies import get_blob_store, get_credential_verifier
from portal.main import app
from portal.platform.security.verifier import JwtCredentialVerifier
from portal.platform.storage.blobs import LocalBlobStore


SECRET = "test-secret"
PDF_BYTES = b"%PDF-1.4\n%%EOF\n"


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clear_state() -> Generator[None, None, None]:
    audit.audit_entries.clear()
    get_settings.cache_clear()
    yield
    audit.audit_entries.clear()
    get_settings.cache_clear()


@pytest.fixture()
def blob_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path, base_url="http://testserver", signing_secret="files-secret")


@pytest.fixture()
def client(db_session: Session, blob_store: LocalBlobStore) -> Generator[TestClient, None, None]:
    verifier = JwtCredentialVerifier(SECRET)

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_credential_verifier] = lambda: verifier
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _auth(sub: str) -> dict[str, str]:
    now = int(time.time())
    token = jwt.encode(
        {"sub": sub, "jti": uuid.uuid4().hex, "iat": now, "exp": now + 3600},
        SECRET,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


def test_uploaded_proposal_is_downloadable_through_signed_link(client: TestClient) -> None:
    created = client.post(
        "/api/proposals",
        json={"title": "Retainer", "description": "Monthly", "amount": 1200},
        headers=_auth("client-a"),
    )
    proposal_id = created.json()["data"]["id"]

    upload = client.post(
        f"/api/proposals/upload/{proposal_id}",
        files={"file": ("retainer.pdf", PDF_BYTES, "application/pdf")},
        headers=_auth("client-a"),
    )
    assert upload.status_code == 200

    link = client.get(f"/api/proposals/download/{proposal_id}", headers=_auth("client-a")).json()["data"]
    assert link["expires_in"] == 900
    parts = urlsplit(link["download_url"])

    download = client.get(f"{parts.path}?{parts.query}")
    assert download.status_code == 200
    assert download.content == PDF_BYTES
    assert download.headers["content-type"] == "application/pdf"


def test_file_route_rejects_bad_token(client: TestClient, blob_store: LocalBlobStore) -> None:
    blob_store.put("proposals/client-a/p/x.pdf", PDF_BYTES, "application/pdf")

    response = client.get("/api/files/proposals/client-a/p/x.pdf?token=forged")

    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"


def test_file_route_requires_token(client: TestClient) -> None:
    response = client.get("/api/files/proposals/client-a/p/x.pdf")

    assert response.status_code == 400
    assert response.json()["error"] == "validation_failed"
