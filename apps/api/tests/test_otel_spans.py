from __future__ import annotations

import time
import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from portal.core.config import get_settings
from portal.core.database import Base, get_db
from portal.core.dependencies import get_credential_verifier
from portal.main import app
from portal.otel import setup_inmemory_otel
from portal.platform.security.verifier import JwtCredentialVerifier


SECRET = "test-secret"


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
def setup_env() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def span_exporter() -> InMemorySpanExporter:
    exporter = setup_inmemory_otel("portal-api")
    exporter.clear()
    return exporter


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    verifier = JwtCredentialVerifier(SECRET)

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_credential_verifier] = lambda: verifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _auth(sub: str) -> dict[str, str]:
    now = int(time.time())
    token = jwt.encode({"sub": sub, "jti": uuid.uuid4().hex, "iat": now, "exp": now + 3600}, SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


def test_resource_operations_emit_spans(client: TestClient, span_exporter: InMemorySpanExporter) -> None:
    created = client.post(
        "/api/support",
        json={"subject": "Span", "message": "Trace me"},
        headers={**_auth("client-a"), "X-Correlation-Id": "corr-span-1"},
    )
    assert created.status_code == 201
    ticket_id = created.json()["data"]["id"]

    listed = client.get("/api/support", headers=_auth("client-a"))
    assert listed.status_code == 200
    deleted = client.delete(f"/api/support/{ticket_id}", headers=_auth("client-a"))
    assert deleted.status_code == 200

    spans = span_exporter.get_finished_spans()
    names = {span.name for span in spans}
    assert {"portal.resource.create", "portal.resource.list", "portal.resource.delete"} <= names

    create_span = next(span for span in spans if span.name == "portal.resource.create")
    assert create_span.attributes is not None
    assert create_span.attributes.get("portal.resource_type") == "support_ticket"

    server_spans = [span for span in spans if span.attributes and span.attributes.get("correlation_id") == "corr-span-1"]
    assert server_spans
