from __future__ import annotations

import time
import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from portal import audit
from portal.core.config import get_settings
from portal.core.database import Base, get_db
from portal.core.dependencies import get_credential_verifier
from portal.main import app
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
def clear_state() -> Generator[None, None, None]:
    audit.audit_entries.clear()
    get_settings.cache_clear()
    yield
    audit.audit_entries.clear()
    get_settings.cache_clear()


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
    token = jwt.encode(
        {"sub": sub, "jti": uuid.uuid4().hex, "iat": now, "exp": now + 3600},
        SECRET,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


def _create_ticket(client: TestClient, sub: str, **overrides: object) -> dict:
    payload = {"subject": "Login issue", "message": "I cannot sign in"}
    payload.update(overrides)
    response = client.post("/api/support", json=payload, headers=_auth(sub))
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_create_ticket_defaults(client: TestClient) -> None:
    ticket = _create_ticket(client, "client-a", status="closed")

    assert ticket["status"] == "open"
    assert ticket["priority"] == "medium"
    assert ticket["replies"] == []
    assert ticket["owner_id"] == "client-a"


def test_create_ticket_priority(client: TestClient) -> None:
    urgent = _create_ticket(client, "client-a", priority="urgent")
    assert urgent["priority"] == "urgent"

    invalid = client.post(
        "/api/support",
        json={"subject": "Billing", "message": "Charged twice", "priority": "critical"},
        headers=_auth("client-a"),
    )
    assert invalid.status_code == 400
    assert invalid.json()["error"] == "validation_failed"


def test_replies_are_appended_in_order(client: TestClient) -> None:
    ticket = _create_ticket(client, "client-a")

    for text in ("first", "second", "third"):
        response = client.post(
            f"/api/support/reply/{ticket['id']}",
            json={"message": text},
            headers=_auth("client-a"),
        )
        assert response.status_code == 200
        reply = response.json()["data"]
        assert reply["message"] == text
        assert reply["author"] == "client"
        assert reply["id"]

    stored = client.get(f"/api/support/{ticket['id']}", headers=_auth("client-a")).json()["data"]
    assert [reply["message"] for reply in stored["replies"]] == ["first", "second", "third"]
    assert len({reply["id"] for reply in stored["replies"]}) == 3
    assert stored["updated_at"] >= ticket["updated_at"]


def test_empty_reply_is_rejected_and_replies_unchanged(client: TestClient) -> None:
    ticket = _create_ticket(client, "client-a")
    client.post(f"/api/support/reply/{ticket['id']}", json={"message": "hello"}, headers=_auth("client-a"))

    for body in ({"message": ""}, {"message": "   "}, {}):
        response = client.post(f"/api/support/reply/{ticket['id']}", json=body, headers=_auth("client-a"))
        assert response.status_code == 400
        assert response.json()["error"] == "validation_failed"
        assert response.json()["message"] == "'message' is required"

    stored = client.get(f"/api/support/{ticket['id']}", headers=_auth("client-a")).json()["data"]
    assert [reply["message"] for reply in stored["replies"]] == ["hello"]


def test_reply_to_foreign_ticket_is_forbidden(client: TestClient) -> None:
    ticket = _create_ticket(client, "client-a")

    response = client.post(
        f"/api/support/reply/{ticket['id']}",
        json={"message": "sneaky"},
        headers=_auth("client-b"),
    )
    assert response.status_code == 403

    stored = client.get(f"/api/support/{ticket['id']}", headers=_auth("client-a")).json()["data"]
    assert stored["replies"] == []


def test_reply_to_missing_ticket_is_not_found(client: TestClient) -> None:
    response = client.post(
        f"/api/support/reply/{uuid.uuid4()}",
        json={"message": "hello"},
        headers=_auth("client-a"),
    )
    assert response.status_code == 404
    assert response.json()["message"] == "The specified support ticket does not exist"


def test_status_endpoint(client: TestClient) -> None:
    ticket = _create_ticket(client, "client-a")

    invalid = client.put(
        f"/api/support/status/{ticket['id']}",
        json={"status": "escalated"},
        headers=_auth("client-a"),
    )
    assert invalid.status_code == 400
    assert invalid.json()["error"] == "invalid_status"

    valid = client.put(
        f"/api/support/status/{ticket['id']}",
        json={"status": "in_progress"},
        headers=_auth("client-a"),
    )
    assert valid.status_code == 200

    in_progress = client.get("/api/support?status=in_progress", headers=_auth("client-a")).json()
    assert [item["id"] for item in in_progress["data"]] == [ticket["id"]]


@pytest.mark.parametrize("body", [{}, {"status": None}, {"status": 5}, {"status": ["open"]}])
def test_status_endpoint_classifies_missing_and_non_string_values(client: TestClient, body: dict) -> None:
    ticket = _create_ticket(client, "client-a")

    response = client.put(f"/api/support/status/{ticket['id']}", json=body, headers=_auth("client-a"))

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_status"
    stored = client.get(f"/api/support/{ticket['id']}", headers=_auth("client-a")).json()["data"]
    assert stored["status"] == "open"


def test_update_with_numeric_status_is_invalid_status(client: TestClient) -> None:
    ticket = _create_ticket(client, "client-a")

    response = client.put(f"/api/support/{ticket['id']}", json={"status": 3}, headers=_auth("client-a"))

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_status"


def test_update_rejects_null_priority(client: TestClient) -> None:
    ticket = _create_ticket(client, "client-a", priority="high")

    response = client.put(f"/api/support/{ticket['id']}", json={"priority": None}, headers=_auth("client-a"))

    assert response.status_code == 400
    assert response.json()["error"] == "validation_failed"
    assert response.json()["message"] == "'priority' must not be null"
    stored = client.get(f"/api/support/{ticket['id']}", headers=_auth("client-a")).json()["data"]
    assert stored["priority"] == "high"

    subject_only = client.put(f"/api/support/{ticket['id']}", json={"subject": "Still locked out"}, headers=_auth("client-a"))
    assert subject_only.status_code == 200
    stored = client.get(f"/api/support/{ticket['id']}", headers=_auth("client-a")).json()["data"]
    assert stored["priority"] == "high"
    assert stored["subject"] == "Still locked out"


def test_list_and_delete_tickets(client: TestClient) -> None:
    own = _create_ticket(client, "client-a")
    _create_ticket(client, "client-b")

    listing = client.get("/api/support", headers=_auth("client-a")).json()
    assert [item["id"] for item in listing["data"]] == [own["id"]]

    delete = client.delete(f"/api/support/{own['id']}", headers=_auth("client-a"))
    assert delete.status_code == 200
    assert client.get("/api/support", headers=_auth("client-a")).json()["data"] == []
