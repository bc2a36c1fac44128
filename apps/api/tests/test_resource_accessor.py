from __future__ import annotations

from collections.abc import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from portal import audit
from portal.core.database import Base
from portal.core.errors import Forbidden, InvalidStatus, NotFound, ValidationFailed
from portal.platform.security.context import Principal
from portal.platform.storage.documents import SqlAlchemyDocumentStore
from portal.resources.accessor import OwnedResourceAccessor
from portal.resources.models import COLLECTION_MODELS
from portal.resources.policies import LEAD_POLICY, PROPOSAL_POLICY


ALICE = Principal(id="alice", email="alice@example.com")
BOB = Principal(id="bob")


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
def clear_audit() -> Generator[None, None, None]:
    audit.audit_entries.clear()
    yield
    audit.audit_entries.clear()


@pytest.fixture()
def leads(db_session: Session) -> OwnedResourceAccessor:
    return OwnedResourceAccessor(SqlAlchemyDocumentStore(db_session, COLLECTION_MODELS), LEAD_POLICY)


def _lead(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {"name": "Lead", "phone": "555", "email": "lead@example.com", "notes": ""}
    payload.update(overrides)
    return payload


def test_create_ignores_owner_and_status_from_payload(leads: OwnedResourceAccessor) -> None:
    created = leads.create(ALICE, _lead(owner_id="bob", ownerId="bob", clientId="bob", status="hot", id="fixed"))

    assert created["owner_id"] == "alice"
    assert created["status"] == "warm"
    assert created["id"] != "fixed"

    entries = audit.entries_for("lead", created["id"])
    assert [entry["action"] for entry in entries] == ["create"]
    assert entries[0]["after"]["owner_id"] == "alice"


def test_create_reports_first_missing_required_field(leads: OwnedResourceAccessor) -> None:
    with pytest.raises(ValidationFailed) as exc_info:
        leads.create(ALICE, {"name": "Lead", "email": "lead@example.com"})
    assert exc_info.value.field == "phone"


def test_list_is_scoped_to_owner(leads: OwnedResourceAccessor) -> None:
    leads.create(ALICE, _lead(name="a"))
    leads.create(BOB, _lead(name="b"))

    page = leads.list(ALICE, limit=10)

    assert [item["name"] for item in page.items] == ["a"]
    assert page.total == 1
    assert leads.list(Principal(id="carol"), limit=10).items == []


def test_get_by_id_distinguishes_missing_from_foreign(leads: OwnedResourceAccessor) -> None:
    created = leads.create(ALICE, _lead())

    assert leads.get_by_id(ALICE, created["id"])["id"] == created["id"]
    with pytest.raises(Forbidden):
        leads.get_by_id(BOB, created["id"])
    with pytest.raises(NotFound):
        leads.get_by_id(ALICE, "missing")


def test_update_validates_status_before_writing(leads: OwnedResourceAccessor) -> None:
    created = leads.create(ALICE, _lead())

    with pytest.raises(InvalidStatus) as exc_info:
        leads.update(ALICE, created["id"], {"status": "boiling", "name": "Renamed"})

    assert exc_info.value.value == "boiling"
    stored = leads.get_by_id(ALICE, created["id"])
    assert stored["name"] == "Lead"
    assert stored["status"] == "warm"


def test_update_cannot_change_owner(leads: OwnedResourceAccessor) -> None:
    created = leads.create(ALICE, _lead())

    updated = leads.update(ALICE, created["id"], {"owner_id": "bob", "status": "cold"})

    assert updated["owner_id"] == "alice"
    assert updated["status"] == "cold"
    assert updated["updated_at"] >= created["updated_at"]


def test_update_of_foreign_record_is_forbidden(leads: OwnedResourceAccessor) -> None:
    created = leads.create(ALICE, _lead())

    with pytest.raises(Forbidden):
        leads.update(BOB, created["id"], {"status": "dead"})

    assert leads.get_by_id(ALICE, created["id"])["status"] == "warm"


def test_delete_runs_hook_and_survives_hook_failure(db_session: Session) -> None:
    proposals = OwnedResourceAccessor(SqlAlchemyDocumentStore(db_session, COLLECTION_MODELS), PROPOSAL_POLICY)
    created = proposals.create(ALICE, {"title": "T", "description": "D", "amount": 10.0})
    seen: list[str] = []

    def failing_hook(record: dict) -> None:
        seen.append(record["id"])
        raise RuntimeError("storage offline")

    proposals.delete(ALICE, created["id"], before_delete=failing_hook)

    assert seen == [created["id"]]
    with pytest.raises(NotFound):
        proposals.get_by_id(ALICE, created["id"])
    assert [entry["action"] for entry in audit.entries_for("proposal", created["id"])] == ["create", "delete"]


def test_delete_of_foreign_record_skips_hook(leads: OwnedResourceAccessor) -> None:
    created = leads.create(ALICE, _lead())
    calls: list[dict] = []

    with pytest.raises(Forbidden):
        leads.delete(BOB, created["id"], before_delete=calls.append)

    assert calls == []
    assert leads.get_by_id(ALICE, created["id"])["id"] == created["id"]
