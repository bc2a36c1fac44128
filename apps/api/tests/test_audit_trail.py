from __future__ import annotations

from collections.abc import Generator

import pytest

from portal import audit
from portal.core.config import get_settings


@pytest.fixture(autouse=True)
def clear_audit() -> Generator[None, None, None]:
    audit.audit_entries.clear()
    yield
    audit.audit_entries.clear()


def test_audit_trail_is_bounded_by_settings() -> None:
    limit = get_settings().audit_max_entries
    assert audit.audit_entries.maxlen == limit

    for index in range(limit + 5):
        audit.record(principal_id="client-a", resource_type="lead", resource_id=f"lead-{index}", action="create")

    assert len(audit.audit_entries) == limit
    assert audit.entries_for("lead", "lead-0") == []
    assert audit.entries_for("lead", "lead-4") == []
    assert audit.entries_for("lead", f"lead-{limit + 4}")[0]["action"] == "create"


def test_audit_entry_serializes_snapshots() -> None:
    audit.record(
        principal_id="client-a",
        resource_type="support_ticket",
        resource_id="t-1",
        action="update",
        before={"status": "open"},
        after={"status": "closed"},
        correlation_id="corr-audit",
    )

    (entry,) = audit.entries_for("support_ticket", "t-1")
    assert entry["before"] == {"status": "open"}
    assert entry["after"] == {"status": "closed"}
    assert entry["correlation_id"] == "corr-audit"
    assert entry["principal_id"] == "client-a"
