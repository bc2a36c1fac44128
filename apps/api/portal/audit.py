from __future__ import annotations

import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any

from portal.context import get_correlation_id
from portal.core.config import get_settings

# Oldest entries are evicted once the trail reaches its configured size.
audit_entries: deque[dict[str, Any]] = deque(maxlen=get_settings().audit_max_entries)


def record(
    principal_id: str,
    resource_type: str,
    resource_id: str,
    action: str,
    before: dict[str, Any] | None = None,
    after: dict[str, Any] | None = None,
    correlation_id: str | None = None,
) -> None:
    """Append an entry to the in-process audit trail."""

    audit_entries.append(
        {
            "id": str(uuid.uuid4()),
            "principal_id": principal_id,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "action": action,
            "before": _jsonable(before),
            "after": _jsonable(after),
            "correlation_id": correlation_id or get_correlation_id(),
            "occurred_at": datetime.now(timezone.utc).isoformat(),
        }
    )


def entries_for(resource_type: str, resource_id: str) -> list[dict[str, Any]]:
    return [
        entry
        for entry in audit_entries
        if entry["resource_type"] == resource_type and entry["resource_id"] == resource_id
    ]


def _jsonable(document: dict[str, Any] | None) -> dict[str, Any] | None:
    if document is None:
        return None
    return {key: value.isoformat() if isinstance(value, datetime) else value for key, value in document.items()}
