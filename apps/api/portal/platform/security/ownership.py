from __future__ import annotations

import logging
from typing import Any

from portal import audit
from portal.core.errors import Forbidden
from portal.metrics import observe_ownership_denial
from portal.platform.security.context import Principal


logger = logging.getLogger("portal.auth")

OWNER_FIELD = "owner_id"


def is_owner(record: dict[str, Any], principal: Principal) -> bool:
    owner_id = record.get(OWNER_FIELD)
    return owner_id is not None and owner_id == principal.id


def ensure_owner(resource_type: str, record: dict[str, Any], principal: Principal, *, action: str) -> None:
    """Raise Forbidden unless the principal owns the record.

    Runs on every read and write of an existing record; results are never cached.
    """

    if is_owner(record, principal):
        return

    resource_id = str(record.get("id", "unknown"))
    observe_ownership_denial(resource=resource_type, action=action)
    logger.warning(
        "ownership.denied",
        extra={
            "principal_id": principal.id,
            "resource": resource_type,
            "resource_id": resource_id,
            "action": action,
        },
    )
    audit.record(
        principal_id=principal.id,
        resource_type=resource_type,
        resource_id=resource_id,
        action=f"ownership.denied.{action}",
    )
    raise Forbidden(resource_type, resource_id)
