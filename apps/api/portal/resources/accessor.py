from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from opentelemetry import trace

from portal import audit
from portal.core.errors import NotFound
from portal.metrics import observe_file_cleanup_failure
from portal.platform.security.context import Principal
from portal.platform.security.ownership import OWNER_FIELD, ensure_owner
from portal.platform.storage.documents import Document, DocumentStore
from portal.resources.policies import STATUS_FILTER_ALL, ResourcePolicy


logger = logging.getLogger("portal.resources")
tracer = trace.get_tracer("portal.resources")

# Fields a caller can never set directly; they are stamped by the accessor.
PROTECTED_FIELDS = frozenset({"id", OWNER_FIELD, "ownerId", "clientId", "created_at", "updated_at"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Page:
    items: list[Document]
    limit: int
    offset: int

    @property
    def total(self) -> int:
        # Number of items in this page, not the size of the full match set.
        return len(self.items)


class OwnedResourceAccessor:
    """List/get/create/update/delete for one resource variant, restricted to the owner."""

    def __init__(self, store: DocumentStore, policy: ResourcePolicy) -> None:
        self.store = store
        self.policy = policy

    @property
    def resource_type(self) -> str:
        return self.policy.resource_type

    def list(
        self,
        principal: Principal,
        *,
        status_filter: str | None = None,
        limit: int,
        offset: int = 0,
    ) -> Page:
        where: dict[str, Any] = {OWNER_FIELD: principal.id}
        if status_filter and status_filter != STATUS_FILTER_ALL:
            where[self.policy.status_field] = status_filter

        with tracer.start_as_current_span("portal.resource.list") as span:
            span.set_attribute("portal.resource_type", self.resource_type)
            items = self.store.query(
                self.policy.collection,
                where=where,
                order_by=self.policy.order_by,
                descending=True,
                limit=limit,
                offset=offset,
            )
        return Page(items=items, limit=limit, offset=offset)

    def get_by_id(self, principal: Principal, resource_id: str) -> Document:
        with tracer.start_as_current_span("portal.resource.get") as span:
            span.set_attribute("portal.resource_type", self.resource_type)
            return self._load_owned(principal, resource_id, action="read")

    def create(self, principal: Principal, payload: Mapping[str, Any]) -> Document:
        data = {key: value for key, value in payload.items() if key not in PROTECTED_FIELDS}
        data.pop(self.policy.status_field, None)
        self.policy.validate_required(data)

        now = utcnow()
        data[OWNER_FIELD] = principal.id
        data[self.policy.status_field] = self.policy.default_status
        data["created_at"] = now
        data["updated_at"] = now

        with tracer.start_as_current_span("portal.resource.create") as span:
            span.set_attribute("portal.resource_type", self.resource_type)
            created = self.store.add(self.policy.collection, data)

        audit.record(
            principal_id=principal.id,
            resource_type=self.resource_type,
            resource_id=str(created["id"]),
            action="create",
            after=created,
        )
        logger.info(
            "resource.created",
            extra={"principal_id": principal.id, "resource": self.resource_type, "resource_id": created["id"]},
        )
        return created

    def update(self, principal: Principal, resource_id: str, patch: Mapping[str, Any]) -> Document:
        """Merge the provided fields into an owned record.

        ``patch`` must contain only the fields the caller actually supplied;
        absent keys are left untouched and explicit ``None`` values are applied.
        """

        with tracer.start_as_current_span("portal.resource.update") as span:
            span.set_attribute("portal.resource_type", self.resource_type)
            before = self._load_owned(principal, resource_id, action="update")

            changes = {key: value for key, value in patch.items() if key not in PROTECTED_FIELDS}
            if self.policy.status_field in changes:
                changes[self.policy.status_field] = self.policy.validate_status(changes[self.policy.status_field])
            self.policy.validate_required(changes, partial=True)
            changes["updated_at"] = utcnow()

            updated = self.store.update(self.policy.collection, resource_id, changes)
        if updated is None:
            raise NotFound(self.resource_type, resource_id)

        audit.record(
            principal_id=principal.id,
            resource_type=self.resource_type,
            resource_id=resource_id,
            action="update",
            before=before,
            after=updated,
        )
        return updated

    def delete(
        self,
        principal: Principal,
        resource_id: str,
        *,
        before_delete: Callable[[Document], None] | None = None,
    ) -> None:
        with tracer.start_as_current_span("portal.resource.delete") as span:
            span.set_attribute("portal.resource_type", self.resource_type)
            record = self._load_owned(principal, resource_id, action="delete")

            if before_delete is not None:
                try:
                    before_delete(record)
                except Exception as exc:
                    observe_file_cleanup_failure(self.resource_type)
                    logger.warning(
                        "resource.cleanup_failed",
                        extra={
                            "principal_id": principal.id,
                            "resource": self.resource_type,
                            "resource_id": resource_id,
                            "error": str(exc),
                        },
                    )

            self.store.delete(self.policy.collection, resource_id)

        audit.record(
            principal_id=principal.id,
            resource_type=self.resource_type,
            resource_id=resource_id,
            action="delete",
            before=record,
        )

    def _load_owned(self, principal: Principal, resource_id: str, *, action: str) -> Document:
        record = self.store.get(self.policy.collection, resource_id)
        if record is None:
            raise NotFound(self.resource_type, resource_id)
        ensure_owner(self.resource_type, record, principal, action=action)
        return record
