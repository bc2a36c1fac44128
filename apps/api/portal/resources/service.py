from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from portal import audit
from portal.core.errors import NoFile, NotFound, ValidationFailed
from portal.metrics import observe_file_cleanup_failure
from portal.platform.security.context import Principal
from portal.platform.storage.blobs import BlobStore
from portal.platform.storage.documents import Document, DocumentStore
from portal.resources.accessor import OwnedResourceAccessor, Page, utcnow
from portal.resources.models import COLLECTION_CLIENTS
from portal.resources.policies import (
    APPOINTMENT_POLICY,
    DEFAULT_TICKET_PRIORITY,
    LEAD_POLICY,
    PROPOSAL_POLICY,
    SUPPORT_TICKET_POLICY,
    ResourcePolicy,
)


logger = logging.getLogger("portal.resources")

DOWNLOAD_URL_EXPIRY_SECONDS = 15 * 60
PROPOSAL_FILE_CONTENT_TYPE = "application/pdf"
REPLY_AUTHOR_CLIENT = "client"


class ResourceService:
    def __init__(self, store: DocumentStore, policy: ResourcePolicy) -> None:
        self.accessor = OwnedResourceAccessor(store, policy)

    @property
    def policy(self) -> ResourcePolicy:
        return self.accessor.policy

    def list(self, principal: Principal, *, status_filter: str | None, limit: int, offset: int) -> Page:
        return self.accessor.list(principal, status_filter=status_filter, limit=limit, offset=offset)

    def get(self, principal: Principal, resource_id: str) -> Document:
        return self.accessor.get_by_id(principal, resource_id)

    def create(self, principal: Principal, payload: BaseModel) -> Document:
        return self.accessor.create(principal, payload.model_dump())

    def update(self, principal: Principal, resource_id: str, payload: BaseModel) -> Document:
        return self.accessor.update(principal, resource_id, payload.model_dump(exclude_unset=True))

    def set_status(
        self,
        principal: Principal,
        resource_id: str,
        value: Any,
        extra: dict[str, Any] | None = None,
    ) -> Document:
        patch = dict(extra or {})
        patch[self.policy.status_field] = value
        return self.accessor.update(principal, resource_id, patch)

    def delete(self, principal: Principal, resource_id: str) -> None:
        self.accessor.delete(principal, resource_id)


class LeadService(ResourceService):
    def __init__(self, store: DocumentStore) -> None:
        super().__init__(store, LEAD_POLICY)


class AppointmentService(ResourceService):
    """Appointments may only reference leads the caller owns."""

    def __init__(self, store: DocumentStore, leads: OwnedResourceAccessor) -> None:
        super().__init__(store, APPOINTMENT_POLICY)
        self.leads = leads

    def create(self, principal: Principal, payload: BaseModel) -> Document:
        data = payload.model_dump()
        # Raises NotFound/Forbidden before anything is written.
        self.leads.get_by_id(principal, data["lead_id"])
        return self.accessor.create(principal, data)

    def update(self, principal: Principal, resource_id: str, payload: BaseModel) -> Document:
        patch = payload.model_dump(exclude_unset=True)
        lead_id = patch.get("lead_id")
        if lead_id:
            # Load the appointment first so a foreign appointment is reported as such.
            self.accessor.get_by_id(principal, resource_id)
            self.leads.get_by_id(principal, lead_id)
        return self.accessor.update(principal, resource_id, patch)


class ProposalService(ResourceService):
    def __init__(self, store: DocumentStore, blobs: BlobStore, *, max_upload_bytes: int) -> None:
        super().__init__(store, PROPOSAL_POLICY)
        self.blobs = blobs
        self.max_upload_bytes = max_upload_bytes

    def delete(self, principal: Principal, resource_id: str) -> None:
        self.accessor.delete(principal, resource_id, before_delete=self._delete_file)

    def get_download_url(self, principal: Principal, resource_id: str) -> dict[str, Any]:
        proposal = self.accessor.get_by_id(principal, resource_id)
        file_ref = proposal.get("file_ref")
        if not file_ref:
            raise NoFile(self.policy.resource_type, resource_id)
        url = self.blobs.signed_download_url(file_ref, DOWNLOAD_URL_EXPIRY_SECONDS)
        return {"download_url": url, "expires_in": DOWNLOAD_URL_EXPIRY_SECONDS}

    def attach_file(
        self,
        principal: Principal,
        resource_id: str,
        *,
        content: bytes,
        content_type: str | None,
    ) -> Document:
        proposal = self.accessor.get_by_id(principal, resource_id)
        if content_type != PROPOSAL_FILE_CONTENT_TYPE:
            raise ValidationFailed("file", "Only PDF files are allowed")
        if not content:
            raise ValidationFailed("file", "'file' is empty")
        if len(content) > self.max_upload_bytes:
            raise ValidationFailed("file", f"File exceeds the {self.max_upload_bytes} byte limit")

        key = f"proposals/{proposal['owner_id']}/{resource_id}/{uuid.uuid4().hex}.pdf"
        self.blobs.put(key, content, PROPOSAL_FILE_CONTENT_TYPE)
        updated = self.accessor.update(principal, resource_id, {"file_ref": key})

        previous = proposal.get("file_ref")
        if previous and previous != key:
            try:
                self.blobs.delete(previous)
            except Exception as exc:
                observe_file_cleanup_failure(self.policy.resource_type)
                logger.warning(
                    "resource.cleanup_failed",
                    extra={
                        "principal_id": principal.id,
                        "resource": self.policy.resource_type,
                        "resource_id": resource_id,
                        "error": str(exc),
                    },
                )
        return updated

    def _delete_file(self, proposal: Document) -> None:
        file_ref = proposal.get("file_ref")
        if file_ref:
            self.blobs.delete(file_ref)


class SupportTicketService(ResourceService):
    def __init__(self, store: DocumentStore) -> None:
        super().__init__(store, SUPPORT_TICKET_POLICY)

    def create(self, principal: Principal, payload: BaseModel) -> Document:
        data = payload.model_dump()
        data["priority"] = data.get("priority") or DEFAULT_TICKET_PRIORITY
        data["replies"] = []
        return self.accessor.create(principal, data)

    def add_reply(self, principal: Principal, resource_id: str, message: str | None) -> dict[str, Any]:
        ticket = self.accessor.get_by_id(principal, resource_id)
        if message is None or not message.strip():
            raise ValidationFailed("message")

        reply = {
            "id": uuid.uuid4().hex,
            "message": message,
            "author": REPLY_AUTHOR_CLIENT,
            "created_at": utcnow().isoformat(),
        }
        replies = [*(ticket.get("replies") or []), reply]
        self.accessor.update(principal, resource_id, {"replies": replies})
        return reply


class ClientProfileService:
    """The caller's own profile, keyed by principal id."""

    resource_type = "client"

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def get(self, principal: Principal) -> Document:
        profile = self.store.get(COLLECTION_CLIENTS, principal.id)
        if profile is None:
            raise NotFound(self.resource_type, principal.id)
        return profile

    def update(self, principal: Principal, payload: BaseModel) -> Document:
        changes = payload.model_dump(exclude_unset=True)
        now = utcnow()
        before = self.store.get(COLLECTION_CLIENTS, principal.id)
        if before is None:
            data = {"email": principal.email, **changes, "created_at": now, "updated_at": now}
            profile = self.store.add(COLLECTION_CLIENTS, data, document_id=principal.id)
            action = "create"
        else:
            changes["updated_at"] = now
            profile = self.store.update(COLLECTION_CLIENTS, principal.id, changes)
            if profile is None:
                raise NotFound(self.resource_type, principal.id)
            action = "update"

        audit.record(
            principal_id=principal.id,
            resource_type=self.resource_type,
            resource_id=principal.id,
            action=action,
            before=before,
            after=profile,
        )
        return profile


@dataclass
class PortalServices:
    leads: LeadService
    appointments: AppointmentService
    proposals: ProposalService
    support: SupportTicketService
    profiles: ClientProfileService

    @classmethod
    def build(cls, store: DocumentStore, blobs: BlobStore, *, max_upload_bytes: int) -> "PortalServices":
        leads = LeadService(store)
        return cls(
            leads=leads,
            appointments=AppointmentService(store, leads.accessor),
            proposals=ProposalService(store, blobs, max_upload_bytes=max_upload_bytes),
            support=SupportTicketService(store),
            profiles=ClientProfileService(store),
        )
