from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from pydantic import BaseModel

from portal.core.auth import require_auth
from portal.core.config import get_settings
from portal.core.dependencies import get_portal_services
from portal.core.errors import ValidationFailed
from portal.platform.security.context import Principal
from portal.resources.accessor import Page
from portal.resources.schemas import (
    AppointmentCreate,
    AppointmentOutcomeUpdate,
    AppointmentRead,
    AppointmentUpdate,
    ClientProfileRead,
    ClientProfileUpdate,
    DataEnvelope,
    DownloadLink,
    LeadCreate,
    LeadRead,
    LeadUpdate,
    MessageEnvelope,
    PageEnvelope,
    Pagination,
    ProposalCreate,
    ProposalRead,
    ProposalUpdate,
    Reply,
    ReplyCreate,
    StatusUpdate,
    SupportTicketCreate,
    SupportTicketRead,
    SupportTicketUpdate,
)
from portal.resources.service import PortalServices


leads_router = APIRouter(prefix="/api/leads", tags=["leads"])
appointments_router = APIRouter(prefix="/api/appointments", tags=["appointments"])
proposals_router = APIRouter(prefix="/api/proposals", tags=["proposals"])
support_router = APIRouter(prefix="/api/support", tags=["support"])
clients_router = APIRouter(prefix="/api/clients", tags=["clients"])


@dataclass
class PageParams:
    limit: int
    offset: int


def page_params(
    limit: int | None = Query(default=None),
    offset: int = Query(default=0),
) -> PageParams:
    settings = get_settings()
    if limit is None:
        limit = settings.pagination_default_limit
    if limit < 1:
        raise ValidationFailed("limit", "'limit' must be at least 1")
    if offset < 0:
        raise ValidationFailed("offset", "'offset' must not be negative")
    return PageParams(limit=min(limit, settings.pagination_max_limit), offset=offset)


def _data(read_model: type[BaseModel], document: Any, message: str | None = None) -> DataEnvelope:
    fields: dict[str, Any] = {"success": True, "data": read_model.model_validate(document)}
    if message is not None:
        fields["message"] = message
    return DataEnvelope[read_model](**fields)  # type: ignore[valid-type]


def _page(read_model: type[BaseModel], page: Page) -> PageEnvelope:
    return PageEnvelope[read_model](  # type: ignore[valid-type]
        success=True,
        data=[read_model.model_validate(item) for item in page.items],
        pagination=Pagination(limit=page.limit, offset=page.offset, total=page.total),
    )


def _message(text: str) -> MessageEnvelope:
    return MessageEnvelope(success=True, message=text)


_ENVELOPE_OPTIONS: dict[str, Any] = {"response_model_exclude_unset": True}


# Leads


@leads_router.get("", response_model=PageEnvelope[LeadRead], **_ENVELOPE_OPTIONS)
def list_leads(
    status_filter: str | None = Query(default=None, alias="status"),
    principal: Principal = Depends(require_auth),
    paging: PageParams = Depends(page_params),
    services: PortalServices = Depends(get_portal_services),
) -> PageEnvelope:
    page = services.leads.list(principal, status_filter=status_filter, limit=paging.limit, offset=paging.offset)
    return _page(LeadRead, page)


@leads_router.get("/{lead_id}", response_model=DataEnvelope[LeadRead], **_ENVELOPE_OPTIONS)
def get_lead(
    lead_id: str,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> DataEnvelope:
    return _data(LeadRead, services.leads.get(principal, lead_id))


@leads_router.post(
    "",
    response_model=DataEnvelope[LeadRead],
    status_code=status.HTTP_201_CREATED,
    **_ENVELOPE_OPTIONS,
)
def create_lead(
    dto: LeadCreate,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> DataEnvelope:
    lead = services.leads.create(principal, dto)
    return _data(LeadRead, lead, "Lead created successfully")


@leads_router.put("/{lead_id}", response_model=MessageEnvelope)
def update_lead(
    lead_id: str,
    dto: LeadUpdate,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> MessageEnvelope:
    services.leads.update(principal, lead_id, dto)
    return _message("Lead updated successfully")


@leads_router.delete("/{lead_id}", response_model=MessageEnvelope)
def delete_lead(
    lead_id: str,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> MessageEnvelope:
    services.leads.delete(principal, lead_id)
    return _message("Lead deleted successfully")


# Appointments


@appointments_router.get("", response_model=PageEnvelope[AppointmentRead], **_ENVELOPE_OPTIONS)
def list_appointments(
    status_filter: str | None = Query(default=None, alias="status"),
    principal: Principal = Depends(require_auth),
    paging: PageParams = Depends(page_params),
    services: PortalServices = Depends(get_portal_services),
) -> PageEnvelope:
    page = services.appointments.list(
        principal,
        status_filter=status_filter,
        limit=paging.limit,
        offset=paging.offset,
    )
    return _page(AppointmentRead, page)


@appointments_router.put("/outcome/{appointment_id}", response_model=MessageEnvelope)
def update_appointment_outcome(
    appointment_id: str,
    dto: AppointmentOutcomeUpdate,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> MessageEnvelope:
    extra = {"notes": dto.notes} if "notes" in dto.model_fields_set else None
    services.appointments.set_status(principal, appointment_id, dto.outcome, extra)
    return _message("Appointment outcome updated successfully")


@appointments_router.get("/{appointment_id}", response_model=DataEnvelope[AppointmentRead], **_ENVELOPE_OPTIONS)
def get_appointment(
    appointment_id: str,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> DataEnvelope:
    return _data(AppointmentRead, services.appointments.get(principal, appointment_id))


@appointments_router.post(
    "",
    response_model=DataEnvelope[AppointmentRead],
    status_code=status.HTTP_201_CREATED,
    **_ENVELOPE_OPTIONS,
)
def create_appointment(
    dto: AppointmentCreate,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> DataEnvelope:
    appointment = services.appointments.create(principal, dto)
    return _data(AppointmentRead, appointment, "Appointment created successfully")


@appointments_router.put("/{appointment_id}", response_model=MessageEnvelope)
def update_appointment(
    appointment_id: str,
    dto: AppointmentUpdate,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> MessageEnvelope:
    services.appointments.update(principal, appointment_id, dto)
    return _message("Appointment updated successfully")


@appointments_router.delete("/{appointment_id}", response_model=MessageEnvelope)
def delete_appointment(
    appointment_id: str,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> MessageEnvelope:
    services.appointments.delete(principal, appointment_id)
    return _message("Appointment deleted successfully")


# Proposals


@proposals_router.get("", response_model=PageEnvelope[ProposalRead], **_ENVELOPE_OPTIONS)
def list_proposals(
    status_filter: str | None = Query(default=None, alias="status"),
    principal: Principal = Depends(require_auth),
    paging: PageParams = Depends(page_params),
    services: PortalServices = Depends(get_portal_services),
) -> PageEnvelope:
    page = services.proposals.list(principal, status_filter=status_filter, limit=paging.limit, offset=paging.offset)
    return _page(ProposalRead, page)


@proposals_router.put("/status/{proposal_id}", response_model=MessageEnvelope)
def update_proposal_status(
    proposal_id: str,
    dto: StatusUpdate,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> MessageEnvelope:
    services.proposals.set_status(principal, proposal_id, dto.status)
    return _message("Proposal status updated successfully")


@proposals_router.get("/download/{proposal_id}", response_model=DataEnvelope[DownloadLink], **_ENVELOPE_OPTIONS)
def get_proposal_download(
    proposal_id: str,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> DataEnvelope:
    return _data(DownloadLink, services.proposals.get_download_url(principal, proposal_id))


@proposals_router.post("/upload/{proposal_id}", response_model=DataEnvelope[ProposalRead], **_ENVELOPE_OPTIONS)
def upload_proposal_file(
    proposal_id: str,
    file: UploadFile = File(...),
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> DataEnvelope:
    # At most cap + 1 bytes; anything longer is rejected by the service.
    content = file.file.read(services.proposals.max_upload_bytes + 1)
    proposal = services.proposals.attach_file(
        principal,
        proposal_id,
        content=content,
        content_type=file.content_type,
    )
    return _data(ProposalRead, proposal, "Proposal file uploaded successfully")


@proposals_router.get("/{proposal_id}", response_model=DataEnvelope[ProposalRead], **_ENVELOPE_OPTIONS)
def get_proposal(
    proposal_id: str,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> DataEnvelope:
    return _data(ProposalRead, services.proposals.get(principal, proposal_id))


@proposals_router.post(
    "",
    response_model=DataEnvelope[ProposalRead],
    status_code=status.HTTP_201_CREATED,
    **_ENVELOPE_OPTIONS,
)
def create_proposal(
    dto: ProposalCreate,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> DataEnvelope:
    proposal = services.proposals.create(principal, dto)
    return _data(ProposalRead, proposal, "Proposal created successfully")


@proposals_router.put("/{proposal_id}", response_model=MessageEnvelope)
def update_proposal(
    proposal_id: str,
    dto: ProposalUpdate,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> MessageEnvelope:
    services.proposals.update(principal, proposal_id, dto)
    return _message("Proposal updated successfully")


@proposals_router.delete("/{proposal_id}", response_model=MessageEnvelope)
def delete_proposal(
    proposal_id: str,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> MessageEnvelope:
    services.proposals.delete(principal, proposal_id)
    return _message("Proposal deleted successfully")


# Support tickets


@support_router.get("", response_model=PageEnvelope[SupportTicketRead], **_ENVELOPE_OPTIONS)
def list_support_tickets(
    status_filter: str | None = Query(default=None, alias="status"),
    principal: Principal = Depends(require_auth),
    paging: PageParams = Depends(page_params),
    services: PortalServices = Depends(get_portal_services),
) -> PageEnvelope:
    page = services.support.list(principal, status_filter=status_filter, limit=paging.limit, offset=paging.offset)
    return _page(SupportTicketRead, page)


@support_router.put("/status/{ticket_id}", response_model=MessageEnvelope)
def update_support_ticket_status(
    ticket_id: str,
    dto: StatusUpdate,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> MessageEnvelope:
    services.support.set_status(principal, ticket_id, dto.status)
    return _message("Support ticket status updated successfully")


@support_router.post("/reply/{ticket_id}", response_model=DataEnvelope[Reply], **_ENVELOPE_OPTIONS)
def add_support_reply(
    ticket_id: str,
    dto: ReplyCreate,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> DataEnvelope:
    reply = services.support.add_reply(principal, ticket_id, dto.message)
    return _data(Reply, reply, "Reply added successfully")


@support_router.get("/{ticket_id}", response_model=DataEnvelope[SupportTicketRead], **_ENVELOPE_OPTIONS)
def get_support_ticket(
    ticket_id: str,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> DataEnvelope:
    return _data(SupportTicketRead, services.support.get(principal, ticket_id))


@support_router.post(
    "",
    response_model=DataEnvelope[SupportTicketRead],
    status_code=status.HTTP_201_CREATED,
    **_ENVELOPE_OPTIONS,
)
def create_support_ticket(
    dto: SupportTicketCreate,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> DataEnvelope:
    ticket = services.support.create(principal, dto)
    return _data(SupportTicketRead, ticket, "Support ticket created successfully")


@support_router.put("/{ticket_id}", response_model=MessageEnvelope)
def update_support_ticket(
    ticket_id: str,
    dto: SupportTicketUpdate,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> MessageEnvelope:
    services.support.update(principal, ticket_id, dto)
    return _message("Support ticket updated successfully")


@support_router.delete("/{ticket_id}", response_model=MessageEnvelope)
def delete_support_ticket(
    ticket_id: str,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> MessageEnvelope:
    services.support.delete(principal, ticket_id)
    return _message("Support ticket deleted successfully")


# Client profile


@clients_router.get("/profile", response_model=DataEnvelope[ClientProfileRead], **_ENVELOPE_OPTIONS)
def get_client_profile(
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> DataEnvelope:
    return _data(ClientProfileRead, services.profiles.get(principal))


@clients_router.put("/profile", response_model=DataEnvelope[ClientProfileRead], **_ENVELOPE_OPTIONS)
def update_client_profile(
    dto: ClientProfileUpdate,
    principal: Principal = Depends(require_auth),
    services: PortalServices = Depends(get_portal_services),
) -> DataEnvelope:
    profile = services.profiles.update(principal, dto)
    return _data(ClientProfileRead, profile, "Profile updated successfully")
