from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field


DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

TicketPriority = Literal["low", "medium", "high", "urgent"]

T = TypeVar("T")


class Pagination(BaseModel):
    limit: int
    offset: int
    total: int


class DataEnvelope(BaseModel, Generic[T]):
    success: bool = True
    message: str | None = None
    data: T


class PageEnvelope(BaseModel, Generic[T]):
    success: bool = True
    data: list[T]
    pagination: Pagination


class MessageEnvelope(BaseModel):
    success: bool = True
    message: str


class ErrorEnvelope(BaseModel):
    error: str
    message: str
    correlation_id: str | None = None


# Create payloads ignore unknown keys, so an ownerId/clientId smuggled into the
# body never reaches the store.


class LeadCreate(BaseModel):
    name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    email: str = Field(min_length=1)
    notes: str | None = ""


class LeadUpdate(BaseModel):
    name: str | None = None
    phone: str | None = None
    email: str | None = None
    status: Any = None
    notes: str | None = None
    last_contacted: str | None = None


class LeadRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    status: str
    name: str
    phone: str
    email: str
    notes: str | None
    last_contacted: str | None
    created_at: datetime
    updated_at: datetime


class AppointmentCreate(BaseModel):
    lead_id: str = Field(min_length=1)
    date: str = Field(pattern=DATE_PATTERN)
    time: str = Field(pattern=TIME_PATTERN)
    notes: str | None = ""


class AppointmentUpdate(BaseModel):
    lead_id: str | None = None
    date: str | None = Field(default=None, pattern=DATE_PATTERN)
    time: str | None = Field(default=None, pattern=TIME_PATTERN)
    outcome: Any = None
    notes: str | None = None


class AppointmentOutcomeUpdate(BaseModel):
    # Classified by the appointment policy, so a missing value is an invalid status.
    outcome: Any = None
    notes: str | None = None


class AppointmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    lead_id: str
    outcome: str
    date: str
    time: str
    notes: str | None
    created_at: datetime
    updated_at: datetime


class ProposalCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    amount: float = Field(gt=0)


class ProposalUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    amount: float | None = Field(default=None, gt=0)
    status: Any = None


class ProposalRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    status: str
    title: str
    description: str
    amount: float
    file_ref: str | None
    created_at: datetime
    updated_at: datetime


class DownloadLink(BaseModel):
    download_url: str
    expires_in: int


class StatusUpdate(BaseModel):
    status: Any = None


class Reply(BaseModel):
    id: str
    message: str
    author: str
    created_at: datetime


class ReplyCreate(BaseModel):
    message: str | None = None


class SupportTicketCreate(BaseModel):
    subject: str = Field(min_length=1)
    message: str = Field(min_length=1)
    priority: TicketPriority = "medium"


class SupportTicketUpdate(BaseModel):
    subject: str | None = None
    message: str | None = None
    priority: TicketPriority | None = None
    status: Any = None


class SupportTicketRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    status: str
    subject: str
    message: str
    priority: str
    replies: list[Reply] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ClientProfileUpdate(BaseModel):
    name: str | None = None
    company: str | None = None
    phone: str | None = None


class ClientProfileRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str | None
    name: str | None
    company: str | None
    phone: str | None
    plan: str | None
    status: str
    start_date: str | None
    created_at: datetime
    updated_at: datetime
