from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from portal.core.errors import InvalidStatus, ValidationFailed
from portal.resources.models import (
    COLLECTION_APPOINTMENTS,
    COLLECTION_LEADS,
    COLLECTION_PROPOSALS,
    COLLECTION_SUPPORT_TICKETS,
)


STATUS_FILTER_ALL = "all"


@dataclass(frozen=True, slots=True)
class ResourcePolicy:
    """Per-variant rules the generic accessor is parameterized with."""

    resource_type: str
    collection: str
    required_fields: tuple[str, ...]
    statuses: tuple[str, ...]
    default_status: str
    status_field: str = "status"
    order_by: tuple[str, ...] = ("created_at",)
    non_nullable_fields: tuple[str, ...] = ()

    def validate_status(self, value: Any) -> str:
        if not isinstance(value, str) or value not in self.statuses:
            raise InvalidStatus(self.resource_type, value, self.statuses)
        return value

    def validate_required(self, payload: Mapping[str, Any], *, partial: bool = False) -> None:
        """Reject missing or blank required fields.

        With ``partial`` only fields present in the payload are checked, so a
        patch can leave them untouched but cannot clear them.
        Fields in ``non_nullable_fields`` may be omitted but never set to
        ``None``.
        """

        for field_name in self.required_fields:
            if partial and field_name not in payload:
                continue
            if _is_blank(payload.get(field_name)):
                raise ValidationFailed(field_name)
        for field_name in self.non_nullable_fields:
            if field_name in payload and payload[field_name] is None:
                raise ValidationFailed(field_name, f"'{field_name}' must not be null")


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


LEAD_POLICY = ResourcePolicy(
    resource_type="lead",
    collection=COLLECTION_LEADS,
    required_fields=("name", "phone", "email"),
    statuses=("hot", "warm", "cold", "dead"),
    default_status="warm",
)

APPOINTMENT_POLICY = ResourcePolicy(
    resource_type="appointment",
    collection=COLLECTION_APPOINTMENTS,
    required_fields=("lead_id", "date", "time"),
    statuses=("scheduled", "completed", "no-show", "follow-up", "cancelled"),
    default_status="scheduled",
    status_field="outcome",
    order_by=("date", "time", "created_at"),
)

PROPOSAL_POLICY = ResourcePolicy(
    resource_type="proposal",
    collection=COLLECTION_PROPOSALS,
    required_fields=("title", "description", "amount"),
    statuses=("draft", "sent", "accepted", "rejected", "revised"),
    default_status="draft",
)

SUPPORT_TICKET_POLICY = ResourcePolicy(
    resource_type="support_ticket",
    collection=COLLECTION_SUPPORT_TICKETS,
    required_fields=("subject", "message"),
    statuses=("open", "in_progress", "resolved", "closed"),
    default_status="open",
    non_nullable_fields=("priority",),
)

DEFAULT_TICKET_PRIORITY = "medium"
