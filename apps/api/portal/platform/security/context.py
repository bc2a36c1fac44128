from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True, frozen=True)
class Principal:
    """Authenticated identity derived from a verified bearer credential.

    Never persisted by the portal; it lives for the duration of one request.
    """

    id: str
    email: str | None = None
    email_verified: bool = False
    claims: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    def to_public_dict(self) -> dict[str, Any]:
        return {"id": self.id, "email": self.email, "email_verified": self.email_verified}
