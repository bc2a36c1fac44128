from portal.platform.security.context import Principal
from portal.platform.security.ownership import OWNER_FIELD, ensure_owner, is_owner
from portal.platform.security.verifier import (
    Authenticated,
    CredentialVerifier,
    InMemoryRevocationList,
    JwtCredentialVerifier,
    Rejected,
    RejectionReason,
    RevocationList,
    VerificationResult,
)

__all__ = [
    "Principal",
    "OWNER_FIELD",
    "ensure_owner",
    "is_owner",
    "Authenticated",
    "CredentialVerifier",
    "InMemoryRevocationList",
    "JwtCredentialVerifier",
    "Rejected",
    "RejectionReason",
    "RevocationList",
    "VerificationResult",
]
