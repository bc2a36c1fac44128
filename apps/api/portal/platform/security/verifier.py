from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from threading import Lock
from typing import Any, Protocol

from jose import ExpiredSignatureError, JWTError, jwt

from portal.platform.security.context import Principal


logger = logging.getLogger("portal.auth")


class RejectionReason(StrEnum):
    EXPIRED = "expired"
    REVOKED = "revoked"
    INVALID = "invalid"


@dataclass(slots=True, frozen=True)
class Authenticated:
    principal: Principal


@dataclass(slots=True, frozen=True)
class Rejected:
    reason: RejectionReason


VerificationResult = Authenticated | Rejected


class CredentialVerifier(Protocol):
    """Translates an opaque bearer token into a principal or a rejection."""

    def verify(self, token: str) -> VerificationResult:
        ...

    def revoke(self, principal: Principal) -> None:
        ...


class RevocationList(Protocol):
    def revoke_token(self, jti: str, expires_at: datetime | None = None) -> None:
        ...

    def revoke_subject(self, subject: str, at: datetime | None = None) -> None:
        ...

    def is_revoked(self, claims: dict[str, Any]) -> bool:
        ...


class InMemoryRevocationList:
    """Revoked token ids plus per-subject "not valid before" cut-offs.

    A subject cut-off older than ``max_token_lifetime`` is dropped, since every
    token it could reject has expired by then.
    """

    def __init__(self, *, max_token_lifetime: timedelta = timedelta(hours=24)) -> None:
        self._lock = Lock()
        self._tokens: dict[str, datetime] = {}
        self._subjects: dict[str, datetime] = {}
        self._max_token_lifetime = max_token_lifetime

    def revoke_token(self, jti: str, expires_at: datetime | None = None) -> None:
        with self._lock:
            now = datetime.now(timezone.utc)
            self._prune(now)
            self._tokens[jti] = expires_at or now + self._max_token_lifetime

    def revoke_subject(self, subject: str, at: datetime | None = None) -> None:
        with self._lock:
            now = datetime.now(timezone.utc)
            self._prune(now)
            self._subjects[subject] = at or now

    def is_revoked(self, claims: dict[str, Any]) -> bool:
        jti = claims.get("jti")
        subject = claims.get("sub")
        with self._lock:
            self._prune(datetime.now(timezone.utc))
            if isinstance(jti, str) and jti in self._tokens:
                return True
            cutoff = self._subjects.get(str(subject)) if subject is not None else None
        if cutoff is None:
            return False
        issued_at = _claim_datetime(claims.get("iat"))
        # Tokens without an iat cannot prove they postdate the cut-off.
        return issued_at is None or issued_at <= cutoff

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()
            self._subjects.clear()

    def _prune(self, now: datetime) -> None:
        expired = [key for key, expires_at in self._tokens.items() if expires_at < now]
        for key in expired:
            del self._tokens[key]
        horizon = now - self._max_token_lifetime
        stale = [subject for subject, cutoff in self._subjects.items() if cutoff < horizon]
        for subject in stale:
            del self._subjects[subject]


class JwtCredentialVerifier:
    """Verifies signed JWT bearer tokens issued by the identity provider."""

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        audience: str | None = None,
        issuer: str | None = None,
        revocations: RevocationList | None = None,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._audience = audience
        self._issuer = issuer
        self.revocations: RevocationList = revocations or InMemoryRevocationList()

    def verify(self, token: str) -> VerificationResult:
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                audience=self._audience,
                issuer=self._issuer,
                options={"verify_aud": self._audience is not None},
            )
        except ExpiredSignatureError:
            return Rejected(RejectionReason.EXPIRED)
        except JWTError as exc:
            logger.info("auth.token_invalid", extra={"reason": RejectionReason.INVALID.value, "error": str(exc)})
            return Rejected(RejectionReason.INVALID)
        except Exception as exc:
            logger.warning("auth.verifier_error", extra={"reason": RejectionReason.INVALID.value, "error": str(exc)})
            return Rejected(RejectionReason.INVALID)

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            return Rejected(RejectionReason.INVALID)

        if self.revocations.is_revoked(claims):
            return Rejected(RejectionReason.REVOKED)

        email = claims.get("email")
        return Authenticated(
            Principal(
                id=subject,
                email=str(email) if email is not None else None,
                email_verified=bool(claims.get("email_verified", False)),
                claims=claims,
            )
        )

    def revoke(self, principal: Principal) -> None:
        """Revoke the token the principal was derived from."""

        jti = principal.claims.get("jti")
        if isinstance(jti, str) and jti:
            self.revocations.revoke_token(jti, _claim_datetime(principal.claims.get("exp")))
            return
        self.revocations.revoke_subject(principal.id)


def _claim_datetime(value: Any) -> datetime | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)
