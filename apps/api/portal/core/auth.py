from __future__ import annotations

import logging

from fastapi import Depends
from starlette.requests import Request

from portal.context import set_principal_id
from portal.core.dependencies import get_credential_verifier
from portal.core.errors import AuthRejected, AuthRejectionReason
from portal.metrics import observe_auth_rejection
from portal.platform.security.context import Principal
from portal.platform.security.verifier import Authenticated, CredentialVerifier


logger = logging.getLogger("portal.auth")

_BEARER_PREFIX = "Bearer "


def extract_bearer_token(header: str | None) -> str:
    if not header or not header.startswith(_BEARER_PREFIX):
        raise AuthRejected(AuthRejectionReason.NO_TOKEN)
    token = header[len(_BEARER_PREFIX):].strip()
    if not token:
        raise AuthRejected(AuthRejectionReason.INVALID_FORMAT)
    return token


def authenticate(request: Request, verifier: CredentialVerifier) -> Principal:
    token = extract_bearer_token(request.headers.get("authorization"))
    result = verifier.verify(token)
    if isinstance(result, Authenticated):
        return result.principal
    raise AuthRejected(AuthRejectionReason(result.reason.value))


def _attach_principal(request: Request, principal: Principal) -> None:
    context = getattr(request.state, "context", None)
    if context is not None:
        context.principal = principal
    set_principal_id(principal.id)


async def require_auth(
    request: Request,
    verifier: CredentialVerifier = Depends(get_credential_verifier),
) -> Principal:
    """Resolve the caller or fail the request with 401."""

    try:
        principal = authenticate(request, verifier)
    except AuthRejected as exc:
        observe_auth_rejection(exc.reason.value)
        logger.info("auth.rejected", extra={"reason": exc.reason.value, "path": request.url.path})
        raise
    _attach_principal(request, principal)
    return principal


async def optional_auth(
    request: Request,
    verifier: CredentialVerifier = Depends(get_credential_verifier),
) -> Principal | None:
    try:
        principal = authenticate(request, verifier)
    except AuthRejected:
        return None
    _attach_principal(request, principal)
    return principal
