from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import FileResponse, Response

from portal.core.auth import optional_auth, require_auth
from portal.core.config import get_settings
from portal.core.dependencies import get_blob_store, get_credential_verifier
from portal.metrics import generate_metrics_payload, metrics_content_type
from portal.platform.security.context import Principal
from portal.platform.security.verifier import CredentialVerifier
from portal.platform.storage.blobs import BlobStore, LocalBlobStore
from portal.resources.api import (
    appointments_router,
    clients_router,
    leads_router,
    proposals_router,
    support_router,
)
from portal.resources.schemas import MessageEnvelope

router = APIRouter()
router.include_router(leads_router)
router.include_router(appointments_router)
router.include_router(proposals_router)
router.include_router(support_router)
router.include_router(clients_router)


@router.get("/api/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "OK",
        "message": f"{settings.app_name} is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/api/me", tags=["auth"])
async def me(principal: Principal | None = Depends(optional_auth)) -> dict[str, Any]:
    if principal is None:
        return {"authenticated": False, "principal": None}
    return {"authenticated": True, "principal": principal.to_public_dict()}


@router.post("/api/auth/logout", tags=["auth"], response_model=MessageEnvelope)
async def logout(
    principal: Principal = Depends(require_auth),
    verifier: CredentialVerifier = Depends(get_credential_verifier),
) -> MessageEnvelope:
    verifier.revoke(principal)
    return MessageEnvelope(success=True, message="Logged out successfully")


@router.get("/api/files/{key:path}", tags=["files"])
def download_file(
    key: str,
    token: str = Query(...),
    blobs: BlobStore = Depends(get_blob_store),
) -> FileResponse:
    if not isinstance(blobs, LocalBlobStore):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    path = blobs.resolve_download(key, token)
    return FileResponse(path, media_type="application/pdf", filename=path.name)


@router.get("/metrics", tags=["system"])
def metrics() -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
