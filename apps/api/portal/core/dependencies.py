from datetime import timedelta

from fastapi import Depends
from sqlalchemy.orm import Session
from starlette.requests import Request

from portal.core.config import Settings, get_settings
from portal.core.database import get_db
from portal.platform.security.verifier import CredentialVerifier, InMemoryRevocationList, JwtCredentialVerifier
from portal.platform.storage.blobs import BlobStore, LocalBlobStore, S3BlobStore
from portal.platform.storage.documents import DocumentStore, SqlAlchemyDocumentStore
from portal.resources.models import COLLECTION_MODELS
from portal.resources.service import PortalServices


def build_credential_verifier(settings: Settings) -> JwtCredentialVerifier:
    return JwtCredentialVerifier(
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
        revocations=InMemoryRevocationList(
            max_token_lifetime=timedelta(seconds=settings.jwt_max_token_lifetime_seconds),
        ),
    )


def build_blob_store(settings: Settings) -> BlobStore:
    if settings.storage_backend.lower() == "s3":
        return S3BlobStore(
            settings.s3_bucket,
            region_name=settings.s3_region,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
        )
    return LocalBlobStore(
        settings.local_storage_path,
        base_url=settings.public_base_url,
        signing_secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )


def get_credential_verifier(request: Request) -> CredentialVerifier:
    return request.app.state.credential_verifier


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


def get_document_store(db: Session = Depends(get_db)) -> DocumentStore:
    return SqlAlchemyDocumentStore(db, COLLECTION_MODELS)


def get_portal_services(
    store: DocumentStore = Depends(get_document_store),
    blobs: BlobStore = Depends(get_blob_store),
) -> PortalServices:
    settings = get_settings()
    return PortalServices.build(store, blobs, max_upload_bytes=settings.proposal_max_upload_bytes)
