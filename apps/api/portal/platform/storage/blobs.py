from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Protocol
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from jose import JWTError, jwt

from portal.core.errors import Forbidden, NotFound, UpstreamFailure


logger = logging.getLogger("portal.storage")

_DOWNLOAD_TOKEN_PURPOSE = "blob.download"


class BlobStore(Protocol):
    """File storage able to hand out time-limited download links."""

    def put(self, key: str, content: bytes, content_type: str) -> None:
        ...

    def signed_download_url(self, key: str, expires_in: int) -> str:
        ...

    def delete(self, key: str) -> None:
        ...


class S3BlobStore:
    adapter_name = "blob_store"

    def __init__(
        self,
        bucket: str,
        *,
        region_name: str = "us-east-1",
        aws_access_key_id: str | None = None,
        aws_secret_access_key: str | None = None,
        client: Any | None = None,
    ) -> None:
        self.bucket = bucket
        self._client = client or boto3.client(
            "s3",
            region_name=region_name,
            aws_access_key_id=aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key,
            config=Config(signature_version="s3v4"),
        )

    def put(self, key: str, content: bytes, content_type: str) -> None:
        try:
            self._client.put_object(Bucket=self.bucket, Key=key, Body=content, ContentType=content_type)
        except (BotoCoreError, ClientError) as exc:
            raise self._failure("put", key, exc) from exc

    def signed_download_url(self, key: str, expires_in: int) -> str:
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            raise self._failure("sign", key, exc) from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise self._failure("delete", key, exc) from exc

    def _failure(self, operation: str, key: str, exc: Exception) -> UpstreamFailure:
        logger.error("blob_store.failed", extra={"action": operation, "resource_id": key, "error": str(exc)})
        return UpstreamFailure(self.adapter_name, f"Blob store {operation} failed")


class LocalBlobStore:
    """Disk-backed blob store for development.

    Download links point at ``/api/files/{key}`` and carry a signed, expiring
    token instead of a cloud provider signature.
    """

    adapter_name = "blob_store"

    def __init__(self, root: str | Path, *, base_url: str, signing_secret: str, algorithm: str = "HS256") -> None:
        self.root = Path(root)
        self._base_url = base_url.rstrip("/")
        self._secret = signing_secret
        self._algorithm = algorithm

    def put(self, key: str, content: bytes, content_type: str) -> None:
        path = self._path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as exc:
            raise self._failure("put", key, exc) from exc

    def signed_download_url(self, key: str, expires_in: int) -> str:
        self._path_for(key)
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        token = jwt.encode(
            {"key": key, "purpose": _DOWNLOAD_TOKEN_PURPOSE, "exp": int(expires_at.timestamp())},
            self._secret,
            algorithm=self._algorithm,
        )
        return f"{self._base_url}/api/files/{quote(key)}?token={token}"

    def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise self._failure("delete", key, exc) from exc

    def resolve_download(self, key: str, token: str) -> Path:
        """Return the file behind a signed link, or raise if the link is not valid for it."""

        try:
            path = self._path_for(key)
        except ValueError:
            raise NotFound("file", key) from None

        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError:
            raise Forbidden("file", key) from None
        if claims.get("purpose") != _DOWNLOAD_TOKEN_PURPOSE or claims.get("key") != key:
            raise Forbidden("file", key)

        if not path.is_file():
            raise NotFound("file", key)
        return path

    def _path_for(self, key: str) -> Path:
        parts = PurePosixPath(key).parts
        if not parts or key.startswith("/") or any(part in {"..", "."} for part in parts):
            raise ValueError(f"invalid blob key: {key!r}")
        return self.root.joinpath(*parts)

    def _failure(self, operation: str, key: str, exc: Exception) -> UpstreamFailure:
        logger.error("blob_store.failed", extra={"action": operation, "resource_id": key, "error": str(exc)})
        return UpstreamFailure(self.adapter_name, f"Blob store {operation} failed")
