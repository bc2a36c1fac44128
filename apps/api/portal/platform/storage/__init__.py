from portal.platform.storage.blobs import BlobStore, LocalBlobStore, S3BlobStore
from portal.platform.storage.documents import Document, DocumentStore, SqlAlchemyDocumentStore

__all__ = [
    "BlobStore",
    "LocalBlobStore",
    "S3BlobStore",
    "Document",
    "DocumentStore",
    "SqlAlchemyDocumentStore",
]
