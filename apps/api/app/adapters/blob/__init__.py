"""Blob store adapters."""

from app.adapters.blob.base import BlobStore, BlobStoreError, clean_key_segment
from app.adapters.blob.memory import InMemoryBlobStore
from app.core.config import Settings


def create_blob_store(settings: Settings) -> BlobStore:
    """Resolve the configured blob backend."""
    if settings.blob_backend == "s3":
        from app.adapters.blob.s3 import S3BlobStore

        return S3BlobStore(
            bucket=settings.s3_bucket,
            endpoint_url=settings.s3_endpoint_url,
            region=settings.s3_region,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
        )
    return InMemoryBlobStore(bucket=settings.s3_bucket, signing_key=settings.webhook_secret)


__all__ = [
    "BlobStore",
    "BlobStoreError",
    "InMemoryBlobStore",
    "clean_key_segment",
    "create_blob_store",
]
