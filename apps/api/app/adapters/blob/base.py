"""Blob store interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
import re

_KEY_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


class BlobStoreError(Exception):
    """Raised when the object store rejects or fails an operation."""


def clean_key_segment(value: str) -> str:
    cleaned = _KEY_UNSAFE.sub("_", value.strip())
    return cleaned or "object"


class BlobStore(ABC):
    """Provider-neutral object storage used for uploaded audio."""

    scheme: str = "blob"

    def __init__(self, bucket: str) -> None:
        self.bucket = bucket

    @abstractmethod
    def put(self, key: str, data: bytes, *, content_type: str) -> str:
        """Write ``data`` under ``key`` and return the object URL."""

    @abstractmethod
    def get(self, url: str) -> bytes:
        """Read the object stored at ``url``."""

    @abstractmethod
    def delete(self, url: str) -> None:
        """Remove the object at ``url``; removing a missing object is not an error."""

    @abstractmethod
    def presign(self, url: str, *, expires_in: int) -> str:
        """Return a time-limited download URL."""

    def url_for_key(self, key: str) -> str:
        return f"{self.scheme}://{self.bucket}/{key}"

    def key_from_url(self, url: str) -> str:
        prefix = f"{self.scheme}://{self.bucket}/"
        if not url.startswith(prefix) or len(url) == len(prefix):
            raise BlobStoreError("Object URL does not belong to this bucket")
        return url[len(prefix) :]


__all__ = ["BlobStore", "BlobStoreError", "clean_key_segment"]
