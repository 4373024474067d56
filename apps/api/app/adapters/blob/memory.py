"""Process-local blob store for development and tests."""

from __future__ import annotations

from dataclasses import dataclass
import hashlib
import hmac
import threading
import time
from urllib.parse import urlencode

from app.adapters.blob.base import BlobStore, BlobStoreError


@dataclass(slots=True)
class _StoredObject:
    data: bytes
    content_type: str


class InMemoryBlobStore(BlobStore):
    """Keeps objects in a dict and records every call for assertions.

    ``fail_next("put" | "get" | "delete" | "presign")`` makes the next call of
    that operation raise ``BlobStoreError``.
    """

    scheme = "memory"

    def __init__(self, bucket: str = "audio-uploads", *, signing_key: str = "local-signing-key") -> None:
        super().__init__(bucket)
        self.objects: dict[str, _StoredObject] = {}
        self.calls: list[tuple[str, str]] = []
        self._failures: dict[str, int] = {}
        self._signing_key = signing_key.encode("utf-8")
        self._lock = threading.Lock()

    def fail_next(self, operation: str, *, times: int = 1) -> None:
        with self._lock:
            self._failures[operation] = times

    def _check_failure(self, operation: str) -> None:
        remaining = self._failures.get(operation, 0)
        if remaining <= 0:
            return
        if remaining == 1:
            del self._failures[operation]
        else:
            self._failures[operation] = remaining - 1
        raise BlobStoreError(f"Injected {operation} failure")

    def put(self, key: str, data: bytes, *, content_type: str) -> str:
        with self._lock:
            self.calls.append(("put", key))
            self._check_failure("put")
            self.objects[key] = _StoredObject(data=bytes(data), content_type=content_type)
        return self.url_for_key(key)

    def get(self, url: str) -> bytes:
        key = self.key_from_url(url)
        with self._lock:
            self.calls.append(("get", key))
            self._check_failure("get")
            stored = self.objects.get(key)
        if stored is None:
            raise BlobStoreError("Object not found")
        return stored.data

    def delete(self, url: str) -> None:
        key = self.key_from_url(url)
        with self._lock:
            self.calls.append(("delete", key))
            self._check_failure("delete")
            self.objects.pop(key, None)

    def presign(self, url: str, *, expires_in: int) -> str:
        key = self.key_from_url(url)
        with self._lock:
            self.calls.append(("presign", key))
            self._check_failure("presign")
        expires = int(time.time()) + expires_in
        signature = hmac.new(self._signing_key, f"{key}:{expires}".encode("utf-8"), hashlib.sha256).hexdigest()
        return f"{url}?{urlencode({'expires': expires, 'signature': signature})}"

    def has_object(self, url: str) -> bool:
        return self.key_from_url(url) in self.objects


__all__ = ["InMemoryBlobStore"]
