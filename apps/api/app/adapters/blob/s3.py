"""S3-compatible blob store backed by boto3."""

from __future__ import annotations

from io import BytesIO

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.adapters.blob.base import BlobStore, BlobStoreError


class S3BlobStore(BlobStore):
    scheme = "s3"

    def __init__(
        self,
        *,
        bucket: str,
        endpoint_url: str | None = None,
        region: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
    ) -> None:
        super().__init__(bucket)
        session = boto3.session.Session(
            aws_access_key_id=access_key_id or None,
            aws_secret_access_key=secret_access_key or None,
            region_name=region or None,
        )
        self._client = session.client(
            "s3",
            endpoint_url=endpoint_url or None,
            config=Config(s3={"addressing_style": "path" if endpoint_url else "auto"}),
        )

    def put(self, key: str, data: bytes, *, content_type: str) -> str:
        try:
            self._client.upload_fileobj(
                BytesIO(data),
                self.bucket,
                key,
                ExtraArgs={"ContentType": content_type},
            )
        except (BotoCoreError, ClientError) as exc:
            raise BlobStoreError(f"Failed to upload object: {exc}") from exc
        return self.url_for_key(key)

    def get(self, url: str) -> bytes:
        key = self.key_from_url(url)
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as exc:
            raise BlobStoreError(f"Failed to read object: {exc}") from exc

    def delete(self, url: str) -> None:
        key = self.key_from_url(url)
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise BlobStoreError(f"Failed to delete object: {exc}") from exc

    def presign(self, url: str, *, expires_in: int) -> str:
        key = self.key_from_url(url)
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            raise BlobStoreError(f"Failed to generate presigned URL: {exc}") from exc


__all__ = ["S3BlobStore"]
