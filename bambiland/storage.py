"""
Storage abstraction for Supabase storage (S3-compatible) and in-memory testing.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional, Protocol

import boto3
from botocore.config import Config


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    bucket: str

    def upload_bytes(
        self, path: str, data: bytes, content_type: Optional[str] = None
    ) -> None:
        ...

    def public_url(self, path: str) -> str:
        ...

    def list_objects(self, prefix: str) -> list[dict]:
        ...

    def remove(self, paths: list[str]) -> None:
        ...

    def list_buckets(self) -> list[str]:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    bucket: str = "story-images"
    base_url: str = "https://example.test/storage"
    stored_objects: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def upload_bytes(
        self, path: str, data: bytes, content_type: Optional[str] = None
    ) -> None:
        self.stored_objects[path] = {
            "data": data,
            "content_type": content_type,
            "created_at": time.time(),
        }

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{self.bucket}/{path}"

    def list_objects(self, prefix: str) -> list[dict]:
        prefix = prefix.rstrip("/") + "/"
        items = []
        for path, stored in self.stored_objects.items():
            if path.startswith(prefix):
                items.append(
                    {
                        "name": path[len(prefix):],
                        "path": path,
                        "created_at": stored["created_at"],
                    }
                )
        return items

    def remove(self, paths: list[str]) -> None:
        for path in paths:
            self.stored_objects.pop(path, None)

    def list_buckets(self) -> list[str]:
        return [self.bucket]


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client for the Supabase storage bucket.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: Optional[str] = None

    def __post_init__(self):
        # Supabase exposes buckets with path-style addressing only.
        config = Config(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint,
            region_name=self.region,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def upload_bytes(
        self, path: str, data: bytes, content_type: Optional[str] = None
    ) -> None:
        self._client.put_object(
            Bucket=self.bucket,
            Key=path,
            Body=data,
            ContentType=content_type or "application/octet-stream",
        )

    def public_url(self, path: str) -> str:
        base = (self.public_base_url or self.endpoint).rstrip("/")
        return f"{base}/{self.bucket}/{path}"

    def list_objects(self, prefix: str) -> list[dict]:
        prefix = prefix.rstrip("/") + "/"
        response = self._client.list_objects_v2(Bucket=self.bucket, Prefix=prefix)
        items = []
        for obj in response.get("Contents", []):
            key = obj["Key"]
            modified = obj.get("LastModified")
            items.append(
                {
                    "name": key[len(prefix):],
                    "path": key,
                    "created_at": modified.timestamp() if modified else 0.0,
                }
            )
        return items

    def remove(self, paths: list[str]) -> None:
        if not paths:
            return
        self._client.delete_objects(
            Bucket=self.bucket,
            Delete={"Objects": [{"Key": path} for path in paths]},
        )

    def list_buckets(self) -> list[str]:
        response = self._client.list_buckets()
        return [bucket["Name"] for bucket in response.get("Buckets", [])]
