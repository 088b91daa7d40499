"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from bambiland.config import get_settings
from bambiland.db import DbClient, InMemoryDbClient, PostgresDbClient
from bambiland.fallback import DevFallbackStore
from bambiland.storage import InMemoryStorageClient, S3StorageClient, StorageClient

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None
_fallback_store: DevFallbackStore | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so in-memory state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(settings.database_url)
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.storage_endpoint:
        _storage_client = InMemoryStorageClient(bucket=settings.storage_bucket)
    else:
        _storage_client = S3StorageClient(
            bucket=settings.storage_bucket,
            region=settings.storage_region or "",
            endpoint=settings.storage_endpoint,
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.storage_public_base_url,
        )
    return _storage_client


def get_fallback_store() -> DevFallbackStore:
    global _fallback_store
    if _fallback_store:
        return _fallback_store
    settings = get_settings()
    _fallback_store = DevFallbackStore(settings.dev_fallback_dir)
    return _fallback_store
