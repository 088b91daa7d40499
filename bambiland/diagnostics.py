"""
Storage setup diagnostics shared by the check-storage route and script.
"""

from __future__ import annotations

import logging
import time

from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy.exc import SQLAlchemyError

from bambiland.db import DbClient
from bambiland.storage import StorageClient

logger = logging.getLogger(__name__)


def check_storage(db: DbClient, storage: StorageClient) -> dict:
    """
    Report whether the bucket exists, the site gallery table answers, and a
    test object can be uploaded (and removed again).
    """
    results = {
        "bucket": {"exists": False, "allBuckets": [], "error": None},
        "table": {"exists": False, "error": None},
        "upload": {"success": False, "path": None, "error": None},
    }

    try:
        buckets = storage.list_buckets()
        results["bucket"]["allBuckets"] = buckets
        results["bucket"]["exists"] = storage.bucket in buckets
    except (BotoCoreError, ClientError) as exc:
        results["bucket"]["error"] = str(exc)

    try:
        db.list_site_gallery()
        results["table"]["exists"] = True
    except SQLAlchemyError as exc:
        results["table"]["error"] = str(exc)

    if results["bucket"]["exists"]:
        path = f"test-{int(time.time() * 1000)}.txt"
        try:
            storage.upload_bytes(path, b"test content", content_type="text/plain")
            results["upload"]["success"] = True
            results["upload"]["path"] = path
            storage.remove([path])
        except (BotoCoreError, ClientError) as exc:
            logger.warning("Test upload to %s failed", storage.bucket, exc_info=True)
            results["upload"]["error"] = str(exc)
    return results
