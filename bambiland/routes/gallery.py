"""
Site gallery, raw uploads and storage diagnostics.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy.exc import SQLAlchemyError

from bambiland.auth import SessionUser, require_admin, require_user
from bambiland.db import DbClient
from bambiland.dependencies import get_db_client, get_storage_client
from bambiland.diagnostics import check_storage
from bambiland.schemas import SiteGalleryCreate, UploadResponse
from bambiland.storage import StorageClient

logger = logging.getLogger(__name__)

router = APIRouter()


def _safe_filename(name: Optional[str]) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "-", name or "").strip("-.")
    return cleaned or "upload"


@router.get("/site-gallery")
def list_site_gallery(db: DbClient = Depends(get_db_client)):
    try:
        images = db.list_site_gallery()
    except SQLAlchemyError:
        logger.exception("Error fetching site gallery images")
        return {"images": []}
    return {"images": [image.image_url for image in images]}


@router.post("/site-gallery")
def add_site_gallery_image(
    payload: SiteGalleryCreate,
    admin: SessionUser = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    if not payload.image_url or not payload.image_path:
        raise HTTPException(
            status_code=400, detail="imageUrl and imagePath are required"
        )
    image = db.add_site_gallery_image(
        payload.image_url, payload.image_path, admin.id, payload.order_index
    )
    return {"success": True, "data": [{"id": image.id, "image_url": image.image_url}]}


@router.delete("/site-gallery")
def delete_site_gallery_image(
    image_url: Optional[str] = Query(None, alias="imageUrl"),
    _admin: SessionUser = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    if not image_url:
        raise HTTPException(status_code=400, detail="imageUrl is required")

    record = db.get_site_gallery_image(image_url)
    if record and record.image_path:
        try:
            storage.remove([record.image_path])
        except (BotoCoreError, ClientError):
            # Row removal proceeds; the object can be cleaned up later.
            logger.exception("Error removing storage object %s", record.image_path)

    db.delete_site_gallery_images(image_url)
    return {"success": True}


@router.post("/upload-image", response_model=UploadResponse)
async def upload_image(
    file: UploadFile = File(...),
    chapter_id: Optional[str] = Form(None, alias="chapterId"),
    _user: SessionUser = Depends(require_user),
    storage: StorageClient = Depends(get_storage_client),
):
    folder = _safe_filename(chapter_id) if chapter_id else "uploads"
    path = f"chapter-images/{folder}/{int(time.time() * 1000)}-{_safe_filename(file.filename)}"
    data = await file.read()
    try:
        storage.upload_bytes(path, data, content_type=file.content_type)
    except (BotoCoreError, ClientError):
        logger.exception("Upload of %s failed", path)
        raise HTTPException(status_code=500, detail="Failed to upload image")
    return UploadResponse(url=storage.public_url(path), path=path)


@router.get("/check-storage")
def check_storage_setup(
    _admin: SessionUser = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    return check_storage(db, storage)
