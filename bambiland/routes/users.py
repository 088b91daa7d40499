"""
Public user lookup, profile (bio, avatar), follows and user galleries.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile

from bambiland.auth import SessionUser, get_current_user, require_user
from bambiland.config import Settings, get_settings
from bambiland.db import DbClient
from bambiland.dependencies import get_db_client, get_fallback_store, get_storage_client
from bambiland.fallback import DevFallbackStore
from bambiland.feed import paginate
from bambiland.routes.common import DB_UNAVAILABLE, fallback_or_fail, page_window
from bambiland.schemas import BioUpdate, GalleryAddRequest, GalleryPage
from bambiland.storage import StorageClient

logger = logging.getLogger(__name__)

router = APIRouter()

BIO_MAX_LENGTH = 250


def _resolve_user_id(requested: Optional[str], user: Optional[SessionUser]) -> str:
    if requested:
        return requested
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user.id


@router.get("/users/by-username")
def user_by_username(
    username: Optional[str] = Query(None), db: DbClient = Depends(get_db_client)
):
    if not username:
        raise HTTPException(status_code=400, detail="username is required")
    user = db.get_user_by_username(username)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {"user": user.as_dict()}


# Profile


@router.get("/profile/bio")
def get_bio(
    user_id: Optional[str] = Query(None, alias="userId"),
    user: Optional[SessionUser] = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    return {"bio": db.get_user_bio(_resolve_user_id(user_id, user))}


@router.post("/profile/bio")
def update_bio(
    payload: BioUpdate,
    user: SessionUser = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    bio = payload.bio.strip() if isinstance(payload.bio, str) else ""
    if len(bio) > BIO_MAX_LENGTH:
        raise HTTPException(status_code=400, detail="Bio exceeds 250 characters")
    if not db.update_user_bio(user.id, bio):
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True}


@router.get("/profile/image")
def get_profile_image(
    user_id: Optional[str] = Query(None, alias="userId"),
    user: Optional[SessionUser] = Depends(get_current_user),
    storage: StorageClient = Depends(get_storage_client),
):
    folder = f"profile-images/{_resolve_user_id(user_id, user)}"
    try:
        objects = storage.list_objects(folder)
    except (BotoCoreError, ClientError):
        logger.exception("Error listing profile images in %s", folder)
        return {"imageUrl": None}

    avatars = [obj for obj in objects if obj["name"].startswith("avatar")]
    if not avatars:
        return {"imageUrl": None}
    latest = max(avatars, key=lambda obj: obj["created_at"])
    return {"imageUrl": storage.public_url(f"{folder}/{latest['name']}")}


@router.post("/profile/image")
async def upload_profile_image(
    file: UploadFile = File(...),
    user: SessionUser = Depends(require_user),
    storage: StorageClient = Depends(get_storage_client),
):
    content_type = file.content_type or "image/png"
    subtype = content_type.split("/")[1] if "/" in content_type else "png"
    # image/svg+xml -> svg
    ext = subtype.split("+")[0].split(";")[0].strip().lower() or "png"
    # Versioned names keep CDN caches from serving a stale avatar.
    path = f"profile-images/{user.id}/avatar-{int(time.time() * 1000)}.{ext}"
    data = await file.read()
    try:
        storage.upload_bytes(path, data, content_type=content_type)
    except (BotoCoreError, ClientError):
        logger.exception("Upload of %s failed", path)
        raise HTTPException(status_code=500, detail="Failed to upload image")
    return {"imageUrl": storage.public_url(path)}


# Follows


@router.post("/users/{user_id}/follow")
def follow_user(
    user_id: str,
    user: SessionUser = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    if user_id == user.id:
        raise HTTPException(status_code=400, detail="Cannot follow yourself")
    db.follow(user.id, user_id)
    return {"following": True}


@router.delete("/users/{user_id}/follow")
def unfollow_user(
    user_id: str,
    user: SessionUser = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    db.unfollow(user.id, user_id)
    return {"following": False}


# Galleries


def _gallery_page(
    user_id: str,
    page: int,
    limit: int,
    username: Optional[str],
    *,
    fallback_when_empty: bool,
    db: DbClient,
    store: DevFallbackStore,
    settings: Settings,
) -> GalleryPage:
    page, limit = page_window(page, limit, default_limit=9)
    items: Optional[list[dict]] = None
    try:
        items = [item.as_dict() for item in db.list_gallery(user_id)]
    except DB_UNAVAILABLE:
        fallback_or_fail(settings, "Gallery lookup")
    if items is None or (
        fallback_when_empty and not items and settings.dev_fallback_enabled
    ):
        items = store.list_gallery(user_id, username)

    page_items, has_more, next_page = paginate(items, page, limit)
    return GalleryPage(
        page=page,
        limit=limit,
        hasMore=has_more,
        nextPage=next_page,
        items=page_items,
    )


def _add_to_gallery(
    user_id: str,
    post_id: Optional[str],
    user: SessionUser,
    *,
    fallback_when_empty: bool,
    db: DbClient,
    store: DevFallbackStore,
    settings: Settings,
) -> dict:
    if not post_id:
        raise HTTPException(status_code=400, detail="postId required")
    try:
        assets = db.list_assets([post_id]).get(post_id, [])
        if assets or not fallback_when_empty or not settings.dev_fallback_enabled:
            inserted = db.add_gallery_items(user_id, assets)
            return {"success": True, "inserted": inserted}
    except DB_UNAVAILABLE:
        fallback_or_fail(settings, "Gallery insert")
    inserted = store.add_gallery_items(user_id, user.name or None, post_id)
    return {"success": True, "inserted": inserted, "devFallback": True}


@router.get("/users/{user_id}/gallery", response_model=GalleryPage)
def get_gallery(
    user_id: str,
    page: int = Query(1),
    limit: int = Query(9),
    username: Optional[str] = Query(None),
    db: DbClient = Depends(get_db_client),
    store: DevFallbackStore = Depends(get_fallback_store),
    settings: Settings = Depends(get_settings),
):
    return _gallery_page(
        user_id,
        page,
        limit,
        username,
        fallback_when_empty=False,
        db=db,
        store=store,
        settings=settings,
    )


@router.post("/users/{user_id}/gallery")
def add_to_gallery(
    user_id: str,
    payload: GalleryAddRequest,
    user: SessionUser = Depends(require_user),
    db: DbClient = Depends(get_db_client),
    store: DevFallbackStore = Depends(get_fallback_store),
    settings: Settings = Depends(get_settings),
):
    return _add_to_gallery(
        user_id,
        payload.post_id,
        user,
        fallback_when_empty=False,
        db=db,
        store=store,
        settings=settings,
    )


@router.get("/users/{user_id}/favorites", response_model=GalleryPage)
def get_favorites(
    user_id: str,
    page: int = Query(1),
    limit: int = Query(9),
    username: Optional[str] = Query(None),
    db: DbClient = Depends(get_db_client),
    store: DevFallbackStore = Depends(get_fallback_store),
    settings: Settings = Depends(get_settings),
):
    return _gallery_page(
        user_id,
        page,
        limit,
        username,
        fallback_when_empty=True,
        db=db,
        store=store,
        settings=settings,
    )


@router.post("/users/{user_id}/favorites")
def add_to_favorites(
    user_id: str,
    payload: GalleryAddRequest,
    user: SessionUser = Depends(require_user),
    db: DbClient = Depends(get_db_client),
    store: DevFallbackStore = Depends(get_fallback_store),
    settings: Settings = Depends(get_settings),
):
    return _add_to_gallery(
        user_id,
        payload.post_id,
        user,
        fallback_when_empty=True,
        db=db,
        store=store,
        settings=settings,
    )
