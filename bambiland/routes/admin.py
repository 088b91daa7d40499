"""
Admin-only management routes.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from bambiland.auth import SessionUser, hash_password, require_admin
from bambiland.config import Settings, get_settings
from bambiland.db import ConflictError, DbClient, MediaPostRecord, StoryRecord
from bambiland.dependencies import get_db_client, get_fallback_store
from bambiland.fallback import DevFallbackStore
from bambiland.routes.common import DB_UNAVAILABLE, fallback_or_fail
from bambiland.routes.stories import create_default_story
from bambiland.schemas import (
    AdminStoryCreate,
    AdminUserCreate,
    AssignmentCreate,
    MediaPostCreate,
)
from bambiland.story_parser import parse_story_file

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])


# Users


@router.get("/users")
def list_users(db: DbClient = Depends(get_db_client)):
    return [user.as_dict() for user in db.list_users()]


@router.post("/users", status_code=201)
def create_user(
    payload: AdminUserCreate,
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    if not payload.username or not payload.email or not payload.password:
        raise HTTPException(status_code=400, detail="Missing required fields")
    try:
        user = db.create_user(
            payload.username,
            payload.email,
            hash_password(payload.password, settings.bcrypt_rounds),
            role=payload.role or "user",
        )
    except ConflictError:
        raise HTTPException(status_code=400, detail="User already exists")
    return user.as_dict()


@router.delete("/users/{user_id}")
def delete_user(user_id: str, db: DbClient = Depends(get_db_client)):
    user = db.get_user(user_id)
    if user and user.role == "admin":
        raise HTTPException(status_code=400, detail="Cannot delete admin users")
    if not db.delete_user(user_id):
        raise HTTPException(status_code=404, detail="User not found")
    return {"message": "User deleted successfully"}


# Stories


@router.get("/stories")
def list_stories(db: DbClient = Depends(get_db_client)):
    return [story.as_dict() for story in db.list_stories()]


@router.post("/stories", status_code=201)
def create_story(
    payload: AdminStoryCreate,
    admin: SessionUser = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    if not payload.title or not payload.content:
        raise HTTPException(status_code=400, detail="Title and content are required")
    story = db.create_story(
        StoryRecord(
            id="",
            title=payload.title,
            content=payload.content,
            cover_image_url=payload.image_url or None,
            user_id=admin.id,
        )
    )
    return story.as_dict()


@router.delete("/stories/{story_id}")
def delete_story(story_id: str, db: DbClient = Depends(get_db_client)):
    if not db.delete_story(story_id):
        raise HTTPException(status_code=404, detail="Story not found")
    return {"message": "Story deleted successfully"}


# Assignments


@router.get("/assignments")
def list_assignments(db: DbClient = Depends(get_db_client)):
    return [assignment.as_dict() for assignment in db.list_assignments()]


@router.post("/assignments", status_code=201)
def create_assignment(payload: AssignmentCreate, db: DbClient = Depends(get_db_client)):
    if not payload.user_id or not payload.story_id:
        raise HTTPException(
            status_code=400, detail="User ID and Story ID are required"
        )
    try:
        assignment = db.create_assignment(payload.user_id, payload.story_id)
    except ConflictError:
        raise HTTPException(
            status_code=400, detail="Story already assigned to this user"
        )
    return assignment.as_dict()


@router.delete("/assignments/{assignment_id}")
def delete_assignment(assignment_id: str, db: DbClient = Depends(get_db_client)):
    if not db.delete_assignment(assignment_id):
        raise HTTPException(status_code=404, detail="Assignment not found")
    return {"message": "Assignment deleted successfully"}


# Media posts


@router.get("/media-posts")
def list_media_posts(
    db: DbClient = Depends(get_db_client),
    store: DevFallbackStore = Depends(get_fallback_store),
    settings: Settings = Depends(get_settings),
):
    try:
        posts = db.list_media_posts()
        assets = db.list_assets([post.id for post in posts])
    except DB_UNAVAILABLE:
        fallback_or_fail(settings, "Media post listing")
        return {"posts": store.read_posts(), "devFallback": True}
    for post in posts:
        post.assets = assets.get(post.id, [])
    return {"posts": [post.as_dict() for post in posts]}


@router.post("/media-posts")
def create_media_post(
    payload: MediaPostCreate,
    admin: SessionUser = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
    store: DevFallbackStore = Depends(get_fallback_store),
    settings: Settings = Depends(get_settings),
):
    media = [item.model_dump() for item in payload.media if item.url]
    skipped = len(payload.media) - len(media)
    if skipped:
        logger.warning("Skipping %d media items without a url", skipped)
    try:
        post = db.create_media_post(
            MediaPostRecord(
                id="",
                user_id=admin.id,
                title=payload.title or None,
                body=payload.body or None,
                required_tier_id=payload.required_tier_id or None,
                price_cents=payload.price_cents or None,
                is_published=payload.is_published,
                is_special_card=payload.is_special_card,
            ),
            media,
        )
    except DB_UNAVAILABLE:
        fallback_or_fail(settings, "Media post insert")
        post = store.add_post(
            admin.id,
            title=payload.title,
            body=payload.body,
            required_tier_id=payload.required_tier_id,
            price_cents=payload.price_cents,
            is_published=payload.is_published,
            is_special_card=payload.is_special_card,
            media=media,
        )
        return {"success": True, "postId": post["id"], "devFallback": True}
    return {"success": True, "postId": post.id}


# Chapters


@router.get("/chapters")
def admin_chapters(
    admin: SessionUser = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    """
    Return the admin's default story chapters, creating the story from the
    story file when missing and back-filling any chapter numbers it lacks.
    """
    default_chapters = parse_story_file(settings.story_file_path)
    stories = db.list_stories(admin.id)
    if stories:
        story_id = stories[0].id
    else:
        if not default_chapters:
            raise HTTPException(status_code=500, detail="No chapters available")
        story, _ = create_default_story(db, admin.id, default_chapters)
        story_id = story.id

    chapters = db.list_chapters(story_id, user_id=admin.id)
    if len(chapters) < 10 and default_chapters:
        existing = {chapter.chapter_number for chapter in chapters}
        missing = [c for c in default_chapters if c.number not in existing]
        if missing:
            db.create_chapters(
                story_id,
                admin.id,
                [(c.number, c.title, c.content) for c in missing],
            )
            chapters = db.list_chapters(story_id, user_id=admin.id)
    return {"chapters": [chapter.as_dict() for chapter in chapters]}
