"""
Story reader routes: stories, chapters, chapter images and the default story.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from bambiland.auth import SessionUser, require_admin, require_user
from bambiland.config import Settings, get_settings
from bambiland.db import DbClient, StoryRecord
from bambiland.dependencies import get_db_client
from bambiland.schemas import (
    ChapterCreate,
    ChapterImageCreate,
    ChapterUpdate,
    ClaimChaptersRequest,
    StoryCreate,
    StoryUpdate,
)
from bambiland.story_parser import ParsedChapter, parse_story_file

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_STORY_TITLE = "Dawn's Molten Journey - Complete Story"
DEFAULT_STORY_SLUG = "dawns-molten-journey-complete"
DEFAULT_STORY_DESCRIPTION = (
    "A captivating story of passion and discovery in Szeged - "
    "Complete story with all 10 chapters"
)


def create_default_story(
    db: DbClient, user_id: str, chapters: list[ParsedChapter]
) -> tuple[StoryRecord, int]:
    """Create the default story for ``user_id`` with the parsed chapters."""
    story = db.create_story(
        StoryRecord(
            id="",
            title=DEFAULT_STORY_TITLE,
            slug=DEFAULT_STORY_SLUG,
            description=DEFAULT_STORY_DESCRIPTION,
            user_id=user_id,
            is_published=False,
        )
    )
    created = db.create_chapters(
        story.id,
        user_id,
        [(chapter.number, chapter.title, chapter.content) for chapter in chapters],
    )
    logger.info("Seeded default story %s for %s", story.id, user_id)
    return story, len(created)


@router.get("/stories")
def list_my_stories(
    user: SessionUser = Depends(require_user), db: DbClient = Depends(get_db_client)
):
    return {"stories": [story.as_dict() for story in db.list_stories(user.id)]}


@router.post("/stories")
def create_story(
    payload: StoryCreate,
    user: SessionUser = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    if not payload.title:
        raise HTTPException(status_code=400, detail="Title is required")
    story = db.create_story(
        StoryRecord(
            id="",
            title=payload.title,
            description=payload.description or "",
            cover_image_url=payload.cover_image_url,
            user_id=user.id,
            is_published=False,
        )
    )
    if payload.chapters:
        db.create_chapters(
            story.id,
            user.id,
            [
                (index + 1, chapter.title or "", chapter.content or "")
                for index, chapter in enumerate(payload.chapters)
            ],
        )
    return {"story": story.as_dict(), "success": True}


@router.get("/stories/assigned")
def list_assigned_stories(
    user: SessionUser = Depends(require_user), db: DbClient = Depends(get_db_client)
):
    if user.is_admin:
        stories = db.list_stories()
    else:
        stories = db.list_assigned_stories(user.id)
    return {"stories": [story.as_dict() for story in stories]}


@router.get("/stories/{story_id}")
def get_story(
    story_id: str,
    user: SessionUser = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    story = db.get_story(story_id, user_id=user.id)
    if not story:
        raise HTTPException(status_code=404, detail="Story not found")
    return {"story": story.as_dict()}


@router.put("/stories/{story_id}")
def update_story(
    story_id: str,
    payload: StoryUpdate,
    user: SessionUser = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    story = db.update_story(story_id, user.id, payload.model_dump(exclude_unset=True))
    if not story:
        raise HTTPException(status_code=404, detail="Story not found")
    return {"story": story.as_dict(), "success": True}


@router.delete("/stories/{story_id}")
def delete_story(
    story_id: str,
    user: SessionUser = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    if not db.delete_story(story_id, user_id=user.id):
        raise HTTPException(status_code=404, detail="Story not found")
    return {"success": True}


@router.post("/chapters")
def create_chapter(
    payload: ChapterCreate,
    user: SessionUser = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    if (
        not payload.story_id
        or payload.chapter_number is None
        or not payload.title
        or not payload.content
    ):
        raise HTTPException(status_code=400, detail="Missing required fields")
    if not db.get_story(payload.story_id, user_id=user.id):
        raise HTTPException(status_code=404, detail="Story not found")
    chapter = db.create_chapters(
        payload.story_id,
        user.id,
        [(payload.chapter_number, payload.title, payload.content)],
    )[0]
    return {"chapter": chapter.as_dict(), "success": True}


# Declared before /chapters/{chapter_id} so the literal path wins.
@router.post("/chapters/update-user-id")
def claim_orphan_chapters(
    payload: ClaimChaptersRequest,
    _admin: SessionUser = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    if not payload.user_id:
        raise HTTPException(status_code=400, detail="user_id is required")
    chapters = db.claim_orphan_chapters(payload.user_id)
    return {
        "message": "Chapters updated successfully",
        "updated_count": len(chapters),
        "chapters": [chapter.as_dict() for chapter in chapters],
    }


@router.put("/chapters/{chapter_id}")
def update_chapter(
    chapter_id: str,
    payload: ChapterUpdate,
    user: SessionUser = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    if not payload.title or not payload.content:
        raise HTTPException(status_code=400, detail="Title and content are required")
    chapter = db.update_chapter(chapter_id, user.id, payload.title, payload.content)
    if not chapter:
        raise HTTPException(status_code=404, detail="Chapter not found")
    return {"chapter": chapter.as_dict(), "success": True}


@router.delete("/chapters/{chapter_id}")
def delete_chapter(
    chapter_id: str,
    user: SessionUser = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    if not db.delete_chapter(chapter_id, user.id):
        raise HTTPException(status_code=404, detail="Chapter not found")
    return {"success": True}


@router.get("/chapter-images")
def list_chapter_images(
    story_id: Optional[str] = Query(None, alias="storyId"),
    user: SessionUser = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    if story_id:
        chapter_ids = [chapter.id for chapter in db.list_chapters(story_id)]
        if not chapter_ids:
            return {"imagesByChapter": {}}
        images = db.list_chapter_images(chapter_ids=chapter_ids)
    else:
        images = db.list_chapter_images(user_id=user.id)

    images_by_chapter: dict[str, list[str]] = {}
    for image in images:
        images_by_chapter.setdefault(image.chapter_id, []).append(image.image_url)
    return {"imagesByChapter": images_by_chapter}


@router.post("/chapter-images")
def add_chapter_image(
    payload: ChapterImageCreate,
    user: SessionUser = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    if not payload.chapter_id or not payload.image_url or not payload.image_path:
        raise HTTPException(status_code=400, detail="Missing required fields")
    image = db.add_chapter_image(
        payload.chapter_id, payload.image_url, payload.image_path, user.id
    )
    return {
        "success": True,
        "data": {
            "id": image.id,
            "chapter_id": image.chapter_id,
            "image_url": image.image_url,
            "image_path": image.image_path,
        },
    }


@router.delete("/chapter-images")
def delete_chapter_image(
    image_url: Optional[str] = Query(None, alias="imageUrl"),
    user: SessionUser = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    if not image_url:
        raise HTTPException(status_code=400, detail="Image URL is required")
    db.delete_chapter_images(image_url, user.id)
    return {"success": True}


@router.post("/seed-default-story")
def seed_default_story(
    user: SessionUser = Depends(require_user),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    if db.list_stories(user.id):
        return {"message": "User already has stories"}

    chapters = parse_story_file(settings.story_file_path)
    if not chapters:
        raise HTTPException(status_code=500, detail="No chapters found in story file")

    story, count = create_default_story(db, user.id, chapters)
    return {"story": story.as_dict(), "chaptersCount": count, "success": True}
