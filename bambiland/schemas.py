"""
Pydantic schemas for the Bambiland FastAPI backend.

Request fields are optional where the handlers answer missing values with
their own 400 messages.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# Auth


class RegisterRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    # Username or email.
    username: Optional[str] = None
    password: Optional[str] = None


class PublicUser(BaseModel):
    id: str
    username: str
    email: Optional[str] = None
    role: str


class RegisterResponse(BaseModel):
    message: str
    user: PublicUser


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: PublicUser


# Membership


class SubscribeRequest(BaseModel):
    tier_id: Any = None


class TierSummary(BaseModel):
    slug: str
    name: str
    rank: int


class MembershipMeResponse(BaseModel):
    tier: TierSummary


# Posts


class CommentRequest(BaseModel):
    text: Any = None


class LikesResponse(BaseModel):
    postId: str
    count: int
    likedByUser: bool
    users: Optional[list[dict]] = None


class PurchaseResponse(BaseModel):
    postId: str
    purchased: bool


# Admin


class AdminUserCreate(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None


class AdminStoryCreate(BaseModel):
    title: Optional[str] = None
    content: Any = None
    image_url: Optional[str] = None


class AssignmentCreate(BaseModel):
    user_id: Optional[str] = None
    story_id: Optional[str] = None


class MediaItem(BaseModel):
    url: Optional[str] = None
    type: Optional[str] = None
    thumb_url: Optional[str] = None


class MediaPostCreate(BaseModel):
    title: Optional[str] = None
    body: Optional[str] = None
    required_tier_id: Optional[str] = None
    price_cents: Optional[int] = None
    is_published: bool = False
    is_special_card: bool = False
    media: list[MediaItem] = Field(default_factory=list)


# Stories and chapters


class ChapterDraft(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None


class StoryCreate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    cover_image_url: Optional[str] = Field(default=None, alias="coverImageUrl")
    chapters: list[ChapterDraft] = Field(default_factory=list)


class StoryUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    cover_image_url: Optional[str] = Field(default=None, alias="coverImageUrl")
    is_published: Optional[bool] = Field(default=None, alias="isPublished")


class ChapterCreate(CamelModel):
    story_id: Optional[str] = Field(default=None, alias="storyId")
    chapter_number: Optional[int] = Field(default=None, alias="chapterNumber")
    title: Optional[str] = None
    content: Optional[str] = None


class ChapterUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None


class ClaimChaptersRequest(BaseModel):
    user_id: Optional[str] = None


class ChapterImageCreate(CamelModel):
    chapter_id: Optional[str] = Field(default=None, alias="chapterId")
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    image_path: Optional[str] = Field(default=None, alias="imagePath")


# Users, profile and galleries


class BioUpdate(BaseModel):
    bio: Any = None


class GalleryAddRequest(CamelModel):
    post_id: Optional[str] = Field(default=None, alias="postId")


class GalleryPage(BaseModel):
    page: int
    limit: int
    hasMore: bool
    nextPage: Optional[int] = None
    items: list[dict]


class SiteGalleryCreate(CamelModel):
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    image_path: Optional[str] = Field(default=None, alias="imagePath")
    order_index: Optional[int] = Field(default=None, alias="orderIndex")


class UploadResponse(BaseModel):
    url: str
    path: str
