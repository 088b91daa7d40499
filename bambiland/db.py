"""
Database abstraction for the hosted Postgres database and an in-memory
SQLite implementation used in development and tests.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Protocol

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    func,
    or_,
    select,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool


class ConflictError(Exception):
    """Raised when a write would duplicate an existing record."""


def iso_timestamp(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class UserRecord:
    id: str
    username: str
    email: Optional[str]
    password_hash: str
    role: str = "user"
    bio: Optional[str] = None
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        # Never expose the password hash.
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "created_at": iso_timestamp(self.created_at),
        }


@dataclass
class TierRecord:
    id: str
    slug: str
    name: str
    rank: int
    monthly_price_cents: int = 0
    description: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "slug": self.slug,
            "name": self.name,
            "rank": self.rank,
            "monthly_price_cents": self.monthly_price_cents,
            "description": self.description,
        }


@dataclass
class MediaAssetRecord:
    id: str
    post_id: str
    media_url: str
    media_type: str
    thumb_url: Optional[str] = None
    order_index: int = 0

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "post_id": self.post_id,
            "media_url": self.media_url,
            "media_type": self.media_type,
            "thumb_url": self.thumb_url,
            "order_index": self.order_index,
        }


@dataclass
class MediaPostRecord:
    id: str
    user_id: str
    title: Optional[str] = None
    body: Optional[str] = None
    required_tier_id: Optional[str] = None
    price_cents: Optional[int] = None
    is_published: bool = False
    is_special_card: bool = False
    created_at: float = field(default_factory=lambda: time.time())
    assets: list[MediaAssetRecord] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "body": self.body,
            "required_tier_id": self.required_tier_id,
            "price_cents": self.price_cents,
            "is_published": self.is_published,
            "is_special_card": self.is_special_card,
            "created_at": iso_timestamp(self.created_at),
            "assets": [asset.as_dict() for asset in self.assets],
        }


@dataclass
class CommentRecord:
    id: str
    post_id: str
    user_id: str
    username: str
    text: str
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "username": self.username,
            "text": self.text,
            "created_at": iso_timestamp(self.created_at),
        }


@dataclass
class GalleryItemRecord:
    asset_id: str
    post_id: str
    media_url: str
    media_type: str
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "asset_id": self.asset_id,
            "post_id": self.post_id,
            "media_url": self.media_url,
            "media_type": self.media_type,
            "created_at": iso_timestamp(self.created_at),
        }


@dataclass
class ChapterRecord:
    id: str
    story_id: str
    chapter_number: int
    title: str
    content: str
    user_id: Optional[str] = None
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "story_id": self.story_id,
            "chapter_number": self.chapter_number,
            "title": self.title,
            "content": self.content,
            "created_at": iso_timestamp(self.created_at),
            "updated_at": iso_timestamp(self.updated_at),
        }


@dataclass
class StoryRecord:
    id: str
    title: str
    slug: Optional[str] = None
    description: Optional[str] = None
    content: Any = None
    cover_image_url: Optional[str] = None
    is_published: bool = False
    user_id: Optional[str] = None
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())
    chapters: list[ChapterRecord] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "description": self.description,
            "content": self.content,
            "cover_image_url": self.cover_image_url,
            "is_published": self.is_published,
            "user_id": self.user_id,
            "created_at": iso_timestamp(self.created_at),
            "updated_at": iso_timestamp(self.updated_at),
            "chapters": [chapter.as_dict() for chapter in self.chapters],
        }


@dataclass
class AssignmentRecord:
    id: str
    user_id: str
    story_id: str
    assigned_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "story_id": self.story_id,
            "assigned_at": iso_timestamp(self.assigned_at),
        }


@dataclass
class ChapterImageRecord:
    id: str
    chapter_id: str
    image_url: str
    image_path: str
    user_id: str
    created_at: float = field(default_factory=lambda: time.time())


@dataclass
class SiteGalleryImageRecord:
    id: str
    image_url: str
    image_path: str
    uploaded_by: str
    order_index: Optional[int] = None
    created_at: float = field(default_factory=lambda: time.time())


class DbClient(Protocol):
    """Interface for database access."""

    # Users
    def create_user(
        self, username: str, email: Optional[str], password_hash: str, role: str = "user"
    ) -> UserRecord:
        ...

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        ...

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        ...

    def find_user_by_login(self, identifier: str) -> Optional[UserRecord]:
        ...

    def find_conflicting_user(
        self, username: str, email: Optional[str]
    ) -> Optional[UserRecord]:
        ...

    def list_users(self) -> list[UserRecord]:
        ...

    def delete_user(self, user_id: str) -> bool:
        ...

    def delete_users_by_username(self, usernames: Iterable[str]) -> int:
        ...

    def get_user_bio(self, user_id: str) -> Optional[str]:
        ...

    def update_user_bio(self, user_id: str, bio: str) -> bool:
        ...

    def count_users(self) -> int:
        ...

    # Membership
    def list_tiers(self) -> list[TierRecord]:
        ...

    def get_tier(self, tier_id: str) -> Optional[TierRecord]:
        ...

    def save_tier(self, tier: TierRecord) -> None:
        ...

    def get_active_tier(self, user_id: str) -> Optional[TierRecord]:
        ...

    def set_active_subscription(self, user_id: str, tier_id: str) -> None:
        ...

    def count_active_subscriptions(self) -> Dict[str, int]:
        ...

    # Follows
    def list_followed_ids(self, user_id: str) -> list[str]:
        ...

    def follow(self, follower_id: str, followed_id: str) -> None:
        ...

    def unfollow(self, follower_id: str, followed_id: str) -> bool:
        ...

    # Media posts
    def create_media_post(
        self, post: MediaPostRecord, media: list[dict]
    ) -> MediaPostRecord:
        ...

    def list_media_posts(
        self, *, published_only: bool = False, limit: Optional[int] = None
    ) -> list[MediaPostRecord]:
        ...

    def list_assets(self, post_ids: list[str]) -> Dict[str, list[MediaAssetRecord]]:
        ...

    # Engagement
    def list_likes(self, post_id: str) -> list[dict]:
        ...

    def toggle_like(self, post_id: str, user_id: str, username: str) -> bool:
        ...

    def list_comments(self, post_id: str) -> list[CommentRecord]:
        ...

    def add_comment(
        self, post_id: str, user_id: str, username: str, text: str
    ) -> CommentRecord:
        ...

    def has_purchased(self, post_id: str, user_id: str) -> bool:
        ...

    def record_purchase(self, post_id: str, user_id: str) -> None:
        ...

    def list_purchased_post_ids(self, user_id: str) -> set[str]:
        ...

    # User gallery
    def list_gallery(self, user_id: str) -> list[GalleryItemRecord]:
        ...

    def add_gallery_items(
        self, user_id: str, assets: list[MediaAssetRecord]
    ) -> int:
        ...

    # Stories and chapters
    def list_stories(self, user_id: Optional[str] = None) -> list[StoryRecord]:
        ...

    def get_story(
        self, story_id: str, user_id: Optional[str] = None
    ) -> Optional[StoryRecord]:
        ...

    def create_story(self, story: StoryRecord) -> StoryRecord:
        ...

    def update_story(
        self, story_id: str, user_id: str, changes: dict
    ) -> Optional[StoryRecord]:
        ...

    def delete_story(self, story_id: str, user_id: Optional[str] = None) -> bool:
        ...

    def list_assigned_stories(self, user_id: str) -> list[StoryRecord]:
        ...

    def create_chapters(
        self, story_id: str, user_id: Optional[str], chapters: list[tuple[int, str, str]]
    ) -> list[ChapterRecord]:
        ...

    def list_chapters(
        self, story_id: str, user_id: Optional[str] = None
    ) -> list[ChapterRecord]:
        ...

    def update_chapter(
        self, chapter_id: str, user_id: str, title: str, content: str
    ) -> Optional[ChapterRecord]:
        ...

    def delete_chapter(self, chapter_id: str, user_id: str) -> bool:
        ...

    def claim_orphan_chapters(self, user_id: str) -> list[ChapterRecord]:
        ...

    # Assignments
    def list_assignments(self) -> list[AssignmentRecord]:
        ...

    def find_assignment(
        self, user_id: str, story_id: str
    ) -> Optional[AssignmentRecord]:
        ...

    def create_assignment(self, user_id: str, story_id: str) -> AssignmentRecord:
        ...

    def delete_assignment(self, assignment_id: str) -> bool:
        ...

    # Chapter images
    def list_chapter_images(
        self,
        *,
        chapter_ids: Optional[list[str]] = None,
        user_id: Optional[str] = None,
    ) -> list[ChapterImageRecord]:
        ...

    def add_chapter_image(
        self, chapter_id: str, image_url: str, image_path: str, user_id: str
    ) -> ChapterImageRecord:
        ...

    def delete_chapter_images(self, image_url: str, user_id: str) -> int:
        ...

    # Site gallery
    def list_site_gallery(self) -> list[SiteGalleryImageRecord]:
        ...

    def add_site_gallery_image(
        self,
        image_url: str,
        image_path: str,
        uploaded_by: str,
        order_index: Optional[int] = None,
    ) -> SiteGalleryImageRecord:
        ...

    def get_site_gallery_image(
        self, image_url: str
    ) -> Optional[SiteGalleryImageRecord]:
        ...

    def delete_site_gallery_images(self, image_url: str) -> int:
        ...


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., the
    Supabase Postgres connection string, or SQLite for tests).
    """

    def __init__(self, database_url: str, **engine_kwargs):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        if not engine_kwargs:
            engine_kwargs = {"pool_pre_ping": True, "pool_recycle": 1800}
        self.engine = create_engine(database_url, future=True, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    # -- row converters -------------------------------------------------

    def _to_user(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            id=row.id,
            username=row.username,
            email=row.email,
            password_hash=row.password_hash,
            role=row.role,
            bio=row.bio,
            created_at=row.created_at,
        )

    def _to_tier(self, row: "TierRow") -> TierRecord:
        return TierRecord(
            id=row.id,
            slug=row.slug,
            name=row.name,
            rank=row.rank,
            monthly_price_cents=row.monthly_price_cents,
            description=row.description,
        )

    def _to_post(self, row: "MediaPostRow") -> MediaPostRecord:
        return MediaPostRecord(
            id=row.id,
            user_id=row.user_id,
            title=row.title,
            body=row.body,
            required_tier_id=row.required_tier_id,
            price_cents=row.price_cents,
            is_published=row.is_published,
            is_special_card=row.is_special_card,
            created_at=row.created_at,
        )

    def _to_asset(self, row: "MediaAssetRow") -> MediaAssetRecord:
        return MediaAssetRecord(
            id=row.id,
            post_id=row.post_id,
            media_url=row.media_url,
            media_type=row.media_type,
            thumb_url=row.thumb_url,
            order_index=row.order_index,
        )

    def _to_story(self, row: "StoryRow") -> StoryRecord:
        return StoryRecord(
            id=row.id,
            title=row.title,
            slug=row.slug,
            description=row.description,
            content=row.content,
            cover_image_url=row.cover_image_url,
            is_published=row.is_published,
            user_id=row.user_id,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _to_chapter(self, row: "ChapterRow") -> ChapterRecord:
        return ChapterRecord(
            id=row.id,
            story_id=row.story_id,
            chapter_number=row.chapter_number,
            title=row.title,
            content=row.content,
            user_id=row.user_id,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _to_assignment(self, row: "AssignmentRow") -> AssignmentRecord:
        return AssignmentRecord(
            id=row.id,
            user_id=row.user_id,
            story_id=row.story_id,
            assigned_at=row.assigned_at,
        )

    def _to_site_image(self, row: "SiteGalleryImageRow") -> SiteGalleryImageRecord:
        return SiteGalleryImageRecord(
            id=row.id,
            image_url=row.image_url,
            image_path=row.image_path,
            uploaded_by=row.uploaded_by,
            order_index=row.order_index,
            created_at=row.created_at,
        )

    # -- users ----------------------------------------------------------

    def create_user(
        self, username: str, email: Optional[str], password_hash: str, role: str = "user"
    ) -> UserRecord:
        if self.find_conflicting_user(username, email):
            raise ConflictError("User already exists")
        with self.Session() as session:
            row = UserRow(
                id=_new_id(),
                username=username,
                email=email,
                password_hash=password_hash,
                role=role,
                created_at=time.time(),
            )
            session.add(row)
            session.commit()
            return self._to_user(row)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            return self._to_user(row) if row else None

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        with self.Session() as session:
            stmt = select(UserRow).where(UserRow.username == username).limit(1)
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_user(row) if row else None

    def find_user_by_login(self, identifier: str) -> Optional[UserRecord]:
        with self.Session() as session:
            stmt = (
                select(UserRow)
                .where(or_(UserRow.username == identifier, UserRow.email == identifier))
                .limit(1)
            )
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_user(row) if row else None

    def find_conflicting_user(
        self, username: str, email: Optional[str]
    ) -> Optional[UserRecord]:
        conditions = [UserRow.username == username]
        if email:
            conditions.append(UserRow.email == email)
        with self.Session() as session:
            stmt = select(UserRow).where(or_(*conditions)).limit(1)
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_user(row) if row else None

    def list_users(self) -> list[UserRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(UserRow).order_by(UserRow.created_at.desc())
            ).scalars()
            return [self._to_user(row) for row in rows]

    def delete_user(self, user_id: str) -> bool:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return False
            session.execute(
                delete(AssignmentRow).where(AssignmentRow.user_id == user_id)
            )
            session.delete(row)
            session.commit()
            return True

    def delete_users_by_username(self, usernames: Iterable[str]) -> int:
        names = list(usernames)
        with self.Session() as session:
            result = session.execute(delete(UserRow).where(UserRow.username.in_(names)))
            session.commit()
            return result.rowcount or 0

    def get_user_bio(self, user_id: str) -> Optional[str]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            return row.bio if row else None

    def update_user_bio(self, user_id: str, bio: str) -> bool:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return False
            row.bio = bio
            session.commit()
            return True

    def count_users(self) -> int:
        with self.Session() as session:
            return session.execute(select(func.count(UserRow.id))).scalar_one()

    # -- membership -----------------------------------------------------

    def list_tiers(self) -> list[TierRecord]:
        with self.Session() as session:
            rows = session.execute(select(TierRow).order_by(TierRow.rank.asc())).scalars()
            return [self._to_tier(row) for row in rows]

    def get_tier(self, tier_id: str) -> Optional[TierRecord]:
        with self.Session() as session:
            row = session.get(TierRow, tier_id)
            return self._to_tier(row) if row else None

    def save_tier(self, tier: TierRecord) -> None:
        with self.Session() as session:
            row = session.get(TierRow, tier.id)
            if not row:
                row = TierRow(id=tier.id)
                session.add(row)
            row.slug = tier.slug
            row.name = tier.name
            row.rank = tier.rank
            row.monthly_price_cents = tier.monthly_price_cents
            row.description = tier.description
            session.commit()

    def get_active_tier(self, user_id: str) -> Optional[TierRecord]:
        with self.Session() as session:
            stmt = (
                select(SubscriptionRow)
                .where(
                    SubscriptionRow.user_id == user_id,
                    SubscriptionRow.status == "active",
                )
                .order_by(SubscriptionRow.created_at.desc())
                .limit(1)
            )
            sub = session.execute(stmt).scalar_one_or_none()
            if not sub or not sub.tier_id:
                return None
            tier = session.get(TierRow, sub.tier_id)
            return self._to_tier(tier) if tier else None

    def set_active_subscription(self, user_id: str, tier_id: str) -> None:
        now = time.time()
        with self.Session() as session:
            active = session.execute(
                select(SubscriptionRow).where(
                    SubscriptionRow.user_id == user_id,
                    SubscriptionRow.status == "active",
                )
            ).scalars()
            for sub in active:
                sub.status = "replaced"
            session.add(
                SubscriptionRow(
                    id=_new_id(),
                    user_id=user_id,
                    tier_id=tier_id,
                    status="active",
                    created_at=now,
                )
            )
            session.commit()

    def count_active_subscriptions(self) -> Dict[str, int]:
        with self.Session() as session:
            stmt = (
                select(SubscriptionRow.tier_id, func.count(SubscriptionRow.id))
                .where(SubscriptionRow.status == "active")
                .group_by(SubscriptionRow.tier_id)
            )
            return {tier_id: count for tier_id, count in session.execute(stmt)}

    # -- follows --------------------------------------------------------

    def list_followed_ids(self, user_id: str) -> list[str]:
        with self.Session() as session:
            stmt = select(FollowRow.followed_id).where(FollowRow.follower_id == user_id)
            return list(session.execute(stmt).scalars())

    def follow(self, follower_id: str, followed_id: str) -> None:
        with self.Session() as session:
            if session.get(FollowRow, (follower_id, followed_id)):
                return
            session.add(
                FollowRow(
                    follower_id=follower_id,
                    followed_id=followed_id,
                    created_at=time.time(),
                )
            )
            session.commit()

    def unfollow(self, follower_id: str, followed_id: str) -> bool:
        with self.Session() as session:
            row = session.get(FollowRow, (follower_id, followed_id))
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    # -- media posts ----------------------------------------------------

    def create_media_post(
        self, post: MediaPostRecord, media: list[dict]
    ) -> MediaPostRecord:
        with self.Session() as session:
            row = MediaPostRow(
                id=post.id or _new_id(),
                user_id=post.user_id,
                title=post.title,
                body=post.body,
                required_tier_id=post.required_tier_id,
                price_cents=post.price_cents,
                is_published=post.is_published,
                is_special_card=post.is_special_card,
                created_at=post.created_at,
            )
            session.add(row)
            assets = []
            for index, item in enumerate(media):
                asset = MediaAssetRow(
                    id=_new_id(),
                    post_id=row.id,
                    media_url=item.get("url"),
                    media_type="video" if item.get("type") == "video" else "image",
                    thumb_url=item.get("thumb_url") or None,
                    order_index=index,
                )
                session.add(asset)
                assets.append(asset)
            session.commit()
            record = self._to_post(row)
            record.assets = [self._to_asset(asset) for asset in assets]
            return record

    def list_media_posts(
        self, *, published_only: bool = False, limit: Optional[int] = None
    ) -> list[MediaPostRecord]:
        with self.Session() as session:
            stmt = select(MediaPostRow).order_by(MediaPostRow.created_at.desc())
            if published_only:
                stmt = stmt.where(MediaPostRow.is_published.is_(True))
            if limit:
                stmt = stmt.limit(limit)
            return [self._to_post(row) for row in session.execute(stmt).scalars()]

    def list_assets(self, post_ids: list[str]) -> Dict[str, list[MediaAssetRecord]]:
        if not post_ids:
            return {}
        with self.Session() as session:
            stmt = (
                select(MediaAssetRow)
                .where(MediaAssetRow.post_id.in_(post_ids))
                .order_by(MediaAssetRow.order_index.asc())
            )
            grouped: Dict[str, list[MediaAssetRecord]] = {}
            for row in session.execute(stmt).scalars():
                grouped.setdefault(row.post_id, []).append(self._to_asset(row))
            return grouped

    # -- engagement -----------------------------------------------------

    def list_likes(self, post_id: str) -> list[dict]:
        with self.Session() as session:
            stmt = (
                select(LikeRow)
                .where(LikeRow.post_id == post_id)
                .order_by(LikeRow.created_at.asc())
            )
            return [
                {"user_id": row.user_id, "username": row.username}
                for row in session.execute(stmt).scalars()
            ]

    def toggle_like(self, post_id: str, user_id: str, username: str) -> bool:
        """Flip the user's like on a post and return whether it is now liked."""
        with self.Session() as session:
            row = session.get(LikeRow, (post_id, user_id))
            if row:
                session.delete(row)
                session.commit()
                return False
            session.add(
                LikeRow(
                    post_id=post_id,
                    user_id=user_id,
                    username=username,
                    created_at=time.time(),
                )
            )
            session.commit()
            return True

    def list_comments(self, post_id: str) -> list[CommentRecord]:
        with self.Session() as session:
            stmt = (
                select(CommentRow)
                .where(CommentRow.post_id == post_id)
                .order_by(CommentRow.created_at.desc())
            )
            return [
                CommentRecord(
                    id=row.id,
                    post_id=row.post_id,
                    user_id=row.user_id,
                    username=row.username,
                    text=row.text,
                    created_at=row.created_at,
                )
                for row in session.execute(stmt).scalars()
            ]

    def add_comment(
        self, post_id: str, user_id: str, username: str, text: str
    ) -> CommentRecord:
        record = CommentRecord(
            id=_new_id(), post_id=post_id, user_id=user_id, username=username, text=text
        )
        with self.Session() as session:
            session.add(
                CommentRow(
                    id=record.id,
                    post_id=post_id,
                    user_id=user_id,
                    username=username,
                    text=text,
                    created_at=record.created_at,
                )
            )
            session.commit()
        return record

    def has_purchased(self, post_id: str, user_id: str) -> bool:
        with self.Session() as session:
            return session.get(PurchaseRow, (post_id, user_id)) is not None

    def record_purchase(self, post_id: str, user_id: str) -> None:
        with self.Session() as session:
            if session.get(PurchaseRow, (post_id, user_id)):
                return
            session.add(
                PurchaseRow(post_id=post_id, user_id=user_id, created_at=time.time())
            )
            session.commit()

    def list_purchased_post_ids(self, user_id: str) -> set[str]:
        with self.Session() as session:
            stmt = select(PurchaseRow.post_id).where(PurchaseRow.user_id == user_id)
            return set(session.execute(stmt).scalars())

    # -- user gallery ---------------------------------------------------

    def list_gallery(self, user_id: str) -> list[GalleryItemRecord]:
        with self.Session() as session:
            stmt = (
                select(GalleryRow)
                .where(GalleryRow.user_id == user_id)
                .order_by(GalleryRow.created_at.desc())
            )
            return [
                GalleryItemRecord(
                    asset_id=row.asset_id,
                    post_id=row.post_id,
                    media_url=row.media_url,
                    media_type=row.media_type,
                    created_at=row.created_at,
                )
                for row in session.execute(stmt).scalars()
            ]

    def add_gallery_items(
        self, user_id: str, assets: list[MediaAssetRecord]
    ) -> int:
        now = time.time()
        inserted = 0
        with self.Session() as session:
            existing = set(
                session.execute(
                    select(GalleryRow.asset_id).where(GalleryRow.user_id == user_id)
                ).scalars()
            )
            for asset in assets:
                if asset.id in existing:
                    continue
                session.add(
                    GalleryRow(
                        id=_new_id(),
                        user_id=user_id,
                        asset_id=asset.id,
                        post_id=asset.post_id,
                        media_url=asset.media_url,
                        media_type=asset.media_type,
                        created_at=now,
                    )
                )
                existing.add(asset.id)
                inserted += 1
            session.commit()
        return inserted

    # -- stories & chapters ---------------------------------------------

    def _attach_chapters(
        self, session: Session, stories: list[StoryRecord]
    ) -> list[StoryRecord]:
        if not stories:
            return stories
        by_id = {story.id: story for story in stories}
        stmt = (
            select(ChapterRow)
            .where(ChapterRow.story_id.in_(list(by_id)))
            .order_by(ChapterRow.chapter_number.asc())
        )
        for row in session.execute(stmt).scalars():
            by_id[row.story_id].chapters.append(self._to_chapter(row))
        return stories

    def list_stories(self, user_id: Optional[str] = None) -> list[StoryRecord]:
        with self.Session() as session:
            stmt = select(StoryRow)
            if user_id is not None:
                stmt = stmt.where(StoryRow.user_id == user_id).order_by(
                    StoryRow.created_at.asc()
                )
            else:
                stmt = stmt.order_by(StoryRow.created_at.desc())
            stories = [self._to_story(row) for row in session.execute(stmt).scalars()]
            return self._attach_chapters(session, stories)

    def get_story(
        self, story_id: str, user_id: Optional[str] = None
    ) -> Optional[StoryRecord]:
        with self.Session() as session:
            row = session.get(StoryRow, story_id)
            if not row or (user_id is not None and row.user_id != user_id):
                return None
            return self._attach_chapters(session, [self._to_story(row)])[0]

    def create_story(self, story: StoryRecord) -> StoryRecord:
        now = time.time()
        with self.Session() as session:
            row = StoryRow(
                id=story.id or _new_id(),
                title=story.title,
                slug=story.slug,
                description=story.description,
                content=story.content,
                cover_image_url=story.cover_image_url,
                is_published=story.is_published,
                user_id=story.user_id,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            return self._to_story(row)

    def update_story(
        self, story_id: str, user_id: str, changes: dict
    ) -> Optional[StoryRecord]:
        allowed = {"title", "description", "cover_image_url", "is_published"}
        with self.Session() as session:
            row = session.get(StoryRow, story_id)
            if not row or row.user_id != user_id:
                return None
            for key, value in changes.items():
                if key in allowed:
                    setattr(row, key, value)
            row.updated_at = time.time()
            session.commit()
            return self._to_story(row)

    def delete_story(self, story_id: str, user_id: Optional[str] = None) -> bool:
        with self.Session() as session:
            row = session.get(StoryRow, story_id)
            if not row or (user_id is not None and row.user_id != user_id):
                return False
            session.execute(
                delete(AssignmentRow).where(AssignmentRow.story_id == story_id)
            )
            session.execute(delete(ChapterRow).where(ChapterRow.story_id == story_id))
            session.delete(row)
            session.commit()
            return True

    def list_assigned_stories(self, user_id: str) -> list[StoryRecord]:
        with self.Session() as session:
            stmt = (
                select(StoryRow)
                .join(AssignmentRow, AssignmentRow.story_id == StoryRow.id)
                .where(AssignmentRow.user_id == user_id)
                .order_by(AssignmentRow.assigned_at.desc())
            )
            stories = [self._to_story(row) for row in session.execute(stmt).scalars()]
            return self._attach_chapters(session, stories)

    def create_chapters(
        self, story_id: str, user_id: Optional[str], chapters: list[tuple[int, str, str]]
    ) -> list[ChapterRecord]:
        now = time.time()
        with self.Session() as session:
            rows = [
                ChapterRow(
                    id=_new_id(),
                    story_id=story_id,
                    chapter_number=number,
                    title=title,
                    content=content,
                    user_id=user_id,
                    created_at=now,
                    updated_at=now,
                )
                for number, title, content in chapters
            ]
            session.add_all(rows)
            session.commit()
            return [self._to_chapter(row) for row in rows]

    def list_chapters(
        self, story_id: str, user_id: Optional[str] = None
    ) -> list[ChapterRecord]:
        with self.Session() as session:
            stmt = select(ChapterRow).where(ChapterRow.story_id == story_id)
            if user_id is not None:
                stmt = stmt.where(ChapterRow.user_id == user_id)
            stmt = stmt.order_by(ChapterRow.chapter_number.asc())
            return [self._to_chapter(row) for row in session.execute(stmt).scalars()]

    def update_chapter(
        self, chapter_id: str, user_id: str, title: str, content: str
    ) -> Optional[ChapterRecord]:
        with self.Session() as session:
            row = session.get(ChapterRow, chapter_id)
            if not row or row.user_id != user_id:
                return None
            row.title = title
            row.content = content
            row.updated_at = time.time()
            session.commit()
            return self._to_chapter(row)

    def delete_chapter(self, chapter_id: str, user_id: str) -> bool:
        with self.Session() as session:
            row = session.get(ChapterRow, chapter_id)
            if not row or row.user_id != user_id:
                return False
            session.delete(row)
            session.commit()
            return True

    def claim_orphan_chapters(self, user_id: str) -> list[ChapterRecord]:
        with self.Session() as session:
            rows = list(
                session.execute(
                    select(ChapterRow).where(ChapterRow.user_id.is_(None))
                ).scalars()
            )
            for row in rows:
                row.user_id = user_id
            session.commit()
            return [self._to_chapter(row) for row in rows]

    # -- assignments ----------------------------------------------------

    def list_assignments(self) -> list[AssignmentRecord]:
        with self.Session() as session:
            stmt = select(AssignmentRow).order_by(AssignmentRow.assigned_at.desc())
            return [self._to_assignment(row) for row in session.execute(stmt).scalars()]

    def find_assignment(
        self, user_id: str, story_id: str
    ) -> Optional[AssignmentRecord]:
        with self.Session() as session:
            stmt = (
                select(AssignmentRow)
                .where(
                    AssignmentRow.user_id == user_id,
                    AssignmentRow.story_id == story_id,
                )
                .limit(1)
            )
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_assignment(row) if row else None

    def create_assignment(self, user_id: str, story_id: str) -> AssignmentRecord:
        if self.find_assignment(user_id, story_id):
            raise ConflictError("Story already assigned to this user")
        with self.Session() as session:
            row = AssignmentRow(
                id=_new_id(),
                user_id=user_id,
                story_id=story_id,
                assigned_at=time.time(),
            )
            session.add(row)
            session.commit()
            return self._to_assignment(row)

    def delete_assignment(self, assignment_id: str) -> bool:
        with self.Session() as session:
            row = session.get(AssignmentRow, assignment_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    # -- chapter images -------------------------------------------------

    def list_chapter_images(
        self,
        *,
        chapter_ids: Optional[list[str]] = None,
        user_id: Optional[str] = None,
    ) -> list[ChapterImageRecord]:
        with self.Session() as session:
            stmt = select(ChapterImageRow)
            if chapter_ids is not None:
                stmt = stmt.where(ChapterImageRow.chapter_id.in_(chapter_ids))
            if user_id is not None:
                stmt = stmt.where(ChapterImageRow.user_id == user_id)
            stmt = stmt.order_by(
                ChapterImageRow.chapter_id.asc(), ChapterImageRow.created_at.asc()
            )
            return [
                ChapterImageRecord(
                    id=row.id,
                    chapter_id=row.chapter_id,
                    image_url=row.image_url,
                    image_path=row.image_path,
                    user_id=row.user_id,
                    created_at=row.created_at,
                )
                for row in session.execute(stmt).scalars()
            ]

    def add_chapter_image(
        self, chapter_id: str, image_url: str, image_path: str, user_id: str
    ) -> ChapterImageRecord:
        record = ChapterImageRecord(
            id=_new_id(),
            chapter_id=chapter_id,
            image_url=image_url,
            image_path=image_path,
            user_id=user_id,
        )
        with self.Session() as session:
            session.add(
                ChapterImageRow(
                    id=record.id,
                    chapter_id=chapter_id,
                    image_url=image_url,
                    image_path=image_path,
                    user_id=user_id,
                    created_at=record.created_at,
                )
            )
            session.commit()
        return record

    def delete_chapter_images(self, image_url: str, user_id: str) -> int:
        with self.Session() as session:
            result = session.execute(
                delete(ChapterImageRow).where(
                    ChapterImageRow.image_url == image_url,
                    ChapterImageRow.user_id == user_id,
                )
            )
            session.commit()
            return result.rowcount or 0

    # -- site gallery ---------------------------------------------------

    def list_site_gallery(self) -> list[SiteGalleryImageRecord]:
        with self.Session() as session:
            stmt = select(SiteGalleryImageRow).order_by(
                SiteGalleryImageRow.created_at.desc()
            )
            return [self._to_site_image(row) for row in session.execute(stmt).scalars()]

    def add_site_gallery_image(
        self,
        image_url: str,
        image_path: str,
        uploaded_by: str,
        order_index: Optional[int] = None,
    ) -> SiteGalleryImageRecord:
        with self.Session() as session:
            row = SiteGalleryImageRow(
                id=_new_id(),
                image_url=image_url,
                image_path=image_path,
                uploaded_by=uploaded_by,
                order_index=order_index,
                created_at=time.time(),
            )
            session.add(row)
            session.commit()
            return self._to_site_image(row)

    def get_site_gallery_image(
        self, image_url: str
    ) -> Optional[SiteGalleryImageRecord]:
        with self.Session() as session:
            stmt = (
                select(SiteGalleryImageRow)
                .where(SiteGalleryImageRow.image_url == image_url)
                .limit(1)
            )
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_site_image(row) if row else None

    def delete_site_gallery_images(self, image_url: str) -> int:
        with self.Session() as session:
            result = session.execute(
                delete(SiteGalleryImageRow).where(
                    SiteGalleryImageRow.image_url == image_url
                )
            )
            session.commit()
            return result.rowcount or 0


class InMemoryDbClient(PostgresDbClient):
    """SQLite in-memory database for development and tests."""

    def __init__(self):
        super().__init__(
            "sqlite+pysqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        Base.metadata.drop_all(self.engine)
        Base.metadata.create_all(self.engine)


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    username = Column(String, nullable=False, unique=True, index=True)
    email = Column(String, nullable=True, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False, default="user")
    bio = Column(Text, nullable=True)
    created_at = Column(Float, nullable=False)


class TierRow(Base):
    __tablename__ = "membership_tiers"

    id = Column(String, primary_key=True)
    slug = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=False)
    rank = Column(Integer, nullable=False, default=0)
    monthly_price_cents = Column(Integer, nullable=False, default=0)
    description = Column(Text, nullable=True)


class SubscriptionRow(Base):
    __tablename__ = "user_subscriptions"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    tier_id = Column(String, nullable=True)
    status = Column(String, nullable=False, index=True)
    created_at = Column(Float, nullable=False)


class FollowRow(Base):
    __tablename__ = "user_follows"

    follower_id = Column(String, primary_key=True)
    followed_id = Column(String, primary_key=True)
    created_at = Column(Float, nullable=False)


class MediaPostRow(Base):
    __tablename__ = "media_posts"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=True)
    body = Column(Text, nullable=True)
    required_tier_id = Column(String, nullable=True)
    price_cents = Column(Integer, nullable=True)
    is_published = Column(Boolean, nullable=False, default=False, index=True)
    is_special_card = Column(Boolean, nullable=False, default=False)
    created_at = Column(Float, nullable=False, index=True)


class MediaAssetRow(Base):
    __tablename__ = "media_assets"

    id = Column(String, primary_key=True)
    post_id = Column(String, nullable=False, index=True)
    media_url = Column(String, nullable=False)
    media_type = Column(String, nullable=False)
    thumb_url = Column(String, nullable=True)
    order_index = Column(Integer, nullable=False, default=0)


class LikeRow(Base):
    __tablename__ = "post_likes"

    post_id = Column(String, primary_key=True)
    user_id = Column(String, primary_key=True)
    username = Column(String, nullable=False)
    created_at = Column(Float, nullable=False)


class CommentRow(Base):
    __tablename__ = "post_comments"

    id = Column(String, primary_key=True)
    post_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False)
    username = Column(String, nullable=False)
    text = Column(Text, nullable=False)
    created_at = Column(Float, nullable=False)


class PurchaseRow(Base):
    __tablename__ = "post_purchases"

    post_id = Column(String, primary_key=True)
    user_id = Column(String, primary_key=True)
    created_at = Column(Float, nullable=False)


class GalleryRow(Base):
    __tablename__ = "user_gallery"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    asset_id = Column(String, nullable=False)
    post_id = Column(String, nullable=False)
    media_url = Column(String, nullable=False)
    media_type = Column(String, nullable=False)
    created_at = Column(Float, nullable=False)


class StoryRow(Base):
    __tablename__ = "stories"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    slug = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    content = Column(JSON, nullable=True)
    cover_image_url = Column(String, nullable=True)
    is_published = Column(Boolean, nullable=False, default=False)
    user_id = Column(String, nullable=True, index=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class ChapterRow(Base):
    __tablename__ = "chapters"

    id = Column(String, primary_key=True)
    story_id = Column(String, nullable=False, index=True)
    chapter_number = Column(Integer, nullable=False)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    user_id = Column(String, nullable=True, index=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class AssignmentRow(Base):
    __tablename__ = "story_assignments"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    story_id = Column(String, nullable=False, index=True)
    assigned_at = Column(Float, nullable=False)


class ChapterImageRow(Base):
    __tablename__ = "chapter_images"

    id = Column(String, primary_key=True)
    chapter_id = Column(String, nullable=False, index=True)
    image_url = Column(String, nullable=False)
    image_path = Column(String, nullable=False)
    user_id = Column(String, nullable=False, index=True)
    created_at = Column(Float, nullable=False)


class SiteGalleryImageRow(Base):
    __tablename__ = "site_gallery_images"

    id = Column(String, primary_key=True)
    image_url = Column(String, nullable=False)
    image_path = Column(String, nullable=False)
    uploaded_by = Column(String, nullable=False)
    order_index = Column(Integer, nullable=True)
    created_at = Column(Float, nullable=False)
