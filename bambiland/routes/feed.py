"""
The gated content feed and per-post engagement (likes, comments, purchases).
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError

from bambiland.auth import SessionUser, get_current_user, require_user
from bambiland.config import Settings, get_settings
from bambiland.db import DbClient
from bambiland.dependencies import get_db_client, get_fallback_store
from bambiland.fallback import DevFallbackStore, sample_posts
from bambiland.feed import (
    CANDIDATE_POST_LIMIT,
    FALLBACK_TIER_RANKS,
    Viewer,
    admin_view_tier,
    attach_assets,
    gate_posts,
    paginate,
    resolve_viewer_tier,
)
from bambiland.routes.common import DB_UNAVAILABLE, fallback_or_fail, page_window
from bambiland.schemas import CommentRequest, LikesResponse, PurchaseResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _fallback_feed(
    store: DevFallbackStore,
    viewer: Viewer,
    page: int,
    limit: int,
) -> dict:
    if viewer.user_id:
        viewer.purchased_ids = store.purchased_post_ids(viewer.user_id)
    viewer.followed_ids = set()

    dev_posts = store.read_posts()
    if not dev_posts:
        posts = attach_assets(gate_posts(sample_posts(), viewer, FALLBACK_TIER_RANKS))
        has_more, next_page = False, None
    else:
        published = [post for post in dev_posts if post.get("is_published")]
        gated = gate_posts(published, viewer, FALLBACK_TIER_RANKS)
        page_posts, has_more, next_page = paginate(gated, page, limit)
        posts = attach_assets(page_posts)
    return {
        "page": page,
        "limit": limit,
        "hasMore": has_more,
        "nextPage": next_page,
        "posts": posts,
        "devFallback": True,
        "userTierId": viewer.tier_id,
    }


@router.get("/feed")
def get_feed(
    page: int = Query(1),
    limit: int = Query(10),
    view_tier: Optional[str] = Query(None, alias="viewTier"),
    dev_tier: Optional[str] = Cookie(None, alias="devTierId"),
    user: Optional[SessionUser] = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    store: DevFallbackStore = Depends(get_fallback_store),
    settings: Settings = Depends(get_settings),
):
    page, limit = page_window(page, limit, default_limit=10)
    is_admin = bool(user and user.is_admin)

    active_tier = None
    if user:
        try:
            active_tier = db.get_active_tier(user.id)
        except SQLAlchemyError:
            logger.warning("Subscription lookup failed for %s", user.id, exc_info=True)
    tier_id, tier_rank = resolve_viewer_tier(active_tier, dev_tier)

    # Admin preview of a tier feed ignores follows.
    preview_tier = admin_view_tier(is_admin, view_tier)
    if preview_tier:
        tier_id, tier_rank = preview_tier, FALLBACK_TIER_RANKS[preview_tier]

    viewer = Viewer(
        user_id=user.id if user else None,
        is_admin=is_admin,
        tier_id=tier_id,
        tier_rank=tier_rank,
    )

    try:
        if user and not preview_tier:
            viewer.followed_ids = set(db.list_followed_ids(user.id))
        if user:
            viewer.purchased_ids = db.list_purchased_post_ids(user.id)
        candidates = db.list_media_posts(
            published_only=True, limit=CANDIDATE_POST_LIMIT
        )
        rank_by_tier_id = {tier.id: tier.rank for tier in db.list_tiers()}

        gated = gate_posts(
            [post.as_dict() for post in candidates], viewer, rank_by_tier_id
        )
        page_posts, has_more, next_page = paginate(gated, page, limit)
        assets = db.list_assets([post["id"] for post in page_posts])
    except DB_UNAVAILABLE:
        fallback_or_fail(settings, "Feed query")
        return _fallback_feed(store, viewer, page, limit)

    assets_by_post = {
        post_id: [asset.as_dict() for asset in items]
        for post_id, items in assets.items()
    }
    return {
        "page": page,
        "limit": limit,
        "hasMore": has_more,
        "nextPage": next_page,
        "posts": attach_assets(page_posts, assets_by_post),
        "userTierId": tier_id,
    }


@router.get("/posts/{post_id}/likes", response_model=LikesResponse)
def get_likes(
    post_id: str,
    user: Optional[SessionUser] = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    store: DevFallbackStore = Depends(get_fallback_store),
    settings: Settings = Depends(get_settings),
):
    try:
        likes = db.list_likes(post_id)
    except DB_UNAVAILABLE:
        fallback_or_fail(settings, "Likes lookup")
        likes = store.list_likes(post_id)
    liked = bool(user) and any(like.get("user_id") == user.id for like in likes)
    return LikesResponse(postId=post_id, count=len(likes), likedByUser=liked, users=likes)


@router.post(
    "/posts/{post_id}/likes",
    response_model=LikesResponse,
    response_model_exclude_none=True,
)
def toggle_like(
    post_id: str,
    user: SessionUser = Depends(require_user),
    db: DbClient = Depends(get_db_client),
    store: DevFallbackStore = Depends(get_fallback_store),
    settings: Settings = Depends(get_settings),
):
    try:
        liked = db.toggle_like(post_id, user.id, user.name)
        count = len(db.list_likes(post_id))
    except DB_UNAVAILABLE:
        fallback_or_fail(settings, "Like toggle")
        liked = store.toggle_like(post_id, user.id, user.name)
        count = len(store.list_likes(post_id))
    return LikesResponse(postId=post_id, count=count, likedByUser=liked)


@router.get("/posts/{post_id}/comments")
def get_comments(
    post_id: str,
    db: DbClient = Depends(get_db_client),
    store: DevFallbackStore = Depends(get_fallback_store),
    settings: Settings = Depends(get_settings),
):
    try:
        comments = [comment.as_dict() for comment in db.list_comments(post_id)]
    except DB_UNAVAILABLE:
        fallback_or_fail(settings, "Comments lookup")
        comments = store.list_comments(post_id)
    return {"postId": post_id, "comments": comments}


@router.post("/posts/{post_id}/comments")
def add_comment(
    post_id: str,
    payload: CommentRequest,
    user: SessionUser = Depends(require_user),
    db: DbClient = Depends(get_db_client),
    store: DevFallbackStore = Depends(get_fallback_store),
    settings: Settings = Depends(get_settings),
):
    text = str(payload.text or "").strip()
    if not text:
        raise HTTPException(status_code=400, detail="Missing comment text")
    try:
        comment = db.add_comment(post_id, user.id, user.name, text).as_dict()
    except DB_UNAVAILABLE:
        fallback_or_fail(settings, "Comment insert")
        comment = store.add_comment(post_id, user.id, user.name, text)
    return {"ok": True, "comment": comment}


@router.get("/posts/{post_id}/purchase", response_model=PurchaseResponse)
def get_purchase(
    post_id: str,
    user: Optional[SessionUser] = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    store: DevFallbackStore = Depends(get_fallback_store),
    settings: Settings = Depends(get_settings),
):
    if not user:
        return PurchaseResponse(postId=post_id, purchased=False)
    try:
        purchased = db.has_purchased(post_id, user.id)
    except DB_UNAVAILABLE:
        fallback_or_fail(settings, "Purchase lookup")
        purchased = store.has_purchased(post_id, user.id)
    return PurchaseResponse(postId=post_id, purchased=purchased)


@router.post("/posts/{post_id}/purchase", response_model=PurchaseResponse)
def purchase(
    post_id: str,
    user: SessionUser = Depends(require_user),
    db: DbClient = Depends(get_db_client),
    store: DevFallbackStore = Depends(get_fallback_store),
    settings: Settings = Depends(get_settings),
):
    try:
        db.record_purchase(post_id, user.id)
    except DB_UNAVAILABLE:
        fallback_or_fail(settings, "Purchase insert")
        store.record_purchase(post_id, user.id)
    return PurchaseResponse(postId=post_id, purchased=True)
