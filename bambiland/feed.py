"""
Tier ranks and the visibility rules applied to feed posts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from bambiland.db import TierRecord

# Ranks used whenever tier rows are unavailable (cookies, admin preview, dev posts).
FALLBACK_TIER_RANKS = {"free": 0, "silver": 1, "gold": 2}

DEFAULT_TIERS = [
    TierRecord(
        id="free",
        slug="free",
        name="Free",
        rank=0,
        monthly_price_cents=0,
        description="Basic access to selected content and updates.",
    ),
    TierRecord(
        id="silver",
        slug="silver",
        name="Silver",
        rank=1,
        monthly_price_cents=499,
        description="More posts, behind-the-scenes, and early previews.",
    ),
    TierRecord(
        id="gold",
        slug="gold",
        name="Gold",
        rank=2,
        monthly_price_cents=1299,
        description="All-access, premium drops, and special surprises.",
    ),
]

CANDIDATE_POST_LIMIT = 200


def tier_slug_for(tier_id: Optional[str]) -> str:
    """Map an arbitrary tier id onto free/silver/gold."""
    value = (tier_id or "").lower()
    if "silver" in value:
        return "silver"
    if "gold" in value:
        return "gold"
    return "free"


def fallback_tier(slug: Optional[str]) -> TierRecord:
    slug = (slug or "").lower()
    for tier in DEFAULT_TIERS:
        if tier.slug == slug:
            return tier
    return DEFAULT_TIERS[0]


@dataclass
class Viewer:
    """Who is looking at the feed and what they are entitled to."""

    user_id: Optional[str]
    is_admin: bool = False
    tier_id: Optional[str] = None
    tier_rank: int = 0
    # Empty means "follows nobody", which disables the follow filter.
    followed_ids: set[str] = field(default_factory=set)
    purchased_ids: set[str] = field(default_factory=set)


def resolve_viewer_tier(
    active_tier: Optional[TierRecord],
    dev_tier_cookie: Optional[str],
) -> tuple[Optional[str], int]:
    """Tier id and rank from an active subscription, else the dev tier cookie."""
    if active_tier:
        return active_tier.id, active_tier.rank
    if dev_tier_cookie:
        return dev_tier_cookie, FALLBACK_TIER_RANKS.get(dev_tier_cookie, 0)
    return None, 0


def admin_view_tier(is_admin: bool, view_tier: Optional[str]) -> Optional[str]:
    view_tier = (view_tier or "").lower()
    if is_admin and view_tier in FALLBACK_TIER_RANKS:
        return view_tier
    return None


def gate_posts(
    posts: list[dict],
    viewer: Viewer,
    rank_by_tier_id: dict[str, int],
) -> list[dict]:
    """
    Keep posts the viewer may see or buy, annotating each with ``can_view``
    and ``locked``. A post is listed when it is from a followed creator and
    the viewer's tier is high enough, the post is for sale, or the viewer
    already bought it. Only admins, owners, buyers and entitled viewers of
    unpriced posts may view the content.
    """
    gated = []
    for post in posts:
        follow_ok = not viewer.followed_ids or post.get("user_id") in viewer.followed_ids
        required_tier = post.get("required_tier_id")
        required_rank = rank_by_tier_id.get(required_tier, 0) if required_tier else 0
        tier_ok = required_rank <= viewer.tier_rank
        priced = (post.get("price_cents") or 0) > 0
        purchased = post.get("id") in viewer.purchased_ids
        if not (follow_ok and (tier_ok or priced or purchased)):
            continue
        can_view = (
            viewer.is_admin
            or (viewer.user_id is not None and post.get("user_id") == viewer.user_id)
            or purchased
            or (tier_ok and not priced)
        )
        gated.append({**post, "can_view": can_view, "locked": not can_view})
    return gated


def paginate(items: list, page: int, limit: int) -> tuple[list, bool, Optional[int]]:
    start = (page - 1) * limit
    end = start + limit
    has_more = end < len(items)
    return items[start:end], has_more, page + 1 if has_more else None


def attach_assets(
    posts: list[dict], assets_by_post: Optional[dict[str, list[dict]]] = None
) -> list[dict]:
    """
    Set each post's assets, from ``assets_by_post`` when given, else the
    assets the post already carries. Locked posts never carry assets.
    """
    combined = []
    for post in posts:
        if assets_by_post is None:
            assets = post.get("assets") or []
        else:
            assets = assets_by_post.get(post["id"], [])
        combined.append({**post, "assets": assets if post.get("can_view") else []})
    return combined
