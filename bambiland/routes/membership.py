"""
Membership tiers, the viewer's tier and tier selection.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Query, Response
from sqlalchemy.exc import SQLAlchemyError

from bambiland.auth import SessionUser, get_current_user
from bambiland.db import DbClient
from bambiland.dependencies import get_db_client
from bambiland.feed import DEFAULT_TIERS, fallback_tier, tier_slug_for
from bambiland.schemas import MembershipMeResponse, SubscribeRequest, TierSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/membership")

DEV_TIER_COOKIE = "devTierId"
DEV_TIER_COOKIE_MAX_AGE = 60 * 60 * 24 * 30


@router.get("/tiers")
def list_tiers(db: DbClient = Depends(get_db_client)):
    try:
        tiers = db.list_tiers()
    except SQLAlchemyError:
        logger.warning("Tier lookup failed, serving default tiers", exc_info=True)
        tiers = []
    return {"tiers": [tier.as_dict() for tier in tiers or DEFAULT_TIERS]}


@router.get("/me", response_model=MembershipMeResponse)
def my_tier(
    cookie_tier: Optional[str] = Query(None, alias="cookieTier"),
    dev_tier: Optional[str] = Cookie(None, alias=DEV_TIER_COOKIE),
    user: Optional[SessionUser] = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    tier = None
    if user:
        try:
            tier = db.get_active_tier(user.id)
        except SQLAlchemyError:
            logger.warning("Subscription lookup failed for %s", user.id, exc_info=True)
    if tier is None:
        tier = fallback_tier(cookie_tier or dev_tier)
    return MembershipMeResponse(
        tier=TierSummary(slug=tier.slug or tier.name.lower(), name=tier.name, rank=tier.rank)
    )


@router.post("/subscribe")
def subscribe(
    payload: SubscribeRequest,
    response: Response,
    user: Optional[SessionUser] = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    tier_id = payload.tier_id
    if not tier_id or not isinstance(tier_id, str):
        raise HTTPException(status_code=400, detail="Missing or invalid tier_id")

    slug = tier_slug_for(tier_id)
    if user:
        try:
            if db.get_tier(tier_id):
                db.set_active_subscription(user.id, tier_id)
        except SQLAlchemyError:
            logger.warning("Could not record subscription for %s", user.id, exc_info=True)

    response.set_cookie(
        DEV_TIER_COOKIE, slug, max_age=DEV_TIER_COOKIE_MAX_AGE, path="/"
    )
    return {"ok": True, "tier_id": tier_id, "devTierSlug": slug}


@router.get("/counts")
def membership_counts(db: DbClient = Depends(get_db_client)):
    counts = {"free": 0, "silver": 0, "gold": 0}
    try:
        subscribed = 0
        for tier_id, count in db.count_active_subscriptions().items():
            tier = db.get_tier(tier_id) if tier_id else None
            slug = tier_slug_for(tier.slug if tier else tier_id)
            counts[slug] += count
            subscribed += count
        counts["free"] += max(db.count_users() - subscribed, 0)
    except SQLAlchemyError:
        logger.warning("Membership counts unavailable", exc_info=True)
        counts = {"free": 0, "silver": 0, "gold": 0}
    return {"counts": counts}
