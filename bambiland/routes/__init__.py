"""
HTTP routes for the Bambiland API, grouped per area.
"""

from __future__ import annotations

from fastapi import APIRouter

from bambiland.routes import admin, auth, feed, gallery, membership, stories, users

router = APIRouter()
router.include_router(auth.router)
router.include_router(membership.router)
router.include_router(feed.router)
router.include_router(admin.router)
router.include_router(stories.router)
router.include_router(users.router)
router.include_router(gallery.router)
