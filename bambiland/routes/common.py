"""
Helpers shared by the route modules.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException
from sqlalchemy.exc import InterfaceError, OperationalError

from bambiland.config import Settings

logger = logging.getLogger(__name__)

# Connectivity failures only; integrity and programming errors propagate.
DB_UNAVAILABLE = (OperationalError, InterfaceError)


def fallback_or_fail(settings: Settings, action: str) -> None:
    """
    Call from an ``except DB_UNAVAILABLE`` block. Returns when the dev
    fallback store may take over, otherwise answers 500.
    """
    if not settings.dev_fallback_enabled:
        logger.exception("%s failed", action)
        raise HTTPException(status_code=500, detail="Internal server error")
    logger.warning("%s failed, using dev fallback store", action, exc_info=True)


def page_window(page: int, limit: int, default_limit: int) -> tuple[int, int]:
    page = max(page or 1, 1)
    limit = min(max(limit if limit is not None else default_limit, 1), 50)
    return page, limit
