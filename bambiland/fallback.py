"""
JSON-file store standing in for the engagement, media-post and gallery
tables while the hosted database is unreachable during development.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEV_POSTS_FILE = "dev_media_posts.json"
DEV_LIKES_FILE = "dev_post_likes.json"
DEV_COMMENTS_FILE = "dev_post_comments.json"
DEV_PURCHASES_FILE = "dev_post_purchases.json"
DEV_GALLERY_FILE = "dev_user_gallery.json"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _now_ms() -> int:
    return int(time.time() * 1000)


def sample_posts() -> list[dict]:
    """Placeholder posts shown when neither the database nor dev posts exist."""
    now = _now_iso()
    return [
        {
            "id": "sample-1",
            "user_id": "creator-1",
            "title": "Sunset Run",
            "body": "New set from today",
            "price_cents": 499,
            "created_at": now,
            "required_tier_id": None,
            "assets": [
                {
                    "id": "asset-1",
                    "post_id": "sample-1",
                    "media_url": "/chapter-1.jpg",
                    "media_type": "image",
                }
            ],
        },
        {
            "id": "sample-2",
            "user_id": "creator-2",
            "title": "Behind the scenes",
            "body": "Short clip",
            "price_cents": 999,
            "created_at": now,
            "required_tier_id": None,
            "assets": [
                {
                    "id": "asset-2",
                    "post_id": "sample-2",
                    "media_url": "https://www.w3schools.com/html/mov_bbb.mp4",
                    "media_type": "video",
                }
            ],
        },
    ]


class DevFallbackStore:
    """
    Flat JSON files under ``data_dir``. Missing or malformed files read as
    empty; writes create the directory and pretty-print the whole file.
    """

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self._lock = threading.Lock()

    def _path(self, name: str) -> str:
        return os.path.join(self.data_dir, name)

    def _read(self, name: str, expected: type) -> Any:
        try:
            with open(self._path(name), "r", encoding="utf-8") as f:
                value = json.load(f)
        except (OSError, ValueError):
            return expected()
        return value if isinstance(value, expected) else expected()

    def _write(self, name: str, value: Any) -> None:
        os.makedirs(self.data_dir, exist_ok=True)
        with open(self._path(name), "w", encoding="utf-8") as f:
            json.dump(value, f, indent=2)

    # Media posts

    def read_posts(self) -> list[dict]:
        return self._read(DEV_POSTS_FILE, list)

    def posts_or_samples(self) -> list[dict]:
        return self.read_posts() or sample_posts()

    def add_post(
        self,
        user_id: str,
        *,
        title: Optional[str],
        body: Optional[str],
        required_tier_id: Optional[str],
        price_cents: Optional[int],
        is_published: bool,
        is_special_card: bool,
        media: list[dict],
    ) -> dict:
        """Prepend a post with ``mock-<ms>`` ids and return it."""
        mock_id = f"mock-{_now_ms()}"
        post = {
            "id": mock_id,
            "user_id": user_id,
            "title": title or None,
            "body": body or None,
            "required_tier_id": required_tier_id or None,
            "price_cents": price_cents or None,
            "is_published": bool(is_published),
            "is_special_card": bool(is_special_card),
            "created_at": _now_iso(),
            "assets": [
                {
                    "id": f"mock-asset-{mock_id}-{index}",
                    "post_id": mock_id,
                    "media_url": item.get("url"),
                    "media_type": "video" if item.get("type") == "video" else "image",
                    "thumb_url": item.get("thumb_url") or None,
                    "order_index": index,
                }
                for index, item in enumerate(media)
            ],
        }
        with self._lock:
            self._write(DEV_POSTS_FILE, [post] + self.read_posts())
        return post

    # Likes

    def list_likes(self, post_id: str) -> list[dict]:
        return self._read(DEV_LIKES_FILE, dict).get(post_id, [])

    def toggle_like(self, post_id: str, user_id: str, username: str) -> bool:
        with self._lock:
            likes = self._read(DEV_LIKES_FILE, dict)
            entries = likes.get(post_id, [])
            remaining = [e for e in entries if e.get("user_id") != user_id]
            liked = len(remaining) == len(entries)
            if liked:
                remaining.append({"user_id": user_id, "username": username})
            likes[post_id] = remaining
            self._write(DEV_LIKES_FILE, likes)
        return liked

    # Comments

    def list_comments(self, post_id: str) -> list[dict]:
        comments = self._read(DEV_COMMENTS_FILE, dict).get(post_id, [])
        return sorted(comments, key=lambda c: c.get("created_at") or "", reverse=True)

    def add_comment(self, post_id: str, user_id: str, username: str, text: str) -> dict:
        comment = {
            "id": f"{post_id}-{_now_ms()}",
            "user_id": user_id,
            "username": username,
            "text": text,
            "created_at": _now_iso(),
        }
        with self._lock:
            comments = self._read(DEV_COMMENTS_FILE, dict)
            comments.setdefault(post_id, []).append(comment)
            self._write(DEV_COMMENTS_FILE, comments)
        return comment

    # Purchases

    def has_purchased(self, post_id: str, user_id: str) -> bool:
        return user_id in self._read(DEV_PURCHASES_FILE, dict).get(post_id, [])

    def record_purchase(self, post_id: str, user_id: str) -> None:
        with self._lock:
            purchases = self._read(DEV_PURCHASES_FILE, dict)
            buyers = purchases.setdefault(post_id, [])
            if user_id not in buyers:
                buyers.append(user_id)
                self._write(DEV_PURCHASES_FILE, purchases)

    def purchased_post_ids(self, user_id: str) -> set[str]:
        purchases = self._read(DEV_PURCHASES_FILE, dict)
        return {post_id for post_id, buyers in purchases.items() if user_id in buyers}

    # User gallery

    def list_gallery(self, user_id: str, username: Optional[str] = None) -> list[dict]:
        """Items saved under ``user_id``, else any saved under ``username``."""
        gallery = self._read(DEV_GALLERY_FILE, dict)
        items = gallery.get(user_id) or []
        if items or not username:
            return list(items)
        lower = username.lower()
        matched = [
            item
            for entries in gallery.values()
            for item in entries
            if isinstance(item.get("username"), str) and item["username"].lower() == lower
        ]
        matched.sort(key=lambda item: item.get("created_at") or "", reverse=True)
        return matched

    def add_gallery_items(
        self, user_id: str, username: Optional[str], post_id: str
    ) -> int:
        """Copy a dev (or sample) post's assets into the user's gallery."""
        post = next((p for p in self.posts_or_samples() if p.get("id") == post_id), None)
        assets = (post or {}).get("assets") or []
        now = _now_iso()
        inserted = 0
        with self._lock:
            gallery = self._read(DEV_GALLERY_FILE, dict)
            entries = gallery.setdefault(user_id, [])
            known = {entry.get("asset_id") for entry in entries}
            for asset in assets:
                asset_id = asset.get("id") or f"{post_id}-{asset.get('media_url')}"
                if asset_id in known:
                    continue
                item = {
                    "asset_id": asset_id,
                    "post_id": post_id,
                    "media_type": asset.get("media_type"),
                    "media_url": asset.get("media_url"),
                    "created_at": now,
                    "user_id": user_id,
                }
                if username:
                    item["username"] = username
                entries.append(item)
                known.add(asset_id)
                inserted += 1
            self._write(DEV_GALLERY_FILE, gallery)
        return inserted
