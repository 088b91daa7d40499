"""
Seed the admin and test accounts.

Existing accounts with the same usernames are deleted first, so re-running
resets their passwords:
  - admin / admin123 (role admin)
  - testuser / password123
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from bambiland.auth import hash_password
from bambiland.config import get_settings
from bambiland.dependencies import get_db_client

logger = logging.getLogger(__name__)

SEED_USERS = [
    ("admin", "admin123", "admin"),
    ("testuser", "password123", "user"),
]


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed admin and test users")
    parser.add_argument(
        "--rounds",
        type=int,
        default=None,
        help="bcrypt cost factor (defaults to BCRYPT_ROUNDS setting)",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    rounds = args.rounds or get_settings().bcrypt_rounds
    db = get_db_client()

    removed = db.delete_users_by_username([username for username, _, _ in SEED_USERS])
    if removed:
        logger.info("Deleted %d existing seed users", removed)

    for username, password, role in SEED_USERS:
        user = db.create_user(username, None, hash_password(password, rounds), role=role)
        logger.info("Created %s (%s) id=%s", user.username, user.role, user.id)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
