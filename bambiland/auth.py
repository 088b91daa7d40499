"""
Password hashing, session tokens and the current-user dependencies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.exceptions import InvalidTokenError

from bambiland.config import Settings, get_settings
from bambiland.db import UserRecord

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class SessionUser:
    id: str
    name: str
    email: Optional[str] = None
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def as_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role}


def hash_password(password: str, rounds: int = 12) -> str:
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash.
        return False


def create_access_token(user: UserRecord, settings: Settings) -> str:
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=settings.auth_token_ttl_minutes
    )
    claims = {
        "sub": user.id,
        "name": user.username,
        "email": user.email,
        "role": user.role,
        "exp": expire,
    }
    return jwt.encode(claims, settings.auth_secret, algorithm=settings.auth_algorithm)


def decode_access_token(token: str, settings: Settings) -> Optional[SessionUser]:
    """Return the session user for a valid token, else None."""
    try:
        payload = jwt.decode(
            token, settings.auth_secret, algorithms=[settings.auth_algorithm]
        )
    except InvalidTokenError:
        logger.debug("Rejected session token", exc_info=True)
        return None
    if not payload.get("sub"):
        return None
    return SessionUser(
        id=payload["sub"],
        name=payload.get("name") or "",
        email=payload.get("email"),
        role=payload.get("role") or "user",
    )


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> Optional[SessionUser]:
    """
    Resolve the session from the bearer header or the session cookie. When
    neither is present and ``dev_user_id`` is configured, act as that user.
    """
    token = credentials.credentials if credentials else None
    if not token:
        token = request.cookies.get(settings.session_cookie_name)
    if token:
        user = decode_access_token(token, settings)
        if user:
            return user
    if settings.dev_user_id:
        return SessionUser(id=settings.dev_user_id, name="devuser")
    return None


def require_user(
    user: Optional[SessionUser] = Depends(get_current_user),
) -> SessionUser:
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


def require_admin(
    user: Optional[SessionUser] = Depends(get_current_user),
) -> SessionUser:
    if not user or not user.is_admin:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user
