"""
Registration and credential login.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.exc import SQLAlchemyError

from bambiland.auth import (
    SessionUser,
    create_access_token,
    get_current_user,
    hash_password,
    verify_password,
)
from bambiland.config import Settings, get_settings
from bambiland.db import ConflictError, DbClient
from bambiland.dependencies import get_db_client
from bambiland.schemas import (
    LoginRequest,
    LoginResponse,
    PublicUser,
    RegisterRequest,
    RegisterResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")


def _public_user(user) -> PublicUser:
    return PublicUser(id=user.id, username=user.username, email=user.email, role=user.role)


@router.post("/register", response_model=RegisterResponse, status_code=201)
def register(
    payload: RegisterRequest,
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    if not payload.username or not payload.email or not payload.password:
        raise HTTPException(
            status_code=400, detail="Username, email, and password are required"
        )
    if len(payload.password) < 6:
        raise HTTPException(
            status_code=400, detail="Password must be at least 6 characters long"
        )

    existing = db.find_conflicting_user(payload.username, payload.email)
    if existing:
        if existing.username == payload.username:
            raise HTTPException(status_code=409, detail="Username already exists")
        raise HTTPException(status_code=409, detail="Email already exists")

    try:
        user = db.create_user(
            payload.username,
            payload.email,
            hash_password(payload.password, settings.bcrypt_rounds),
            role="user",
        )
    except ConflictError:
        raise HTTPException(status_code=409, detail="Username already exists")
    except SQLAlchemyError:
        logger.exception("Error creating user %s", payload.username)
        raise HTTPException(status_code=500, detail="Failed to create user account")
    return RegisterResponse(
        message="User account created successfully", user=_public_user(user)
    )


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    response: Response,
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    if not payload.username or not payload.password:
        raise HTTPException(
            status_code=400, detail="Username and password are required"
        )
    user = db.find_user_by_login(payload.username)
    if not user or not verify_password(payload.password, user.password_hash):
        logger.info("Failed login for %s", payload.username)
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = create_access_token(user, settings)
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=settings.auth_token_ttl_minutes * 60,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
    )
    return LoginResponse(access_token=token, user=_public_user(user))


@router.get("/session")
def session(user: Optional[SessionUser] = Depends(get_current_user)):
    return {"user": user.as_dict() if user else None}


@router.post("/logout")
def logout(response: Response, settings: Settings = Depends(get_settings)):
    response.delete_cookie(settings.session_cookie_name)
    return {"ok": True}
