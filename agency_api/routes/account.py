"""
Session endpoints: exchange a Firebase ID token for a session cookie.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response

from agency_api.auth import AuthContext, require_user, sign_session_token
from agency_api.config import Settings
from agency_api.db import Database
from agency_api.dependencies import (
    get_app_settings,
    get_database,
    get_identity_provider,
    get_user_service,
)
from agency_api.errors import UnauthorizedError, ValidationError
from agency_api.identity import IdentityProvider
from agency_api.routes.common import present, respond
from agency_api.schemas import ApiResponse, LoginRequest
from agency_api.users import UserService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["account"])

_RESPONSE = dict(response_model=ApiResponse, response_model_exclude_none=True)


@router.post("/login", **_RESPONSE)
def login(
    payload: LoginRequest,
    response: Response,
    settings: Settings = Depends(get_app_settings),
    identity: IdentityProvider = Depends(get_identity_provider),
    service: UserService = Depends(get_user_service),
):
    if not payload.id_token:
        raise ValidationError("idToken required")
    decoded = identity.verify_id_token(payload.id_token)
    uid = decoded.get("uid")
    if not uid:
        raise UnauthorizedError("Invalid or expired token")

    profile = service.record_login(uid, decoded.get("email"))
    response.set_cookie(
        settings.session_cookie_name,
        sign_session_token(uid, settings),
        max_age=settings.session_ttl_days * 24 * 60 * 60,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )
    logger.info("Session started for uid=%s", uid)
    return respond(present(profile), message="Logged in successfully")


@router.post("/logout", **_RESPONSE)
def logout(response: Response, settings: Settings = Depends(get_app_settings)):
    response.delete_cookie(settings.session_cookie_name)
    return respond(message="Logged out successfully")


@router.get("/me", **_RESPONSE)
def me(
    caller: AuthContext = Depends(require_user),
    database: Database = Depends(get_database),
):
    profile = database.users.get(caller.uid)
    return respond(
        {
            "uid": caller.uid,
            "email": caller.email,
            "isAdmin": caller.is_admin,
            "source": caller.source,
            "profile": present(profile) if profile else None,
        }
    )
