"""
Request authentication: Firebase bearer tokens, a fallback session cookie, and
the administrative-privilege checks layered on top of them.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import Depends, Request
from jose import JWTError, jwt

from agency_api.config import Settings
from agency_api.db import Database
from agency_api.dependencies import (
    get_app_settings,
    get_database,
    get_identity_provider,
)
from agency_api.errors import ForbiddenError, UnauthorizedError
from agency_api.identity import IdentityProvider
from agency_api.models import UserRole, utcnow

logger = logging.getLogger(__name__)

SESSION_ALGORITHM = "HS256"
ADMIN_SECRET_HEADER = "x-admin-secret"


@dataclass
class AuthContext:
    """Who is calling. ``uid`` is None for admin-secret-only requests."""

    uid: Optional[str]
    email: Optional[str] = None
    is_admin: bool = False
    source: str = "firebase"
    claims: Optional[Dict[str, Any]] = None


def sign_session_token(uid: str, settings: Settings) -> str:
    expires = utcnow() + timedelta(days=settings.session_ttl_days)
    return jwt.encode(
        {"uid": uid, "exp": expires}, settings.jwt_secret, algorithm=SESSION_ALGORITHM
    )


def decode_session_token(token: str, settings: Settings) -> Optional[str]:
    """Return the uid in a valid session token, or None."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[SESSION_ALGORITHM])
    except JWTError:
        return None
    uid = payload.get("uid")
    return uid if isinstance(uid, str) and uid else None


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization") or ""
    parts = header.split(None, 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        return None
    return parts[1].strip()


def has_admin_secret(request: Request, settings: Settings) -> bool:
    provided = request.headers.get(ADMIN_SECRET_HEADER)
    if not provided or not settings.admin_secret:
        return False
    return hmac.compare_digest(provided, settings.admin_secret)


def get_auth_context(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    database: Database = Depends(get_database),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> Optional[AuthContext]:
    """
    Resolve the caller. A bearer token that fails verification is a 401; a bad
    session cookie is ignored and the request continues anonymously.
    """
    context: Optional[AuthContext] = None

    token = _bearer_token(request)
    if token:
        decoded = identity.verify_id_token(token)
        context = AuthContext(
            uid=decoded.get("uid"),
            email=decoded.get("email"),
            is_admin=decoded.get("admin") is True or decoded.get("role") == "admin",
            source="firebase",
            claims=decoded,
        )
    else:
        cookie = request.cookies.get(settings.session_cookie_name)
        uid = decode_session_token(cookie, settings) if cookie else None
        if uid:
            context = AuthContext(uid=uid, source="session")

    if context and context.uid and not context.is_admin:
        profile = database.users.get(context.uid)
        if profile is not None:
            context.is_admin = profile.role == UserRole.ADMIN
            context.email = context.email or profile.email

    if has_admin_secret(request, settings):
        if context is None:
            context = AuthContext(uid=None, source="admin-secret")
        context.is_admin = True

    return context


def require_user(
    context: Optional[AuthContext] = Depends(get_auth_context),
) -> AuthContext:
    if context is None or not context.uid:
        raise UnauthorizedError("Authentication required")
    return context


def require_admin(
    context: Optional[AuthContext] = Depends(get_auth_context),
) -> AuthContext:
    if context is None:
        raise UnauthorizedError("Authentication required")
    if not context.is_admin:
        logger.warning("Admin access denied for uid=%s", context.uid)
        raise ForbiddenError("Admin access required")
    return context


def require_caller(
    context: Optional[AuthContext] = Depends(get_auth_context),
) -> AuthContext:
    """Any authenticated caller, including admin-secret requests without a uid."""
    if context is None:
        raise UnauthorizedError("Authentication required")
    return context
