"""
User profiles and the administrative user operations.

A profile is the stored mirror of an identity-provider account, keyed by the
provider uid. Identity changes go to the provider first, then the profile.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from agency_api.db import UserRepository
from agency_api.errors import NotFoundError, StorageError, ValidationError
from agency_api.identity import IdentityProvider, IdentityUser
from agency_api.models import UserProfile, UserRole, utcnow
from agency_api.schemas import CreateUserRequest, UpdateUserRequest

logger = logging.getLogger(__name__)

MAX_LISTED_USERS = 100


def _insert_defaults(changes: Dict[str, Any]) -> Dict[str, Any]:
    defaults = {
        "displayName": "",
        "phoneNumber": "",
        "photoURL": "",
        "role": UserRole.USER.value,
        "status": "active",
        "termsAccepted": True,
        "createdAt": utcnow(),
    }
    return {k: v for k, v in defaults.items() if k not in changes}


class UserService:
    def __init__(self, users: UserRepository, identity: IdentityProvider):
        self._users = users
        self._identity = identity

    def list_users(self, limit: int = MAX_LISTED_USERS) -> List[UserProfile]:
        return self._users.list(limit=min(limit, MAX_LISTED_USERS))

    def get(self, uid: str) -> UserProfile:
        profile = self._users.get(uid)
        if profile is None:
            raise NotFoundError("User not found")
        return profile

    def record_login(self, uid: str, email: Optional[str] = None) -> UserProfile:
        """Make sure a profile exists for a freshly verified identity."""
        changes: Dict[str, Any] = {"updatedAt": utcnow()}
        if email:
            changes["email"] = email
        return self._users.upsert(uid, changes, on_insert=_insert_defaults(changes))

    def update(self, uid: str, request: UpdateUserRequest) -> UserProfile:
        identity_fields = {
            "email": request.email,
            "display_name": request.display_name,
            "phone_number": request.phone_number,
            "photo_url": request.photo_url,
            "password": request.password,
        }
        identity_fields = {k: v for k, v in identity_fields.items() if v}
        if identity_fields:
            self._identity.update_user(uid, **identity_fields)

        changes: Dict[str, Any] = {
            "email": request.email,
            "displayName": request.display_name,
            "phoneNumber": request.phone_number,
            "photoURL": request.photo_url,
        }
        # Same filter as the provider update so the two copies never diverge.
        changes = {k: v for k, v in changes.items() if v}
        changes["updatedAt"] = utcnow()
        profile = self._users.upsert(uid, changes, on_insert=_insert_defaults(changes))
        logger.info("Updated profile for uid=%s", uid)
        return profile

    def delete(self, uid: str) -> None:
        self._identity.delete_user(uid)
        self._users.delete(uid)
        logger.info("Deleted user uid=%s", uid)

    def set_role(self, uid: Optional[str], role: Optional[str]) -> UserRole:
        if not uid or not role:
            raise ValidationError("uid and role required")
        try:
            user_role = UserRole(role)
        except ValueError:
            raise ValidationError('role must be either "admin" or "user"') from None

        self._identity.set_custom_claims(uid, {"admin": user_role == UserRole.ADMIN})
        if not self._users.set_role(uid, user_role.value):
            raise NotFoundError("User not found in database")
        logger.info("User %s role set to: %s", uid, user_role.value)
        return user_role

    def create_user(self, request: CreateUserRequest) -> IdentityUser:
        if not request.email and not request.phone_number and not request.uid:
            raise ValidationError("email or phoneNumber or uid required")

        user = self._identity.create_user(
            uid=request.uid,
            email=request.email,
            password=request.password,
            display_name=request.display_name,
            phone_number=request.phone_number,
            photo_url=request.photo_url,
            disabled=request.disabled,
        )
        if request.custom_claims:
            self._identity.set_custom_claims(user.uid, request.custom_claims)

        changes = {
            "email": user.email or request.email,
            "displayName": user.display_name or request.display_name or "",
            "phoneNumber": user.phone_number or request.phone_number or "",
            "photoURL": user.photo_url or request.photo_url or "",
            "updatedAt": utcnow(),
        }
        try:
            self._users.upsert(user.uid, changes, on_insert=_insert_defaults(changes))
        except StorageError as exc:
            logger.error(
                "Failed to store profile for new user %s: %s", user.uid, exc.detail or exc
            )
        logger.info("Created user uid=%s", user.uid)
        return user
