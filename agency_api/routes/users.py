"""
User profile and admin user-management endpoints.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends

from agency_api.auth import AuthContext, get_auth_context, require_admin, require_user
from agency_api.dependencies import get_user_service
from agency_api.errors import ForbiddenError, UnauthorizedError
from agency_api.routes.common import present, respond
from agency_api.schemas import (
    ApiResponse,
    CreateUserRequest,
    SetRoleRequest,
    UpdateUserRequest,
)
from agency_api.users import UserService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])

_RESPONSE = dict(response_model=ApiResponse, response_model_exclude_none=True)
_LISTED_FIELDS = ("_id", "firebaseUid", "email", "displayName", "photoURL", "createdAt")


def require_owner(
    uid: str, context: Optional[AuthContext] = Depends(get_auth_context)
) -> AuthContext:
    if context is None or not context.uid:
        raise UnauthorizedError("You must be logged in to access user data")
    if context.uid != uid:
        logger.warning("uid=%s denied access to user %s", context.uid, uid)
        raise ForbiddenError("You can only access your own user data")
    return context


@router.get("/users", **_RESPONSE)
def list_users(
    _: AuthContext = Depends(require_user),
    service: UserService = Depends(get_user_service),
):
    users = [
        {k: v for k, v in present(profile).items() if k in _LISTED_FIELDS}
        for profile in service.list_users()
    ]
    return respond(users, count=len(users))


@router.get("/users/{uid}", **_RESPONSE)
def get_user(
    uid: str,
    _: AuthContext = Depends(require_owner),
    service: UserService = Depends(get_user_service),
):
    return respond(present(service.get(uid)))


@router.put("/users/{uid}", **_RESPONSE)
def update_user(
    uid: str,
    payload: UpdateUserRequest,
    _: AuthContext = Depends(require_owner),
    service: UserService = Depends(get_user_service),
):
    profile = service.update(uid, payload)
    return respond(present(profile), message="Profile updated successfully")


@router.delete("/users/{uid}", **_RESPONSE)
def delete_user(
    uid: str,
    _: AuthContext = Depends(require_owner),
    service: UserService = Depends(get_user_service),
):
    service.delete(uid)
    return respond(message="User deleted successfully")


@router.post("/admin/set-role", **_RESPONSE)
def set_user_role(
    payload: SetRoleRequest,
    _: AuthContext = Depends(require_admin),
    service: UserService = Depends(get_user_service),
):
    role = service.set_role(payload.uid, payload.role)
    return respond(
        {"uid": payload.uid, "role": role.value},
        message=f"User role set to {role.value}",
    )


@router.post("/admin/create-user", status_code=201, **_RESPONSE)
def create_user(
    payload: CreateUserRequest,
    _: AuthContext = Depends(require_admin),
    service: UserService = Depends(get_user_service),
):
    user = service.create_user(payload)
    return respond(
        {"uid": user.uid, "email": user.email}, message="User created successfully"
    )
