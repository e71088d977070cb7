"""
Identity provider abstraction for Firebase Authentication and in-memory testing.
"""

from __future__ import annotations

import contextlib
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import firebase_admin
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials as firebase_credentials
from firebase_admin import exceptions as firebase_exceptions

from agency_api.errors import (
    ApiError,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@dataclass
class IdentityUser:
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    phone_number: Optional[str] = None
    photo_url: Optional[str] = None
    disabled: bool = False


class IdentityProvider(Protocol):
    """Defines the operations the API needs from the identity provider."""

    def verify_id_token(self, id_token: str) -> Dict[str, Any]:
        ...

    def create_user(self, **fields: Any) -> IdentityUser:
        ...

    def update_user(self, uid: str, **fields: Any) -> IdentityUser:
        ...

    def delete_user(self, uid: str) -> None:
        ...

    def set_custom_claims(self, uid: str, claims: Dict[str, Any]) -> None:
        ...


def _present(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in fields.items() if v is not None}


@dataclass
class InMemoryIdentityProvider:
    """Test double for identity provider interactions."""

    users: Dict[str, IdentityUser] = field(default_factory=dict)
    claims: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    tokens: Dict[str, str] = field(default_factory=dict)
    revoked: set = field(default_factory=set)

    def issue_token(self, uid: str, email: Optional[str] = None, **claims: Any) -> str:
        """Register a user (if needed) and return a token that verifies as them."""
        if uid not in self.users:
            self.users[uid] = IdentityUser(uid=uid, email=email)
        if claims:
            self.claims.setdefault(uid, {}).update(claims)
        token = f"token-{uuid.uuid4().hex}"
        self.tokens[token] = uid
        return token

    def verify_id_token(self, id_token: str) -> Dict[str, Any]:
        if id_token in self.revoked:
            raise UnauthorizedError("Token revoked. Please reauthenticate.")
        uid = self.tokens.get(id_token)
        if uid is None or uid not in self.users:
            raise UnauthorizedError("Invalid or expired token")
        user = self.users[uid]
        decoded = {"uid": uid, "email": user.email}
        decoded.update(self.claims.get(uid, {}))
        return decoded

    def create_user(self, **fields: Any) -> IdentityUser:
        fields = _present(fields)
        uid = fields.pop("uid", None) or uuid.uuid4().hex
        if uid in self.users:
            raise ConflictError("The user with the provided uid already exists")
        fields.pop("password", None)
        user = IdentityUser(uid=uid, **fields)
        self.users[uid] = user
        return user

    def update_user(self, uid: str, **fields: Any) -> IdentityUser:
        user = self.users.get(uid)
        if user is None:
            raise NotFoundError("No user record found for the provided identifier")
        fields = _present(fields)
        fields.pop("password", None)
        for name, value in fields.items():
            setattr(user, name, value)
        return user

    def delete_user(self, uid: str) -> None:
        if self.users.pop(uid, None) is None:
            raise NotFoundError("No user record found for the provided identifier")
        self.claims.pop(uid, None)

    def set_custom_claims(self, uid: str, claims: Dict[str, Any]) -> None:
        if uid not in self.users:
            raise NotFoundError("No user record found for the provided identifier")
        self.claims[uid] = dict(claims)


@contextlib.contextmanager
def _firebase_errors(operation: str):
    try:
        yield
    except (
        firebase_auth.EmailAlreadyExistsError,
        firebase_auth.UidAlreadyExistsError,
        firebase_auth.PhoneNumberAlreadyExistsError,
    ) as exc:
        raise ConflictError(str(exc)) from exc
    except firebase_auth.UserNotFoundError as exc:
        raise NotFoundError("No user record found for the provided identifier") from exc
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    except firebase_exceptions.FirebaseError as exc:
        logger.error("Firebase %s failed: %s", operation, exc)
        raise ApiError(f"Failed to {operation}", detail=str(exc)) from exc


def _to_identity_user(record: firebase_auth.UserRecord) -> IdentityUser:
    return IdentityUser(
        uid=record.uid,
        email=record.email,
        display_name=record.display_name,
        phone_number=record.phone_number,
        photo_url=record.photo_url,
        disabled=record.disabled,
    )


@dataclass
class FirebaseIdentityProvider:
    """
    Firebase Admin SDK adapter. The service account must already be validated.
    """

    service_account: Dict[str, Any]

    def __post_init__(self):
        try:
            self._app = firebase_admin.get_app()
        except ValueError:
            self._app = firebase_admin.initialize_app(
                firebase_credentials.Certificate(self.service_account)
            )
            logger.info(
                "Firebase Admin initialized for project: %s",
                self.service_account.get("project_id"),
            )

    def verify_id_token(self, id_token: str) -> Dict[str, Any]:
        try:
            return firebase_auth.verify_id_token(
                id_token, app=self._app, check_revoked=True
            )
        except firebase_auth.RevokedIdTokenError as exc:
            logger.warning("Rejected revoked ID token")
            raise UnauthorizedError("Token revoked. Please reauthenticate.") from exc
        except (ValueError, firebase_exceptions.FirebaseError) as exc:
            logger.warning("Token verification failed: %s", exc)
            raise UnauthorizedError("Invalid or expired token") from exc

    def create_user(self, **fields: Any) -> IdentityUser:
        with _firebase_errors("create user"):
            record = firebase_auth.create_user(app=self._app, **_present(fields))
        return _to_identity_user(record)

    def update_user(self, uid: str, **fields: Any) -> IdentityUser:
        with _firebase_errors("update user"):
            record = firebase_auth.update_user(uid, app=self._app, **_present(fields))
        return _to_identity_user(record)

    def delete_user(self, uid: str) -> None:
        with _firebase_errors("delete user"):
            firebase_auth.delete_user(uid, app=self._app)

    def set_custom_claims(self, uid: str, claims: Dict[str, Any]) -> None:
        with _firebase_errors("set custom claims"):
            firebase_auth.set_custom_user_claims(uid, claims, app=self._app)
