"""
Loading and validation of the Firebase service account document.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from agency_api.config import Settings
from agency_api.errors import FirebaseValidationError

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "type",
    "project_id",
    "private_key_id",
    "private_key",
    "client_email",
    "client_id",
    "auth_uri",
    "token_uri",
    "auth_provider_x509_cert_url",
    "client_x509_cert_url",
)


def load_service_account(settings: Settings) -> dict:
    """
    Read the service account from FIREBASE_SERVICE_ACCOUNT (inline JSON) or,
    failing that, from the configured file path.
    """
    if settings.firebase_service_account:
        try:
            return json.loads(settings.firebase_service_account)
        except json.JSONDecodeError as exc:
            raise FirebaseValidationError(
                "Failed to parse FIREBASE_SERVICE_ACCOUNT environment variable. "
                "Must be valid JSON."
            ) from exc

    path = Path(settings.firebase_service_account_path)
    if not path.exists():
        raise FirebaseValidationError(
            f"Firebase service account file not found at: {path}\n"
            "Please download the service account JSON from Firebase Console:\n"
            "1. Go to Firebase Console > Project Settings > Service Accounts\n"
            '2. Click "Generate New Private Key"\n'
            f"3. Save the file as {path}"
        )
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise FirebaseValidationError(
            f"Failed to read or parse {path.name}: {exc}"
        ) from exc


def validate_service_account(
    service_account: object, expected_project_id: Optional[str] = None
) -> None:
    """
    Check the structure and content of a service account document.

    Raises:
        FirebaseValidationError: describing the first problem found.
    """
    if not isinstance(service_account, dict):
        raise FirebaseValidationError(
            "Firebase service account must be a valid JSON object"
        )

    missing = [name for name in REQUIRED_FIELDS if not service_account.get(name)]
    if missing:
        raise FirebaseValidationError(
            "Missing required fields in Firebase service account: "
            + ", ".join(missing)
        )

    if service_account["type"] != "service_account":
        raise FirebaseValidationError(
            "Invalid service account type. Expected 'service_account', "
            f"got '{service_account['type']}'"
        )

    project_id = service_account["project_id"]
    if expected_project_id and project_id != expected_project_id:
        raise FirebaseValidationError(
            f"Wrong Firebase project! Expected '{expected_project_id}', got "
            f"'{project_id}'. Please use the correct Firebase service account "
            "file for this project."
        )

    client_email = service_account["client_email"]
    if "@" not in client_email or ".iam.gserviceaccount.com" not in client_email:
        raise FirebaseValidationError(f"Invalid client_email format: {client_email}")

    private_key = service_account["private_key"]
    if "BEGIN PRIVATE KEY" not in private_key or "END PRIVATE KEY" not in private_key:
        raise FirebaseValidationError(
            "Invalid private_key format. Must be a valid PEM-encoded private key."
        )

    if not service_account["auth_uri"].startswith("https://accounts.google.com"):
        raise FirebaseValidationError(
            f"Invalid auth_uri: {service_account['auth_uri']}"
        )

    if not service_account["token_uri"].startswith("https://oauth2.googleapis.com"):
        raise FirebaseValidationError(
            f"Invalid token_uri: {service_account['token_uri']}"
        )

    if project_id not in client_email:
        raise FirebaseValidationError(
            f"Client email '{client_email}' does not match project '{project_id}'"
        )

    logger.debug("Service account for project %s passed validation", project_id)
