"""
Contact form submissions and their admin inbox workflow.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from agency_api.db import ContactFilter, ContactRepository, is_valid_id
from agency_api.errors import NotFoundError, ValidationError
from agency_api.models import Contact, ContactStatus, utcnow
from agency_api.orders import EMAIL_PATTERN
from agency_api.schemas import ContactRequest

logger = logging.getLogger(__name__)

MIN_PHONE_LENGTH = 10
RECENT_WINDOW = timedelta(days=30)
SORTABLE_FIELDS = ("createdAt", "name", "email", "subject", "status")


@dataclass
class ContactPage:
    contacts: List[Contact]
    total_count: int
    status_counts: Dict[str, int]
    skip: int
    limit: int

    @property
    def has_more(self) -> bool:
        return self.skip + len(self.contacts) < self.total_count


@dataclass
class ContactStats:
    total: int
    by_status: Dict[str, int]
    last_30_days: int


def _parse_status(value: Optional[str]) -> ContactStatus:
    try:
        return ContactStatus(value)
    except ValueError:
        raise ValidationError(
            "Invalid status. Must be one of: new, read, replied, archived"
        ) from None


def _check_id(contact_id: str) -> None:
    if not is_valid_id(contact_id):
        raise ValidationError("Invalid contact ID")


class ContactService:
    def __init__(self, contacts: ContactRepository):
        self._contacts = contacts

    def submit(self, request: ContactRequest) -> Contact:
        if not all(
            (request.name, request.email, request.phone, request.subject, request.message)
        ):
            raise ValidationError(
                "All fields are required: name, email, phone, subject, and message"
            )
        if not EMAIL_PATTERN.match(request.email):
            raise ValidationError("Invalid email format")
        if len(request.phone) < MIN_PHONE_LENGTH:
            raise ValidationError("Invalid phone number")

        contact = self._contacts.insert(
            Contact(
                name=request.name,
                email=request.email,
                phone=request.phone,
                subject=request.subject,
                message=request.message,
            )
        )
        logger.info("New contact submission %s", contact.id)
        return contact

    def _status_counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in ContactStatus}
        counts.update(
            {k: v for k, v in self._contacts.count_by_status().items() if k in counts}
        )
        return counts

    def list(
        self,
        *,
        status: Optional[str] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        skip: int = 0,
        limit: Optional[int] = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
    ) -> ContactPage:
        if status:
            _parse_status(status)
        if sort_by not in SORTABLE_FIELDS:
            raise ValidationError(
                f"Invalid sort field. Must be one of: {', '.join(SORTABLE_FIELDS)}"
            )
        contact_filter = ContactFilter(
            status=status, created_from=created_from, created_to=created_to
        )
        contacts = self._contacts.find(
            contact_filter,
            skip=skip,
            limit=limit,
            sort_by=sort_by,
            descending=sort_order != "asc",
        )
        return ContactPage(
            contacts=contacts,
            total_count=self._contacts.count(contact_filter),
            status_counts=self._status_counts(),
            skip=skip,
            limit=limit or len(contacts),
        )

    def stats(self) -> ContactStats:
        since = utcnow() - RECENT_WINDOW
        return ContactStats(
            total=self._contacts.count(),
            by_status=self._status_counts(),
            last_30_days=self._contacts.count(ContactFilter(created_from=since)),
        )

    def open(self, contact_id: str) -> Contact:
        """Fetch a submission, marking it read the first time it is opened."""
        _check_id(contact_id)
        contact = self._contacts.get(contact_id)
        if contact is None:
            raise NotFoundError("Contact not found")
        if contact.status == ContactStatus.NEW:
            contact = self._contacts.update(
                contact_id, {"status": ContactStatus.READ.value, "readAt": utcnow()}
            )
        return contact

    def set_status(self, contact_id: str, status: Optional[str]) -> Contact:
        _check_id(contact_id)
        new_status = _parse_status(status)
        contact = self._contacts.get(contact_id)
        if contact is None:
            raise NotFoundError("Contact not found")

        changes = {"status": new_status.value}
        if new_status == ContactStatus.READ and contact.read_at is None:
            changes["readAt"] = utcnow()
        if new_status == ContactStatus.REPLIED:
            changes["repliedAt"] = utcnow()
        return self._contacts.update(contact_id, changes)

    def delete(self, contact_id: str) -> None:
        _check_id(contact_id)
        if not self._contacts.delete(contact_id):
            raise NotFoundError("Contact not found")

    def delete_many(self, contact_ids: Optional[List[str]]) -> int:
        if not contact_ids:
            raise ValidationError("Contact IDs array is required")
        for contact_id in contact_ids:
            if not is_valid_id(contact_id):
                raise ValidationError(f"Invalid contact ID: {contact_id}")
        deleted = self._contacts.delete_many(contact_ids)
        logger.info("Deleted %d contact(s)", deleted)
        return deleted
